"""
Snapshot storage for Reports Service.

A snapshot is the whole item collection plus the instant it was fetched.
Both halves live in one JSON record under one key, so any read observes a
self-consistent pair.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import redis.asyncio as redis

from shared.config import ReportsConfig
from shared.errors import MalformedCacheRecord, StoreWriteFailure
from shared.logging import get_logger


SNAPSHOT_KEY = "reports:snapshot"

CACHE_LAYER_DURABLE = "durable"
CACHE_LAYER_MEMORY = "memory"


@dataclass(frozen=True)
class CachedCollection:
    """Items of one refresh cycle and the epoch millis they were fetched at."""
    items: List[Dict[str, Any]]
    last_fetch_ms: int
    cache_layer: str = field(default=CACHE_LAYER_MEMORY, compare=False)

    def to_record(self) -> Dict[str, Any]:
        return {"items": self.items, "lastFetch": self.last_fetch_ms}


def parse_snapshot_record(
    raw: Union[str, bytes, Dict[str, Any], None],
    cache_layer: str = CACHE_LAYER_MEMORY
) -> CachedCollection:
    """Validate a stored record.

    Raises:
        MalformedCacheRecord: if the record is not an object holding an
            item list and a numeric fetch timestamp
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise MalformedCacheRecord("Snapshot record is not valid JSON", {"error": str(e)})

    if not isinstance(raw, dict):
        raise MalformedCacheRecord("Snapshot record is not an object")

    items = raw.get("items")
    last_fetch = raw.get("lastFetch")
    if not isinstance(items, list):
        raise MalformedCacheRecord("Snapshot items are not a list")
    if isinstance(last_fetch, bool) or not isinstance(last_fetch, (int, float)):
        raise MalformedCacheRecord("Snapshot timestamp is not numeric")

    return CachedCollection(items=items, last_fetch_ms=int(last_fetch), cache_layer=cache_layer)


class MemorySnapshotBackend:
    """In-process fallback.

    Lives as long as the owning service instance; nothing survives a restart.
    Concurrent requests in one process share it without locking.
    """

    def __init__(self):
        self._record: Optional[Dict[str, Any]] = None

    async def get(self) -> Optional[Dict[str, Any]]:
        return self._record

    async def set(self, record: Dict[str, Any]) -> None:
        self._record = record

    async def health_check(self) -> bool:
        return True


class RedisSnapshotBackend:
    """Redis-backed durable snapshot storage."""

    def __init__(self, redis_url: str, key: str = SNAPSHOT_KEY, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.key = key
        self.logger = get_logger("reports.cache.redis")
        self.redis = client or redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30
        )

    async def get(self) -> Optional[str]:
        return await self.redis.get(self.key)

    async def set(self, record: Dict[str, Any]) -> None:
        try:
            await self.redis.set(self.key, json.dumps(record))
        except Exception as e:
            raise StoreWriteFailure(str(e) or "Redis write failed", {"key": self.key})

    async def stop(self):
        """Close the Redis connection pool."""
        await self.redis.aclose()
        self.logger.info("Redis snapshot backend stopped")

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self.redis.ping()
            return True
        except Exception:
            return False


class SnapshotStore:
    """Reads and writes snapshots, preferring the durable backend."""

    def __init__(
        self,
        durable: Optional[RedisSnapshotBackend] = None,
        fallback: Optional[MemorySnapshotBackend] = None
    ):
        self.durable = durable
        self.fallback = fallback or MemorySnapshotBackend()
        self.logger = get_logger("reports.cache.store")

    @property
    def cache_layer(self) -> str:
        return CACHE_LAYER_DURABLE if self.durable is not None else CACHE_LAYER_MEMORY

    async def read_snapshot(self) -> Optional[CachedCollection]:
        """Return the stored snapshot, or None when missing or malformed.

        The in-process copy is only written when a durable write failed. It is
        served whenever it is newer than what the durable backend holds, so a
        backend that still reads but refuses writes does not force a refetch
        on every request. The returned snapshot names the layer it came from.
        """
        memory = self._parse(await self.fallback.get(), CACHE_LAYER_MEMORY)
        if self.durable is None:
            return memory

        try:
            durable = self._parse(await self.durable.get(), CACHE_LAYER_DURABLE)
        except Exception as e:
            self.logger.warning("Durable snapshot read failed, using memory copy", error=str(e))
            return memory

        if memory is not None and (durable is None or memory.last_fetch_ms > durable.last_fetch_ms):
            self.logger.warning("Serving in-process snapshot newer than durable copy", last_fetch=memory.last_fetch_ms)
            return memory
        return durable

    def _parse(self, raw: Any, cache_layer: str) -> Optional[CachedCollection]:
        if raw is None:
            return None
        try:
            return parse_snapshot_record(raw, cache_layer)
        except MalformedCacheRecord as e:
            self.logger.warning(
                "Ignoring malformed snapshot record",
                cache_layer=cache_layer,
                reason=e.message,
                details=e.details
            )
            return None

    async def write_snapshot(self, items: List[Dict[str, Any]], epoch_ms: int) -> bool:
        """Persist items and timestamp together.

        Returns False when the durable write failed and the snapshot only
        reached process memory.
        """
        record = CachedCollection(items=items, last_fetch_ms=epoch_ms).to_record()

        if self.durable is None:
            await self.fallback.set(record)
            return True

        try:
            await self.durable.set(record)
            return True
        except StoreWriteFailure as e:
            self.logger.warning(
                "Durable snapshot write failed, keeping in-process copy only",
                error=e.message,
                item_count=len(items)
            )
            await self.fallback.set(record)
            return False

    async def health_check(self) -> bool:
        if self.durable is not None:
            return await self.durable.health_check()
        return await self.fallback.health_check()

    async def stop(self):
        if self.durable is not None:
            await self.durable.stop()


def create_snapshot_store(config: ReportsConfig) -> SnapshotStore:
    """Resolve the backend once: Redis when configured and valid, else memory."""
    logger = get_logger("reports.cache.store")

    if not config.redis_url:
        logger.warning("No durable store configured, snapshots are kept in process memory")
        return SnapshotStore()

    try:
        durable = RedisSnapshotBackend(config.redis_url)
    except ValueError as e:
        logger.error("Invalid durable store URL, falling back to process memory", error=str(e))
        return SnapshotStore()

    logger.info("Using durable snapshot store")
    return SnapshotStore(durable=durable)
