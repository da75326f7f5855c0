"""
Serve-or-refresh decision for Reports Service.

Evaluated once per request. Any of expiry, a client-forced refresh or a
verified webhook triggers a full refresh cycle; the first one that holds,
in that order, names the reason.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..cache.snapshot_store import CACHE_LAYER_MEMORY, CachedCollection, SnapshotStore
from ..upstream.collection_fetcher import CollectionFetcher


DEFAULT_TTL_MS = 24 * 60 * 60 * 1000


class RefreshTrigger(str, Enum):
    """Why a refresh cycle runs."""
    EXPIRED = "expired"
    FORCED_BY_CLIENT = "forced_by_client"
    VERIFIED_WEBHOOK = "verified_webhook"


def now_ms() -> int:
    return int(time.time() * 1000)


def decide_refresh(
    snapshot: Optional[CachedCollection],
    current_ms: int,
    ttl_ms: int,
    force_refresh: bool = False,
    verified_webhook: bool = False
) -> Optional[RefreshTrigger]:
    """Return the refresh reason, or None when the snapshot may be served."""
    if snapshot is None or current_ms - snapshot.last_fetch_ms >= ttl_ms:
        return RefreshTrigger.EXPIRED
    if force_refresh:
        return RefreshTrigger.FORCED_BY_CLIENT
    if verified_webhook:
        return RefreshTrigger.VERIFIED_WEBHOOK
    return None


@dataclass(frozen=True)
class SnapshotResolution:
    """The snapshot chosen for one response."""
    items: List[Dict[str, Any]]
    last_fetch_ms: int
    from_cache: bool
    trigger: Optional[RefreshTrigger]
    cache_layer: str


class SnapshotRefresher:
    """Runs the refresh protocol against a snapshot store and an upstream fetcher.

    There is no lock: two requests that both see a stale snapshot both fetch,
    and the last complete write wins.
    """

    def __init__(
        self,
        store: SnapshotStore,
        fetcher: CollectionFetcher,
        ttl_ms: int = DEFAULT_TTL_MS,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], int] = now_ms
    ):
        self.store = store
        self.fetcher = fetcher
        self.ttl_ms = ttl_ms
        self.metrics = metrics
        self.clock = clock
        self.logger = get_logger("reports.refresh")

    async def resolve(self, force_refresh: bool = False, verified_webhook: bool = False) -> SnapshotResolution:
        """Serve the stored snapshot or run a refresh cycle.

        Raises:
            UpstreamError: if the refresh fetch fails; the store is untouched
        """
        snapshot = await self.store.read_snapshot()
        current = self.clock()
        trigger = decide_refresh(snapshot, current, self.ttl_ms, force_refresh, verified_webhook)

        if trigger is None:
            self._record_decision("fresh")
            self.logger.info(
                "Serving snapshot from cache",
                cache_layer=snapshot.cache_layer,
                age_ms=current - snapshot.last_fetch_ms
            )
            return SnapshotResolution(
                items=snapshot.items,
                last_fetch_ms=snapshot.last_fetch_ms,
                from_cache=True,
                trigger=None,
                cache_layer=snapshot.cache_layer
            )

        self._record_decision(trigger.value)
        self.logger.info("Refreshing snapshot", reason=trigger.value, had_snapshot=snapshot is not None)

        items = await self._fetch()
        written = await self.store.write_snapshot(items, current)
        if not written and self.metrics:
            self.metrics.increment_counter("snapshot_write_failures_total")

        # The fresh items are served even when persistence degraded
        return SnapshotResolution(
            items=items,
            last_fetch_ms=current,
            from_cache=False,
            trigger=trigger,
            cache_layer=self.store.cache_layer if written else CACHE_LAYER_MEMORY
        )

    async def _fetch(self) -> List[Dict[str, Any]]:
        if not self.metrics:
            return await self.fetcher.fetch_all()

        with self.metrics.time_operation("upstream_fetch_duration_seconds"):
            items = await self.fetcher.fetch_all()
        self.metrics.set_gauge("upstream_items_fetched", len(items))
        return items

    def _record_decision(self, decision: str):
        if self.metrics:
            self.metrics.increment_counter("cache_decisions_total", decision=decision)
