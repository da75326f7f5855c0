"""
Cache package for Reports Service.

Stores the collection snapshot in Redis when a connection is configured
and falls back to process memory otherwise. The active layer is reported
in every response so operators can spot degraded mode.
"""

from .snapshot_store import (
    CACHE_LAYER_DURABLE,
    CACHE_LAYER_MEMORY,
    CachedCollection,
    MemorySnapshotBackend,
    RedisSnapshotBackend,
    SnapshotStore,
    create_snapshot_store,
    parse_snapshot_record,
)

__all__ = [
    "CACHE_LAYER_DURABLE",
    "CACHE_LAYER_MEMORY",
    "CachedCollection",
    "MemorySnapshotBackend",
    "RedisSnapshotBackend",
    "SnapshotStore",
    "create_snapshot_store",
    "parse_snapshot_record",
]
