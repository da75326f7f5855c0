"""
Refresh package for Reports Service.

Decides on every request whether the stored snapshot is served as-is or
replaced by a fresh fetch, and runs that refresh cycle.
"""

from .decision import (
    DEFAULT_TTL_MS,
    RefreshTrigger,
    SnapshotRefresher,
    SnapshotResolution,
    decide_refresh,
)

__all__ = [
    "DEFAULT_TTL_MS",
    "RefreshTrigger",
    "SnapshotRefresher",
    "SnapshotResolution",
    "decide_refresh",
]
