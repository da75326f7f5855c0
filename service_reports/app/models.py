"""
Response models for Reports Service.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field


WEBHOOK_VERIFIED = "verified"
WEBHOOK_NONE = "none"


def format_cached_at(epoch_ms: int) -> str:
    """ISO-8601 in UTC with millisecond precision, e.g. 2024-01-01T00:00:00.000Z."""
    moment = datetime.fromtimestamp(epoch_ms // 1000, tz=timezone.utc)
    return f"{moment.strftime('%Y-%m-%dT%H:%M:%S')}.{epoch_ms % 1000:03d}Z"


class ReportsMeta(BaseModel):
    """Pagination and cache provenance of a reports response."""

    model_config = ConfigDict(populate_by_name=True)

    limit: int
    offset: int
    total: int
    has_more: bool = Field(alias="hasMore")
    filter: str
    exclude_slug: str = Field(alias="excludeSlug")
    cached_at: str = Field(alias="cachedAt")
    from_cache: bool = Field(alias="fromCache")
    cache_layer: str = Field(alias="cacheLayer")
    webhook: str


class ReportsResponse(BaseModel):
    """Reports endpoint payload."""

    items: List[Dict[str, Any]]
    meta: ReportsMeta
