"""
Query projection for Reports Service.

Filtering, slug exclusion, date sorting and pagination over one snapshot.
Nothing here touches the cache; the same inputs always give the same page.
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence


MAX_LIMIT = 100
DEFAULT_LIMIT = 100
DEFAULT_OFFSET = 0

MANUAL_PUBLISH_FIELD = "datum-a-cas-publikovani"

REPORT_NAME_PATTERN = re.compile(r"Výroční zpráva\s[0-9]{4}")

_INT_PREFIX = re.compile(r"\s*([+-]?[0-9]+)")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SortOrder(str, Enum):
    """Sort orders accepted in the `sort` query parameter."""
    DATE_ASC = "date-asc"
    DATE_DESC = "date-desc"
    UNSORTED = "unsorted"


class FilterType(str, Enum):
    """Item classes accepted in the `filter` query parameter."""
    NONE = "none"
    REPORTS = "reports"
    NON_REPORTS = "aktuality"


@dataclass(frozen=True)
class QueryParameters:
    """Parsed request parameters. Never mutated after parsing."""
    limit: int = DEFAULT_LIMIT
    offset: int = DEFAULT_OFFSET
    sort: SortOrder = SortOrder.DATE_DESC
    filter: FilterType = FilterType.NONE
    exclude_slug: Optional[str] = None
    force_refresh: bool = False
    # Echoed in response metadata; unknown values are kept as sent
    filter_label: str = FilterType.NONE.value


@dataclass(frozen=True)
class ProjectionResult:
    """One page of a projected snapshot."""
    items: List[Dict[str, Any]]
    total: int
    has_more: bool


def _parse_int(raw: Optional[str], default: int) -> int:
    """Leading-integer parse: "12abc" is 12, "abc" falls back to the default."""
    if raw is None:
        return default
    match = _INT_PREFIX.match(str(raw))
    if not match:
        return default
    return int(match.group(1))


def parse_query_parameters(query: Mapping[str, str]) -> QueryParameters:
    """Parse query parameters leniently; malformed values fall back to defaults."""
    limit = min(max(_parse_int(query.get("limit"), DEFAULT_LIMIT), 0), MAX_LIMIT)
    offset = max(_parse_int(query.get("offset"), DEFAULT_OFFSET), 0)

    sort_raw = (query.get("sort") or SortOrder.DATE_DESC.value).strip().lower()
    if sort_raw == SortOrder.DATE_ASC.value:
        sort = SortOrder.DATE_ASC
    elif sort_raw == SortOrder.DATE_DESC.value:
        sort = SortOrder.DATE_DESC
    else:
        sort = SortOrder.UNSORTED

    filter_raw = (query.get("filter") or "").strip().lower()
    if filter_raw == FilterType.REPORTS.value:
        filter_type = FilterType.REPORTS
    elif filter_raw == FilterType.NON_REPORTS.value:
        filter_type = FilterType.NON_REPORTS
    else:
        filter_type = FilterType.NONE

    exclude_slug = str(query.get("excludeSlug") or "").strip() or None

    return QueryParameters(
        limit=limit,
        offset=offset,
        sort=sort,
        filter=filter_type,
        exclude_slug=exclude_slug,
        force_refresh=query.get("refresh") == "true",
        filter_label=filter_raw or FilterType.NONE.value
    )


def _field_data(item: Dict[str, Any]) -> Dict[str, Any]:
    field_data = item.get("fieldData") if isinstance(item, dict) else None
    return field_data if isinstance(field_data, dict) else {}


def is_report(item: Dict[str, Any]) -> bool:
    """True for annual reports ("Výroční zpráva 2023")."""
    name = _field_data(item).get("name")
    if not isinstance(name, str):
        return False
    return REPORT_NAME_PATTERN.fullmatch(name.strip()) is not None


def _parse_timestamp(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else None
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return (parsed - _EPOCH) // timedelta(milliseconds=1)


def resolve_publish_time(item: Dict[str, Any]) -> int:
    """Sort key in epoch millis.

    A non-empty manual publish date is chosen over lastPublished. The chosen
    value alone decides the key: if it does not parse, the key is 0.
    """
    chosen = _field_data(item).get(MANUAL_PUBLISH_FIELD)
    if not chosen and isinstance(item, dict):
        chosen = item.get("lastPublished")
    parsed = _parse_timestamp(chosen)
    return parsed if parsed is not None else 0


def project(items: Sequence[Dict[str, Any]], params: QueryParameters) -> ProjectionResult:
    """Filter, exclude, sort and paginate a snapshot."""
    if params.filter is FilterType.REPORTS:
        filtered = [item for item in items if is_report(item)]
    elif params.filter is FilterType.NON_REPORTS:
        filtered = [item for item in items if not is_report(item)]
    else:
        filtered = list(items)

    if params.exclude_slug:
        filtered = [
            item for item in filtered
            if str(_field_data(item).get("slug") or "") != params.exclude_slug
        ]

    # sorted() is stable in both directions, ties keep snapshot order
    if params.sort is SortOrder.DATE_ASC:
        filtered = sorted(filtered, key=resolve_publish_time)
    elif params.sort is SortOrder.DATE_DESC:
        filtered = sorted(filtered, key=resolve_publish_time, reverse=True)

    total = len(filtered)
    page = filtered[params.offset:params.offset + params.limit]

    return ProjectionResult(
        items=page,
        total=total,
        has_more=params.offset + params.limit < total
    )
