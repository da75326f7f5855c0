"""
Projection package for Reports Service.

Pure functions turning a snapshot and the request's query parameters into
one page of items.
"""

from .query import (
    FilterType,
    ProjectionResult,
    QueryParameters,
    SortOrder,
    is_report,
    parse_query_parameters,
    project,
    resolve_publish_time,
)

__all__ = [
    "FilterType",
    "ProjectionResult",
    "QueryParameters",
    "SortOrder",
    "is_report",
    "parse_query_parameters",
    "project",
    "resolve_publish_time",
]
