"""
Shared error handling for the Reports Cache Layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str


class ServiceException(Exception):
    """Base exception for Reports Cache Layer services."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(error=self.message)


class UpstreamError(ServiceException):
    """The remote content API did not return a successful response."""

    def __init__(self, status_code: Optional[int], body: str = ""):
        self.upstream_status = status_code
        self.body = body
        if status_code is None:
            message = f"Upstream API request failed: {body}"
        else:
            message = f"Upstream API responded {status_code}: {body}"
        super().__init__(
            "UPSTREAM_ERROR",
            message,
            {"status_code": status_code, "body": body}
        )


class StoreWriteFailure(ServiceException):
    """Durable key-value write failed. Absorbed by the snapshot store."""

    def __init__(self, message: str = "Durable store write failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_WRITE_FAILURE", message, details)


class MalformedCacheRecord(ServiceException):
    """Stored record failed the shape check. Treated as a cache miss."""

    def __init__(self, message: str = "Malformed cache record", details: Optional[Dict[str, Any]] = None):
        super().__init__("MALFORMED_CACHE_RECORD", message, details)
