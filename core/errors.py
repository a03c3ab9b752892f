"""
Error Taxonomy

Two families of exceptions live here:

- ``UpstreamError``: raised by the upstream client when a call to the market
  data provider fails. Services catch it and walk their fallback chains
  (secondary endpoint, degraded request, stale cache, synthetic series).

- ``QuoteProxyError`` and subclasses: errors that reach the caller. The
  FastAPI app renders them as ``{"error": ..., "details": ...}`` with the
  carried HTTP status.
"""

from enum import Enum
from typing import Any, Optional


class UpstreamErrorKind(str, Enum):
    """Classification of an upstream failure."""

    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    REJECTED = "rejected"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"

    @classmethod
    def from_status(cls, status: Optional[int]) -> "UpstreamErrorKind":
        if status == 429:
            return cls.RATE_LIMITED
        if status == 401:
            return cls.UNAUTHORIZED
        if status == 403:
            return cls.REJECTED
        return cls.UNAVAILABLE


class UpstreamError(Exception):
    """
    Failed call to the upstream provider.

    Attributes:
        kind: Classified failure kind
        status: HTTP status when a response was received, None otherwise
        body: Raw upstream error body (parsed JSON when possible)
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: Any = None,
        kind: Optional[UpstreamErrorKind] = None
    ):
        super().__init__(message)
        self.status = status
        self.body = body
        self.kind = kind or UpstreamErrorKind.from_status(status)

    @property
    def is_rate_limited(self) -> bool:
        return self.kind == UpstreamErrorKind.RATE_LIMITED

    @property
    def is_rejected(self) -> bool:
        """401 and 403 both mean upstream refused the request."""
        return self.kind in (UpstreamErrorKind.UNAUTHORIZED, UpstreamErrorKind.REJECTED)


class QuoteProxyError(Exception):
    """Base class for errors returned to API callers."""

    status_code: int = 500
    error: str = "Internal server error"

    def __init__(self, error: Optional[str] = None, details: Any = None, status_code: Optional[int] = None):
        self.error = error or self.error
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.error)

    def to_dict(self) -> dict:
        return {"error": self.error, "details": self.details}


class UnsupportedSymbol(QuoteProxyError):
    status_code = 400
    error = "Unsupported symbol"


class UnsupportedCurrency(QuoteProxyError):
    status_code = 400
    error = "Only USD quotes are supported."


class HistoryUnavailable(QuoteProxyError):
    status_code = 502
    error = "History not available"


class PriceUnavailable(QuoteProxyError):
    status_code = 502
    error = "Price not available"


class UpstreamUnauthorized(QuoteProxyError):
    status_code = 401
    error = "Unauthorized with upstream. Provide API_KEY if required by provider."


class UpstreamRequestFailed(QuoteProxyError):
    """Upstream failure with every fallback exhausted; carries the upstream status."""

    error = "Upstream request failed"

    @classmethod
    def from_upstream(cls, exc: UpstreamError, error: Optional[str] = None) -> "UpstreamRequestFailed":
        # No response at all (timeout, connection refused) surfaces as a plain 500
        return cls(error=error, details=exc.body, status_code=exc.status or 500)
