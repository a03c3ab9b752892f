"""
Normalized Data Schemas

Pydantic models for everything this service caches and returns.

Models:
    - Point: One (time, price) sample of a history series
    - PricePayload: Spot quote as cached by the price service
    - HistoryPayload: Price series as cached by the history service
    - PriceResponse / HistoryResponse: Payloads annotated with cache status
    - ErrorResponse: Body of every non-2xx response
    - HealthResponse: Body of GET /health

Payload models are frozen: a cache entry is replaced wholesale on the next
write and never mutated in place.

All timestamps are Unix epoch milliseconds.
"""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================
# History Interval
# ============================================

class HistoryInterval(str, Enum):
    """Public history granularity accepted by GET /history."""

    HOURLY = "hourly"
    DAILY = "daily"

    @classmethod
    def parse(cls, value: Optional[str]) -> "HistoryInterval":
        """Unknown or missing values fall back to hourly."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.HOURLY


# ============================================
# Payloads (cached)
# ============================================

class Point(BaseModel):
    """A single sample of a price series."""

    model_config = ConfigDict(frozen=True)

    t: int = Field(..., description="Sample time (kline open time), epoch ms")
    price: float = Field(..., description="Price at t (kline close price)")


class PricePayload(BaseModel):
    """
    Spot Quote

    Attributes:
        symbol: Public symbol (e.g., "BTC")
        currency: Quote currency (always "USD")
        price: Last traded or average price
        source: Upstream endpoint the price came from
        timestamp: When the quote was fetched, epoch ms
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "symbol": "BTC",
                "currency": "USD",
                "price": 88000.0,
                "source": "https://api.binance.com/api/v3/ticker/price",
                "timestamp": 1704110400000
            }
        }
    )

    symbol: str
    currency: str
    price: float
    source: str
    timestamp: int


class HistoryPayload(BaseModel):
    """
    Price Series

    Attributes:
        symbol: Public symbol (e.g., "BTC")
        days: Requested look-back window in days
        interval: Requested granularity
        points: Samples ordered oldest first
        volume24h: Sum of quote volume over the returned rows (None for synthetic series)
        source: Upstream request the series came from
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    days: int
    interval: HistoryInterval
    points: List[Point]
    volume24h: Optional[float] = None
    source: str


# ============================================
# Responses
# ============================================

class PriceResponse(PricePayload):
    cached: bool = False
    warning: Optional[str] = None


class HistoryResponse(HistoryPayload):
    cached: bool = False
    warning: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    details: Optional[Any] = None


class HealthResponse(BaseModel):
    status: str = "ok"


def annotate(payload: BaseModel, response_cls, cached: bool, warning: Optional[str] = None):
    """
    Wrap a cached payload in its response model.

    ``warning`` is only set when given, so it stays out of the JSON body
    when the route serializes with ``exclude_unset``.
    """
    data = payload.model_dump()
    data["cached"] = cached
    if warning is not None:
        data["warning"] = warning
    return response_cls(**data)
