"""
Price History Service

Serves GET /history. The request path is an explicit state machine so each
fallback can be exercised on its own:

    CACHE_CHECK
      fresh entry                -> respond (cached)
      miss / stale               -> FETCH_PRIMARY
    FETCH_PRIMARY
      success                    -> respond
      HTTP 429                   -> FETCH_DEGRADED
      any other failure          -> STALE_FALLBACK
    FETCH_DEGRADED (1d, limit=30)
      success                    -> respond
      failure                    -> STALE_FALLBACK
    STALE_FALLBACK
      any cache entry            -> respond (cached, warning)
      none, last failure was 429 -> SYNTHETIC_FALLBACK
      none                       -> error
    SYNTHETIC_FALLBACK
      spot price in price cache  -> respond (flat series, warning)
      none                       -> error

Mock mode is not part of the machine: ``MockHistoryService`` is a separate
implementation selected at startup by ``build_history_service``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Tuple, Union

from core.config import Settings
from core.errors import (
    HistoryUnavailable,
    UpstreamError,
    UpstreamRequestFailed,
    UpstreamUnauthorized,
)
from core.logging import get_logger
from core.schemas import HistoryInterval, HistoryPayload, HistoryResponse, Point, annotate
from core.symbols import resolve
from core.upstream_interface import UpstreamClient
from core.utils.time import Clock, HOUR_MS, MINUTE_MS, system_clock
from storage.cache import CacheLookup, CacheStore, history_cache_key, price_cache_key


# ============================================
# Upstream Parameters
# ============================================

UPSTREAM_INTERVALS = {
    HistoryInterval.HOURLY: "1h",
    HistoryInterval.DAILY: "1d",
}

MAX_KLINE_LIMIT = 1000

# Lighter request used once after a 429 on the primary fetch
DEGRADED_INTERVAL = "1d"
DEGRADED_LIMIT = 30

SYNTHETIC_POINT_COUNT = 12
SYNTHETIC_STEP_MS = 5 * MINUTE_MS

# Kline row layout: [open_time, open, high, low, close, volume, close_time, quote_volume, ...]
KLINE_OPEN_TIME = 0
KLINE_CLOSE = 4
KLINE_QUOTE_VOLUME = 7

RATE_LIMIT_WARNING = "Upstream rate limit hit, serving cached history."
REJECTED_WARNING = "Upstream rejected request, serving cached history. Set API_KEY if needed."
UNAVAILABLE_WARNING = "Upstream unavailable, serving cached history."
SYNTHETIC_WARNING = "Upstream rate limit hit, serving flat fallback from latest spot."
MOCK_WARNING = "MOCK_HISTORY enabled; serving demo data."


class HistoryStep(str, Enum):
    CACHE_CHECK = "cache_check"
    FETCH_PRIMARY = "fetch_primary"
    FETCH_DEGRADED = "fetch_degraded"
    STALE_FALLBACK = "stale_fallback"
    SYNTHETIC_FALLBACK = "synthetic_fallback"


@dataclass(frozen=True)
class HistoryRequest:
    """A /history request after symbol resolution and parameter mapping."""

    symbol: str
    ticker: str
    days: int
    interval: HistoryInterval
    upstream_interval: str
    limit: int

    @property
    def cache_key(self) -> str:
        return history_cache_key(self.ticker, self.days, self.interval.value)


@dataclass
class HistoryRun:
    """Mutable state carried between steps of one request."""

    request: HistoryRequest
    cached: Optional[CacheLookup] = None
    error: Optional[UpstreamError] = None


StepOutcome = Union[HistoryResponse, HistoryStep]


# ============================================
# Helpers
# ============================================

def build_request(symbol: str, days: int, interval: Optional[str]) -> HistoryRequest:
    """
    Resolve the symbol and map the public parameters to upstream ones.

    Raises:
        UnsupportedSymbol: Symbol not in the symbol table
    """
    symbol = (symbol or "BTC").strip().upper()
    ticker = resolve(symbol)
    days = max(int(days or 1), 1)
    interval = HistoryInterval.parse(interval)

    if interval == HistoryInterval.DAILY:
        limit = min(days, MAX_KLINE_LIMIT)
    else:
        limit = min(days * 24, MAX_KLINE_LIMIT)

    return HistoryRequest(
        symbol=symbol,
        ticker=ticker,
        days=days,
        interval=interval,
        upstream_interval=UPSTREAM_INTERVALS[interval],
        limit=limit,
    )


def transform_klines(rows: List[List[Any]]) -> Tuple[List[Point], Optional[float]]:
    """
    Convert raw kline rows to points and total quote volume.

    Each row contributes ``Point(t=open_time, price=close)``; quote volumes
    are summed. Volume is None when there are no rows.
    """
    points = [Point(t=int(row[KLINE_OPEN_TIME]), price=float(row[KLINE_CLOSE])) for row in rows]
    if not rows:
        return points, None
    volume = sum(
        float((row[KLINE_QUOTE_VOLUME] if len(row) > KLINE_QUOTE_VOLUME else 0) or 0)
        for row in rows
    )
    return points, volume


# ============================================
# History Service
# ============================================

class HistoryService:
    """
    Price history with multi-level fallback.

    Args:
        client: Upstream market data client
        cache: Store for HistoryPayload entries
        price_cache: PriceService's store, read for the synthetic fallback
        config: Settings providing HISTORY_CACHE_TTL_MS and HISTORY_API_BASE
        clock: Callable returning epoch ms
    """

    def __init__(
        self,
        client: UpstreamClient,
        cache: CacheStore,
        price_cache: CacheStore,
        config: Settings,
        clock: Clock = system_clock
    ):
        self.client = client
        self.cache = cache
        self.price_cache = price_cache
        self.config = config
        self.clock = clock
        self.logger = get_logger(__name__)

        self._steps = {
            HistoryStep.CACHE_CHECK: self._cache_check,
            HistoryStep.FETCH_PRIMARY: self._fetch_primary,
            HistoryStep.FETCH_DEGRADED: self._fetch_degraded,
            HistoryStep.STALE_FALLBACK: self._stale_fallback,
            HistoryStep.SYNTHETIC_FALLBACK: self._synthetic_fallback,
        }

    async def handle_history(self, symbol: str, days: int = 1, interval: Optional[str] = "hourly") -> HistoryResponse:
        """
        Run the state machine for one request.

        Raises:
            UnsupportedSymbol: Symbol not in the symbol table
            HistoryUnavailable: Upstream returned no rows
            UpstreamUnauthorized: 401 with no stale or synthetic fallback
            UpstreamRequestFailed: Any other failure with every fallback exhausted
        """
        run = HistoryRun(request=build_request(symbol, days, interval))
        step = HistoryStep.CACHE_CHECK

        while True:
            outcome = await self._steps[step](run)
            if isinstance(outcome, HistoryResponse):
                return outcome
            self.logger.debug(f"{run.request.cache_key}: {step.value} -> {outcome.value}")
            step = outcome

    # ============================================
    # Steps
    # ============================================

    async def _cache_check(self, run: HistoryRun) -> StepOutcome:
        run.cached = self.cache.get(run.request.cache_key, self.config.history_cache_ttl_ms)
        if run.cached and run.cached.fresh:
            return annotate(run.cached.payload, HistoryResponse, cached=True)
        return HistoryStep.FETCH_PRIMARY

    async def _fetch_primary(self, run: HistoryRun) -> StepOutcome:
        request = run.request
        try:
            return await self._fetch(run, request.upstream_interval, request.limit)
        except UpstreamError as e:
            run.error = e
            if e.is_rate_limited:
                self.logger.warning(f"Rate limited on klines for {request.ticker}; retrying with {DEGRADED_INTERVAL}/{DEGRADED_LIMIT}")
                return HistoryStep.FETCH_DEGRADED
            return HistoryStep.STALE_FALLBACK

    async def _fetch_degraded(self, run: HistoryRun) -> StepOutcome:
        try:
            return await self._fetch(run, DEGRADED_INTERVAL, DEGRADED_LIMIT)
        except UpstreamError as e:
            run.error = e
            return HistoryStep.STALE_FALLBACK

    async def _stale_fallback(self, run: HistoryRun) -> StepOutcome:
        error = run.error
        if run.cached:
            if error.is_rate_limited:
                warning = RATE_LIMIT_WARNING
            elif error.is_rejected:
                warning = REJECTED_WARNING
            else:
                warning = UNAVAILABLE_WARNING
            self.logger.warning(f"{run.request.cache_key}: serving stale history ({error.kind.value})")
            return annotate(run.cached.payload, HistoryResponse, cached=True, warning=warning)

        if error.is_rate_limited:
            return HistoryStep.SYNTHETIC_FALLBACK

        self._raise_exhausted(run)

    async def _synthetic_fallback(self, run: HistoryRun) -> StepOutcome:
        request = run.request
        spot = self.price_cache.get(price_cache_key(request.ticker, "USD"), self.config.cache_ttl_ms)
        if spot is None or not spot.payload.price:
            self._raise_exhausted(run)

        now = self.clock()
        price = spot.payload.price
        points = [
            Point(t=now - (SYNTHETIC_POINT_COUNT - 1 - idx) * SYNTHETIC_STEP_MS, price=price)
            for idx in range(SYNTHETIC_POINT_COUNT)
        ]
        self.logger.warning(f"{request.cache_key}: serving flat fallback at {price}")

        payload = HistoryPayload(
            symbol=request.symbol,
            days=request.days,
            interval=request.interval,
            points=points,
            volume24h=None,
            source=f"{self.config.history_api_base} (fallback)",
        )
        return annotate(payload, HistoryResponse, cached=True, warning=SYNTHETIC_WARNING)

    # ============================================
    # Internals
    # ============================================

    async def _fetch(self, run: HistoryRun, upstream_interval: str, limit: int) -> HistoryResponse:
        request = run.request
        rows = await self.client.fetch_klines(request.ticker, upstream_interval, limit)
        points, volume = transform_klines(rows)
        if not points:
            raise HistoryUnavailable(details={"symbol": request.symbol, "interval": upstream_interval})

        payload = HistoryPayload(
            symbol=request.symbol,
            days=request.days,
            interval=request.interval,
            points=points,
            volume24h=volume,
            source=(
                f"{self.config.history_api_base}"
                f"?symbol={request.ticker}&interval={upstream_interval}&limit={limit}"
            ),
        )
        self.cache.set(request.cache_key, payload)
        return annotate(payload, HistoryResponse, cached=False)

    def _raise_exhausted(self, run: HistoryRun) -> None:
        error = run.error
        self.logger.error(f"History request failed for {run.request.ticker}: {error} (status={error.status})")
        if error.status == 401:
            raise UpstreamUnauthorized(details=error.body)
        raise UpstreamRequestFailed.from_upstream(error, error="History request failed")


# ============================================
# Mock Variant
# ============================================

# (offset from now in ms, price)
MOCK_SERIES = (
    (4 * HOUR_MS, 86000.0),
    (3 * HOUR_MS, 86500.0),
    (2 * HOUR_MS, 86200.0),
    (1 * HOUR_MS, 87000.0),
    (30 * MINUTE_MS, 88500.0),
    (0, 88800.0),
)
MOCK_VOLUME = 2_500_000.0


class MockHistoryService:
    """
    Offline stand-in for HistoryService, enabled with MOCK_HISTORY=true.

    Symbols are still validated; everything else is a fixed demo series
    anchored at the current time. Upstream is never called.
    """

    def __init__(self, clock: Clock = system_clock):
        self.clock = clock
        self.logger = get_logger(__name__)

    async def handle_history(self, symbol: str, days: int = 1, interval: Optional[str] = "hourly") -> HistoryResponse:
        request = build_request(symbol, days, interval)
        now = self.clock()
        payload = HistoryPayload(
            symbol=request.symbol,
            days=request.days,
            interval=request.interval,
            points=[Point(t=now - offset, price=price) for offset, price in MOCK_SERIES],
            volume24h=MOCK_VOLUME,
            source="mock-history",
        )
        return annotate(payload, HistoryResponse, cached=True, warning=MOCK_WARNING)


def build_history_service(
    config: Settings,
    client: UpstreamClient,
    cache: CacheStore,
    price_cache: CacheStore,
    clock: Clock = system_clock
) -> Union[HistoryService, MockHistoryService]:
    """Pick the history implementation for this process."""
    if config.mock_history:
        get_logger(__name__).warning("MOCK_HISTORY enabled; history requests will not reach upstream")
        return MockHistoryService(clock=clock)
    return HistoryService(client, cache, price_cache, config, clock=clock)
