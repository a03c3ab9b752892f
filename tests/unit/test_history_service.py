"""
Unit Tests for HistoryService

These tests walk each state of the history state machine with a scripted
upstream and a pinned clock.

Run with:
    pytest tests/unit/test_history_service.py -v
"""

import pytest

from core.errors import (
    HistoryUnavailable,
    UnsupportedSymbol,
    UpstreamErrorKind,
    UpstreamRequestFailed,
    UpstreamUnauthorized,
)
from core.schemas import HistoryInterval, HistoryPayload, Point, PricePayload
from services.history_service import (
    MOCK_WARNING,
    RATE_LIMIT_WARNING,
    REJECTED_WARNING,
    SYNTHETIC_WARNING,
    UNAVAILABLE_WARNING,
    HistoryService,
    MockHistoryService,
    build_history_service,
    build_request,
    transform_klines,
)
from storage.cache import price_cache_key
from tests.fakes import T0, ScriptedUpstream, kline_row, upstream_error


ROWS = [kline_row(T0 - 3_600_000, 87000.5, 1000.0), kline_row(T0, 88000.0, 2500.5)]


@pytest.fixture
def make_service(history_cache, price_cache, config, clock):
    def factory(upstream):
        return HistoryService(upstream, history_cache, price_cache, config, clock=clock)
    return factory


def seed_history(history_cache, price=70000.0):
    history_cache.set(
        "BTCUSDT:usd:1:hourly",
        HistoryPayload(
            symbol="BTC",
            days=1,
            interval=HistoryInterval.HOURLY,
            points=[Point(t=T0 - 1, price=price)],
            volume24h=10.0,
            source="seed",
        ),
    )


def seed_spot(price_cache, price=88000.0):
    price_cache.set(
        price_cache_key("BTCUSDT", "USD"),
        PricePayload(symbol="BTC", currency="USD", price=price, source="seed", timestamp=T0),
    )


# ============================================
# Request Mapping
# ============================================

class TestBuildRequest:

    def test_hourly_limit_is_days_times_24(self):
        request = build_request("BTC", 2, "hourly")
        assert request.upstream_interval == "1h"
        assert request.limit == 48

    def test_daily_limit_is_days(self):
        request = build_request("eth", 30, "daily")
        assert request.ticker == "ETHUSDT"
        assert request.upstream_interval == "1d"
        assert request.limit == 30

    def test_limit_capped_at_1000(self):
        assert build_request("BTC", 365, "hourly").limit == 1000
        assert build_request("BTC", 5000, "daily").limit == 1000

    def test_unknown_interval_defaults_to_hourly(self):
        request = build_request("BTC", 1, "weekly")
        assert request.interval == HistoryInterval.HOURLY
        assert request.upstream_interval == "1h"

    def test_cache_key(self):
        assert build_request("BTC", 7, "daily").cache_key == "BTCUSDT:usd:7:daily"

    def test_unknown_symbol(self):
        with pytest.raises(UnsupportedSymbol):
            build_request("DOGE", 1, "hourly")


class TestTransformKlines:

    def test_rows_become_points_and_volume(self):
        """[[t0,_,_,_,c0,_,_,q0],[t1,_,_,_,c1,_,_,q1]] -> points and q0+q1"""
        points, volume = transform_klines(ROWS)

        assert points == [Point(t=T0 - 3_600_000, price=87000.5), Point(t=T0, price=88000.0)]
        assert volume == 3500.5

    def test_empty_rows(self):
        assert transform_klines([]) == ([], None)

    def test_short_rows_count_zero_volume(self):
        points, volume = transform_klines([[T0, "0", "0", "0", "88000.0"]])

        assert points == [Point(t=T0, price=88000.0)]
        assert volume == 0.0


# ============================================
# Cache Check / Primary Fetch
# ============================================

class TestPrimaryPath:

    @pytest.mark.asyncio
    async def test_fetch_success_caches_payload(self, make_service, history_cache, config):
        upstream = ScriptedUpstream(klines=[ROWS])
        service = make_service(upstream)

        result = await service.handle_history("BTC", 1, "hourly")

        assert result.cached is False
        assert result.warning is None
        assert [p.price for p in result.points] == [87000.5, 88000.0]
        assert result.volume24h == 3500.5
        assert result.source == f"{config.history_api_base}?symbol=BTCUSDT&interval=1h&limit=24"
        assert upstream.klines_calls == [("BTCUSDT", "1h", 24)]
        assert "BTCUSDT:usd:1:hourly" in history_cache

    @pytest.mark.asyncio
    async def test_fresh_cache_skips_upstream(self, make_service, config, clock):
        upstream = ScriptedUpstream(klines=[ROWS])
        service = make_service(upstream)

        await service.handle_history("BTC", 1, "hourly")
        clock.advance(config.history_cache_ttl_ms - 1)
        result = await service.handle_history("BTC", 1, "hourly")

        assert result.cached is True
        assert len(upstream.klines_calls) == 1

    @pytest.mark.asyncio
    async def test_stale_cache_refetches(self, make_service, config, clock):
        upstream = ScriptedUpstream(klines=[ROWS, ROWS[:1]])
        service = make_service(upstream)

        await service.handle_history("BTC", 1, "hourly")
        clock.advance(config.history_cache_ttl_ms)
        result = await service.handle_history("BTC", 1, "hourly")

        assert result.cached is False
        assert len(result.points) == 1
        assert len(upstream.klines_calls) == 2

    @pytest.mark.asyncio
    async def test_empty_series_is_unavailable(self, make_service, history_cache):
        service = make_service(ScriptedUpstream(klines=[[]]))

        with pytest.raises(HistoryUnavailable) as exc_info:
            await service.handle_history("BTC", 1, "hourly")

        assert exc_info.value.status_code == 502
        assert len(history_cache) == 0

    @pytest.mark.asyncio
    async def test_unknown_symbol_short_circuits(self, make_service):
        upstream = ScriptedUpstream()
        service = make_service(upstream)

        with pytest.raises(UnsupportedSymbol):
            await service.handle_history("DOGE", 1, "hourly")
        assert upstream.klines_calls == []


# ============================================
# Degraded Retry
# ============================================

class TestDegradedFetch:

    @pytest.mark.asyncio
    async def test_rate_limit_retries_with_daily_30(self, make_service, config):
        upstream = ScriptedUpstream(klines=[upstream_error(429), ROWS])
        service = make_service(upstream)

        result = await service.handle_history("BTC", 1, "hourly")

        assert result.cached is False
        assert upstream.klines_calls == [("BTCUSDT", "1h", 24), ("BTCUSDT", "1d", 30)]
        assert result.source.endswith("interval=1d&limit=30")
        assert result.interval == HistoryInterval.HOURLY

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403, 500])
    async def test_other_failures_skip_retry(self, make_service, history_cache, config, clock, status):
        seed_history(history_cache)
        clock.advance(config.history_cache_ttl_ms)
        upstream = ScriptedUpstream(klines=[upstream_error(status)])
        service = make_service(upstream)

        await service.handle_history("BTC", 1, "hourly")

        assert len(upstream.klines_calls) == 1


# ============================================
# Stale Fallback
# ============================================

class TestStaleFallback:

    @pytest.mark.asyncio
    async def test_persistent_rate_limit_serves_stale(self, make_service, history_cache, config, clock):
        seed_history(history_cache)
        clock.advance(10 * config.history_cache_ttl_ms)
        service = make_service(ScriptedUpstream(klines=[upstream_error(429)]))

        result = await service.handle_history("BTC", 1, "hourly")

        assert result.cached is True
        assert result.warning == RATE_LIMIT_WARNING
        assert result.points == [Point(t=T0 - 1, price=70000.0)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_rejection_serves_stale(self, make_service, history_cache, config, clock, status):
        seed_history(history_cache)
        clock.advance(10 * config.history_cache_ttl_ms)
        service = make_service(ScriptedUpstream(klines=[upstream_error(status)]))

        result = await service.handle_history("BTC", 1, "hourly")

        assert result.cached is True
        assert result.warning == REJECTED_WARNING

    @pytest.mark.asyncio
    async def test_timeout_serves_stale(self, make_service, history_cache, config, clock):
        seed_history(history_cache)
        clock.advance(10 * config.history_cache_ttl_ms)
        error = upstream_error(None, kind=UpstreamErrorKind.TIMEOUT)
        service = make_service(ScriptedUpstream(klines=[error]))

        result = await service.handle_history("BTC", 1, "hourly")

        assert result.warning == UNAVAILABLE_WARNING


# ============================================
# Synthetic Fallback
# ============================================

class TestSyntheticFallback:

    @pytest.mark.asyncio
    async def test_flat_series_from_spot(self, make_service, price_cache, config):
        seed_spot(price_cache, 88000.0)
        service = make_service(ScriptedUpstream(klines=[upstream_error(429)]))

        result = await service.handle_history("BTC", 1, "hourly")

        assert len(result.points) == 12
        assert all(p.price == 88000.0 for p in result.points)
        assert result.points[-1].t == T0
        assert [b.t - a.t for a, b in zip(result.points, result.points[1:])] == [300_000] * 11
        assert result.volume24h is None
        assert result.cached is True
        assert result.warning == SYNTHETIC_WARNING
        assert result.source == f"{config.history_api_base} (fallback)"

    @pytest.mark.asyncio
    async def test_synthetic_series_not_cached(self, make_service, price_cache, history_cache):
        seed_spot(price_cache)
        service = make_service(ScriptedUpstream(klines=[upstream_error(429)]))

        await service.handle_history("BTC", 1, "hourly")

        assert len(history_cache) == 0

    @pytest.mark.asyncio
    async def test_no_spot_surfaces_429(self, make_service):
        service = make_service(ScriptedUpstream(klines=[upstream_error(429, {"msg": "Too many requests"})]))

        with pytest.raises(UpstreamRequestFailed) as exc_info:
            await service.handle_history("BTC", 1, "hourly")

        assert exc_info.value.status_code == 429
        assert exc_info.value.error == "History request failed"
        assert exc_info.value.details == {"msg": "Too many requests"}

    @pytest.mark.asyncio
    async def test_spot_for_other_ticker_ignored(self, make_service, price_cache):
        price_cache.set(
            price_cache_key("ETHUSDT", "USD"),
            PricePayload(symbol="ETH", currency="USD", price=3000.0, source="seed", timestamp=T0),
        )
        service = make_service(ScriptedUpstream(klines=[upstream_error(429)]))

        with pytest.raises(UpstreamRequestFailed):
            await service.handle_history("BTC", 1, "hourly")

    @pytest.mark.asyncio
    async def test_synthetic_only_after_rate_limit(self, make_service, price_cache):
        seed_spot(price_cache)
        service = make_service(ScriptedUpstream(klines=[upstream_error(503)]))

        with pytest.raises(UpstreamRequestFailed) as exc_info:
            await service.handle_history("BTC", 1, "hourly")
        assert exc_info.value.status_code == 503


# ============================================
# Terminal Errors
# ============================================

class TestTerminalErrors:

    @pytest.mark.asyncio
    async def test_unauthorized_reported_distinctly(self, make_service):
        service = make_service(ScriptedUpstream(klines=[upstream_error(401, {"msg": "bad key"})]))

        with pytest.raises(UpstreamUnauthorized) as exc_info:
            await service.handle_history("BTC", 1, "hourly")

        assert exc_info.value.status_code == 401
        assert exc_info.value.details == {"msg": "bad key"}

    @pytest.mark.asyncio
    async def test_forbidden_passes_status_through(self, make_service):
        service = make_service(ScriptedUpstream(klines=[upstream_error(403)]))

        with pytest.raises(UpstreamRequestFailed) as exc_info:
            await service.handle_history("BTC", 1, "hourly")
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_service_recovers_after_failure(self, make_service):
        upstream = ScriptedUpstream(klines=[upstream_error(500), ROWS])
        service = make_service(upstream)

        with pytest.raises(UpstreamRequestFailed):
            await service.handle_history("BTC", 1, "hourly")
        result = await service.handle_history("BTC", 1, "hourly")

        assert result.cached is False


# ============================================
# Mock Mode
# ============================================

class TestMockMode:

    @pytest.mark.asyncio
    async def test_mock_series(self, clock):
        service = MockHistoryService(clock=clock)

        result = await service.handle_history("BTC", 1, "hourly")

        assert result.source == "mock-history"
        assert [p.price for p in result.points] == [86000.0, 86500.0, 86200.0, 87000.0, 88500.0, 88800.0]
        assert result.points[0].t == T0 - 4 * 3_600_000
        assert result.points[-1].t == T0
        assert result.volume24h == 2_500_000
        assert result.cached is True
        assert result.warning == MOCK_WARNING

    @pytest.mark.asyncio
    async def test_mock_still_validates_symbol(self, clock):
        with pytest.raises(UnsupportedSymbol):
            await MockHistoryService(clock=clock).handle_history("DOGE", 1, "hourly")

    def test_factory_selects_variant(self, config, history_cache, price_cache, clock):
        upstream = ScriptedUpstream()
        mock_config = config.model_copy(update={"mock_history": True})

        assert isinstance(build_history_service(mock_config, upstream, history_cache, price_cache, clock), MockHistoryService)
        assert isinstance(build_history_service(config, upstream, history_cache, price_cache, clock), HistoryService)
