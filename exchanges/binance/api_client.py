"""
Binance Spot REST API Client

This module provides an async HTTP client for the two Binance public spot
endpoints this service depends on:
- Spot price (``/api/v3/ticker/price``), with ``/api/v3/avgPrice`` as a
  single fixed fallback
- Klines (``/api/v3/klines``)

Unlike a general purpose client it does NOT retry on rate limits. Every
failure is raised as ``UpstreamError`` carrying the HTTP status and raw body,
and the calling service decides what to fall back to (stale cache, degraded
request, synthetic series).

API Documentation:
    https://binance-docs.github.io/apidocs/spot/en/

Usage:
    async with BinanceSpotClient() as client:
        price = await client.fetch_price("BTCUSDT")
        rows = await client.fetch_klines("BTCUSDT", "1h", limit=24)
"""

import asyncio
import json
import time
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import aiohttp

from core.config import Settings, settings as default_settings
from core.errors import PriceUnavailable, UpstreamError, UpstreamErrorKind
from core.logging import get_logger, log_api_request, log_api_response
from core.upstream_interface import UpstreamClient


class PriceEndpoint(str, Enum):
    """Ordered chain of endpoints tried by ``fetch_price``."""

    TICKER_PRICE = "ticker_price"
    AVG_PRICE = "avg_price"


PRICE_ENDPOINT_CHAIN = (PriceEndpoint.TICKER_PRICE, PriceEndpoint.AVG_PRICE)

# Field names carrying the price across the ticker and avgPrice responses
PRICE_FIELDS = ("price", "priceAvg", "avgPrice")


class BinanceSpotClient(UpstreamClient):
    """
    Async HTTP client for Binance spot market data.

    Attributes:
        config: Settings holding endpoint URLs, timeout and headers
        session: aiohttp ClientSession for HTTP requests
        logger: Logger instance for debugging

    Example:
        >>> async with BinanceSpotClient() as client:
        ...     rows = await client.fetch_klines("BTCUSDT", "1d", limit=30)
        ...     print(f"Fetched {len(rows)} klines")

    Notes:
        - Uses context manager for automatic session cleanup
        - One fixed timeout per request (REQUEST_TIMEOUT_MS, 5000 ms default)
        - No API key needed for public endpoints
    """

    PROVIDER = "binance"

    def __init__(self, config: Optional[Settings] = None):
        """
        Initialize the client.

        Args:
            config: Settings to read endpoints/timeout from (defaults to global settings)
        """
        self.config = config or default_settings
        self.logger = get_logger(__name__)
        self.session: Optional[aiohttp.ClientSession] = None

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        self.session = aiohttp.ClientSession(headers=self.config.get_upstream_headers())
        self.logger.debug("BinanceSpotClient session created")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.debug("BinanceSpotClient session closed")

    # ============================================
    # HTTP Request Handler
    # ============================================

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Make a single GET request and return the decoded JSON body.

        Args:
            url: Absolute endpoint URL
            params: Optional query parameters

        Returns:
            JSON response from API

        Raises:
            UpstreamError: Non-200 status (kind derived from status), timeout
                (kind=TIMEOUT) or connection failure (kind=UNAVAILABLE)
        """
        if not self.session:
            raise RuntimeError("Client session not initialized. Use 'async with' statement.")

        path = urlparse(url).path or url
        log_api_request(self.PROVIDER, path, params)
        started = time.monotonic()

        try:
            async with self.session.get(
                url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout_seconds)
            ) as resp:
                text = await resp.text(errors="replace")
                log_api_response(self.PROVIDER, path, resp.status, time.monotonic() - started)

                if resp.status == 200:
                    try:
                        return json.loads(text)
                    except ValueError:
                        raise UpstreamError(f"Malformed JSON on {path}", body=text, kind=UpstreamErrorKind.UNAVAILABLE)

                body = _decode_body(text)
                self.logger.warning(f"HTTP {resp.status} on {path}: {body}")
                raise UpstreamError(f"HTTP {resp.status} on {path}", status=resp.status, body=body)

        except asyncio.TimeoutError:
            log_api_response(self.PROVIDER, path, None, time.monotonic() - started)
            self.logger.warning(f"Timeout on {path} after {self.config.request_timeout_ms}ms")
            raise UpstreamError(f"Timeout on {path}", kind=UpstreamErrorKind.TIMEOUT)

        except aiohttp.ClientError as e:
            log_api_response(self.PROVIDER, path, None, time.monotonic() - started)
            self.logger.warning(f"Request failed on {path}: {e}")
            raise UpstreamError(f"Request failed on {path}: {e}", kind=UpstreamErrorKind.UNAVAILABLE)

    # ============================================
    # API Methods
    # ============================================

    def price_url(self, endpoint: PriceEndpoint) -> str:
        if endpoint == PriceEndpoint.AVG_PRICE:
            return self.config.avg_price_api_base
        return self.config.price_api_base

    async def fetch_price(self, ticker: str) -> float:
        """
        Fetch the current spot price for a ticker.

        Walks ``PRICE_ENDPOINT_CHAIN``: the ticker price endpoint first, then
        the average price endpoint once if the first call fails for any reason.

        Args:
            ticker: Trading pair (e.g., "BTCUSDT")

        Returns:
            Price as float

        Raises:
            UpstreamError: If every endpoint in the chain failed (the last
                endpoint's error is raised)
            PriceUnavailable: If upstream answered without a usable price

        Response Formats:
            /api/v3/ticker/price -> {"symbol": "BTCUSDT", "price": "88000.01"}
            /api/v3/avgPrice     -> {"mins": 5, "price": "87990.12", "closeTime": ...}
        """
        params = {"symbol": ticker.upper()}
        last_error: Optional[UpstreamError] = None

        for endpoint in PRICE_ENDPOINT_CHAIN:
            if last_error is not None:
                self.logger.warning(
                    f"Price fetch for {ticker} failed ({last_error.kind.value}); trying {endpoint.value}"
                )
            try:
                data = await self._get(self.price_url(endpoint), params)
            except UpstreamError as e:
                last_error = e
                continue
            return extract_price(data)

        raise last_error

    async def fetch_klines(self, ticker: str, interval: str, limit: int) -> List[List[Any]]:
        """
        Fetch raw kline rows.

        Args:
            ticker: Trading pair (e.g., "BTCUSDT")
            interval: Binance interval ("1h", "1d", ...)
            limit: Number of rows (caller clamps to the upstream maximum)

        Returns:
            Raw rows, oldest first

        Response Format:
            [
              [
                1499040000000,      // Open time
                "0.01634000",       // Open
                "0.80000000",       // High
                "0.01575800",       // Low
                "0.01577100",       // Close
                "148976.11427815",  // Volume
                1499644799999,      // Close time
                "2434.19055334",    // Quote asset volume
                308,                // Number of trades
                ...
              ]
            ]
        """
        params = {"symbol": ticker.upper(), "interval": interval, "limit": limit}

        self.logger.info(f"Fetching klines: {ticker} {interval} (limit={limit})")
        data = await self._get(self.config.history_api_base, params)
        rows = data or []
        self.logger.info(f"Fetched {len(rows)} klines for {ticker}")
        return rows


# ============================================
# Response Helpers
# ============================================

def extract_price(data: Any) -> float:
    """Pull the first usable price field out of a ticker/avgPrice body."""
    if isinstance(data, dict):
        for field in PRICE_FIELDS:
            value = data.get(field)
            if value in (None, ""):
                continue
            try:
                return float(value)
            except (TypeError, ValueError):
                continue
    raise PriceUnavailable(details=data)


def _decode_body(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return text
