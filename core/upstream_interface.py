"""
Upstream Interface — Abstract Contract for Market Data Providers

The price and history services talk to the provider only through this
interface, which keeps their fallback logic independent of any particular
HTTP client and lets tests inject scripted fakes.

Example:
    class BinanceSpotClient(UpstreamClient):
        async def fetch_price(self, ticker):
            ...

        async def fetch_klines(self, ticker, interval, limit):
            ...
"""

from abc import ABC, abstractmethod
from typing import Any, List


class UpstreamClient(ABC):
    """
    Abstract Base Class for upstream market data clients.

    Abstract Methods (MUST be implemented by all providers):
        - fetch_price: Current spot price for a ticker
        - fetch_klines: Raw kline rows for a ticker/interval
    """

    @abstractmethod
    async def fetch_price(self, ticker: str) -> float:
        """
        Fetch the current spot price.

        Args:
            ticker: Upstream ticker (e.g., "BTCUSDT")

        Returns:
            float: Current price in the quote currency

        Raises:
            UpstreamError: On HTTP failure, timeout or connection error
            PriceUnavailable: If upstream answered without a price
        """
        ...

    @abstractmethod
    async def fetch_klines(self, ticker: str, interval: str, limit: int) -> List[List[Any]]:
        """
        Fetch raw kline rows.

        Args:
            ticker: Upstream ticker (e.g., "BTCUSDT")
            interval: Provider-native interval (e.g., "1h", "1d")
            limit: Maximum number of rows

        Returns:
            List of rows ``[open_time, open, high, low, close, volume,
            close_time, quote_volume, ...]`` ordered oldest first

        Raises:
            UpstreamError: On HTTP failure, timeout or connection error
        """
        ...
