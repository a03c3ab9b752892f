"""
Binance Connector

Async client for the Binance public spot REST endpoints (ticker price,
average price, klines).
"""

from exchanges.binance.api_client import BinanceSpotClient, PriceEndpoint, PRICE_ENDPOINT_CHAIN

__all__ = ["BinanceSpotClient", "PriceEndpoint", "PRICE_ENDPOINT_CHAIN"]
