"""
Symbol Resolution

Maps the public symbols accepted by the API (BTC, ETH, ...) to the trading
pair tickers understood by Binance (BTCUSDT, ETHUSDT, ...).
"""

from types import MappingProxyType
from typing import List

from core.errors import UnsupportedSymbol


SYMBOL_TABLE = MappingProxyType({
    "BTC": "BTCUSDT",
    "ETH": "ETHUSDT",
    "SOL": "SOLUSDT",
    "ASTER": "ASTRUSDT",
})


def resolve(symbol: str) -> str:
    """
    Resolve a public symbol to its upstream ticker.

    Args:
        symbol: Public symbol, any case (e.g., "btc", "BTC")

    Returns:
        Upstream ticker (e.g., "BTCUSDT")

    Raises:
        UnsupportedSymbol: If the symbol is not in the table
    """
    ticker = SYMBOL_TABLE.get((symbol or "").strip().upper())
    if ticker is None:
        raise UnsupportedSymbol(details={"symbol": symbol, "supported": supported_symbols()})
    return ticker


def supported_symbols() -> List[str]:
    return list(SYMBOL_TABLE.keys())
