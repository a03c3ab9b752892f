"""
In-Memory TTL Cache

A key -> (payload, written_at) map. Freshness is decided at read time from a
TTL supplied by the caller, so the same store type backs both the price cache
(short TTL) and the history cache (long TTL).

Stale entries are never dropped on read: fallback paths still need them when
upstream is rate limiting. Entries only leave the store through ``clear()``
or, when ``max_entries`` is set, least-recently-used eviction.

Concurrency:
    The service runs on a single asyncio event loop and neither ``get`` nor
    ``set`` awaits, so each call is atomic with respect to other requests.
    There is no request coalescing; concurrent misses both fetch upstream and
    the last write wins.

Usage:
    cache = CacheStore(clock=system_clock)
    cache.set(price_cache_key("BTCUSDT", "USD"), payload)
    lookup = cache.get(price_cache_key("BTCUSDT", "USD"), ttl_ms=60_000)
    if lookup and lookup.fresh:
        ...
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Optional

from core.logging import get_logger
from core.utils.time import Clock, system_clock


@dataclass(frozen=True)
class CacheEntry:
    payload: Any
    written_at: int


@dataclass(frozen=True)
class CacheLookup:
    """Result of a cache read: the payload plus its freshness classification."""

    payload: Any
    fresh: bool
    written_at: int


# ============================================
# Key Builders
# ============================================

def price_cache_key(ticker: str, currency: str) -> str:
    return f"{ticker}:{currency.upper()}"


def history_cache_key(ticker: str, days: int, interval: str, currency: str = "usd") -> str:
    return f"{ticker}:{currency.lower()}:{days}:{interval}"


# ============================================
# Cache Store
# ============================================

class CacheStore:
    """
    Process-local TTL cache.

    Args:
        clock: Callable returning epoch milliseconds
        max_entries: Capacity bound; 0 keeps every entry for the process lifetime
        name: Label used in log messages
    """

    def __init__(self, clock: Clock = system_clock, max_entries: int = 0, name: str = "cache"):
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._clock = clock
        self._max_entries = max_entries
        self._name = name
        self._logger = get_logger(__name__)

    def get(self, key: str, ttl_ms: int) -> Optional[CacheLookup]:
        """
        Read an entry and classify it against ``ttl_ms``.

        Returns:
            CacheLookup, or None on a miss. Stale entries are returned with
            ``fresh=False``.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._max_entries:
            self._entries.move_to_end(key)

        age = self._clock() - entry.written_at
        return CacheLookup(payload=entry.payload, fresh=age < ttl_ms, written_at=entry.written_at)

    def set(self, key: str, payload: Any) -> None:
        """Store ``payload`` under ``key``, replacing any previous entry."""
        now = self._clock()
        previous = self._entries.get(key)
        # written_at never moves backwards for a key, even if the clock does
        if previous is not None and previous.written_at > now:
            now = previous.written_at

        self._entries[key] = CacheEntry(payload=payload, written_at=now)
        self._entries.move_to_end(key)

        if self._max_entries and len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self._logger.debug(f"{self._name}: evicted '{evicted}' (max_entries={self._max_entries})")

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
