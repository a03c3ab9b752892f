"""
Storage Package

Handles caching of upstream responses.

Current implementation:
- In-memory TTL cache (one store for spot prices, one for history series)

Nothing is persisted; caches live for the lifetime of the process.
"""

from storage.cache import CacheStore, CacheLookup, price_cache_key, history_cache_key

__all__ = ["CacheStore", "CacheLookup", "price_cache_key", "history_cache_key"]
