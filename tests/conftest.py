"""
Shared fixtures for the unit tests.
"""

import pytest

from core.config import Settings
from storage.cache import CacheStore
from tests.fakes import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    """Default settings, ignoring any local .env file."""
    return Settings(_env_file=None, mock_history=False, cache_max_entries=0)


@pytest.fixture
def price_cache(clock):
    return CacheStore(clock=clock, name="price-cache")


@pytest.fixture
def history_cache(clock):
    return CacheStore(clock=clock, name="history-cache")
