"""
Configuration Management Module

This module handles loading, validating, and providing access to application configuration
from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Upstream endpoints are overridable (PRICE_API_BASE, HISTORY_API_BASE, ...)
- Cache TTLs are expressed in milliseconds (CACHE_TTL_MS, HISTORY_CACHE_TTL_MS)
- MOCK_HISTORY switches the history endpoint to a fixed demo series

Usage:
    from core.config import settings

    print(settings.price_api_base)
    print(settings.cache_ttl_ms)
"""

from typing import List
from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """
    Application Settings

    Values are automatically loaded from environment variables or .env file.

    Attributes:
        price_api_base: Spot ticker price endpoint
        avg_price_api_base: Average price endpoint (secondary price source)
        history_api_base: Kline (candlestick) endpoint
        api_key: Optional upstream API key (not needed for public endpoints)
        cache_ttl_ms: Freshness window for cached spot prices
        history_cache_ttl_ms: Freshness window for cached history series
        cache_max_entries: Per-cache capacity bound (0 = unbounded)
        request_timeout_ms: Timeout for each upstream HTTP call
        mock_history: Serve the demo history series instead of calling upstream
        app_host: Host address for the server
        port: Port number for the server
        log_level: Logging level
        cors_origins: Comma-separated list of allowed CORS origins
    """

    # ============================================
    # Upstream Configuration
    # ============================================

    price_api_base: str = Field(
        default="https://api.binance.com/api/v3/ticker/price",
        description="Binance spot ticker price endpoint"
    )

    avg_price_api_base: str = Field(
        default="https://api.binance.com/api/v3/avgPrice",
        description="Binance average price endpoint, used when the ticker endpoint fails"
    )

    history_api_base: str = Field(
        default="https://api.binance.com/api/v3/klines",
        description="Binance spot klines endpoint"
    )

    api_key: str = Field(
        default="",
        description="Upstream API key (optional, unused by Binance public endpoints)"
    )

    request_timeout_ms: int = Field(
        default=5000,
        description="Upstream HTTP request timeout in milliseconds"
    )

    # ============================================
    # Caching Configuration
    # ============================================

    cache_ttl_ms: int = Field(
        default=60_000,
        description="Spot price cache TTL in milliseconds"
    )

    history_cache_ttl_ms: int = Field(
        default=300_000,
        description="History cache TTL in milliseconds"
    )

    cache_max_entries: int = Field(
        default=0,
        description="Maximum entries per cache before LRU eviction (0 = unbounded)"
    )

    mock_history: bool = Field(
        default=False,
        description="Serve a fixed demo series from /history (offline development)"
    )

    # ============================================
    # Application Configuration
    # ============================================

    app_host: str = Field(
        default="0.0.0.0",
        description="Server host address"
    )

    port: int = Field(
        default=5000,
        description="Server port"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins"
    )

    # ============================================
    # Pydantic Settings Configuration
    # ============================================

    model_config = SettingsConfigDict(
        # Look for .env file in the project root
        env_file=".env",
        # Ignore extra fields in .env that aren't defined here
        extra="ignore",
        # Case-insensitive environment variable matching
        case_sensitive=False
    )

    # ============================================
    # Custom Properties
    # ============================================

    @property
    def request_timeout_seconds(self) -> float:
        """Upstream timeout converted for aiohttp.ClientTimeout."""
        return self.request_timeout_ms / 1000.0

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Convert comma-separated CORS origins string to a list.

        Example:
            >>> settings.cors_origins_list
            ['http://localhost:3000', 'http://localhost:5173']
        """
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def get_upstream_headers(self) -> dict:
        """
        Get HTTP headers for upstream requests.

        Note:
            Binance public endpoints don't require authentication; the key
            header is only attached when API_KEY is configured.
        """
        headers = {
            "Accept": "application/json",
            "User-Agent": "Z6X-Market-Data-Python/1.0",
        }

        if self.api_key:
            headers["X-MBX-APIKEY"] = self.api_key

        return headers


# ============================================
# Global Settings Instance
# ============================================

# Create a single instance of settings to be imported throughout the application
settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration(config: Settings = None) -> None:
    """
    Validate critical configuration settings on application startup.

    Args:
        config: Settings to validate (defaults to the global instance)

    Raises:
        ValueError: If configuration is invalid
    """
    # Import logger here to avoid circular import
    # (logging.py imports config.py, so we can't import at module level)
    from core.logging import logger

    config = config or settings

    for name in ("price_api_base", "avg_price_api_base", "history_api_base"):
        url = getattr(config, name)
        if urlparse(url).scheme not in ("http", "https"):
            raise ValueError(f"{name.upper()} must be an http(s) URL, got '{url}'")

    for name in ("cache_ttl_ms", "history_cache_ttl_ms", "request_timeout_ms"):
        if getattr(config, name) <= 0:
            raise ValueError(f"{name.upper()} must be positive, got {getattr(config, name)}")

    if config.cache_max_entries < 0:
        raise ValueError(f"CACHE_MAX_ENTRIES cannot be negative, got {config.cache_max_entries}")

    if not (1 <= config.port <= 65535):
        raise ValueError(f"Invalid port number: {config.port}. Must be between 1 and 65535")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{config.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    logger.info("Configuration validated successfully")
    logger.info(f"Price API: {config.price_api_base} (fallback: {config.avg_price_api_base})")
    logger.info(f"History API: {config.history_api_base}")
    logger.info(f"Cache TTL: price={config.cache_ttl_ms}ms history={config.history_cache_ttl_ms}ms")
    logger.info(f"Cache bound: {config.cache_max_entries or 'unbounded'}")
    if config.mock_history:
        logger.warning("MOCK_HISTORY enabled; /history serves demo data")
