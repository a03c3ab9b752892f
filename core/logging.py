"""
Unified Logging Configuration

This module sets up a centralized logging system for the entire application.
All modules should import and use the logger from this module instead of
using print() statements.

Usage:
    from core.logging import logger

    logger.info("General informational messages")
    logger.warning("Serving stale history for BTCUSDT")

Log Levels used by this service:
    DEBUG    - Upstream requests/responses, cache hits
    INFO     - Startup, configuration summary
    WARNING  - Fallbacks (avgPrice endpoint, degraded klines, stale cache, synthetic series)
    ERROR    - Upstream failures surfaced to callers

Configuration:
    Log level is controlled by the LOG_LEVEL setting in .env file and
    re-applied by the app lifespan for the settings the app was built with.
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s %(message)s"


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        logging.Logger: Configured logger instance

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Application started")
        2024-01-01 12:00:00 [INFO] quoteproxy: Application started
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger("quoteproxy")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    return logger


# ============================================
# Initialize Logger with Settings
# ============================================

try:
    from core.config import settings
    log_level = settings.log_level if hasattr(settings, 'log_level') else "INFO"
except ImportError:
    log_level = "INFO"

# Create the global logger instance
logger = setup_logging(log_level=log_level)


# ============================================
# Convenience Functions
# ============================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module or component.

    Args:
        name: Name for the logger (typically __name__)

    Returns:
        logging.Logger: Logger instance for the specified name

    Example:
        # In services/history_service.py:
        from core.logging import get_logger
        logger = get_logger(__name__)  # Creates "quoteproxy.services.history_service"
    """
    return logging.getLogger(f"quoteproxy.{name}")


def set_log_level(level: str) -> None:
    """
    Change the log level at runtime.

    Args:
        level: New log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))


# ============================================
# Log Helper Functions
# ============================================

def log_api_request(provider: str, endpoint: str, params: dict = None) -> None:
    """
    Log an upstream API request with consistent formatting.

    Example:
        >>> log_api_request("binance", "/api/v3/klines", {"symbol": "BTCUSDT", "interval": "1h"})
        [DEBUG] API Request: binance /api/v3/klines | Params: {'symbol': 'BTCUSDT', 'interval': '1h'}
    """
    if params:
        logger.debug(f"API Request: {provider} {endpoint} | Params: {params}")
    else:
        logger.debug(f"API Request: {provider} {endpoint}")


def log_api_response(provider: str, endpoint: str, status: Optional[int], response_time: float = None) -> None:
    """
    Log an upstream API response with status and timing information.

    A status of None means no response was received (timeout, connection error).

    Example:
        >>> log_api_response("binance", "/api/v3/klines", 200, 0.342)
        [DEBUG] API Response: binance /api/v3/klines | Status: 200 | Time: 0.342s
    """
    time_str = f" | Time: {response_time:.3f}s" if response_time else ""
    status_str = status if status is not None else "no response"
    logger.debug(f"API Response: {provider} {endpoint} | Status: {status_str}{time_str}")


logger.debug("Logging system initialized")
