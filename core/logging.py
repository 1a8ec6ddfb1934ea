"""
Unified Logging Configuration

This module sets up a centralized logging system for the client package.
All modules should import and use the logger from this module instead of
using print() statements.

Usage:
    from core.logging import logger, get_logger

    logger.info("General informational messages")

    # Per-module logger ("paradex.exchanges.paradex.ws_client")
    log = get_logger(__name__)
    log.debug("Detailed debugging information")

Log Levels (from most to least verbose):
    DEBUG    - Raw frames, request parameters, auth headers
    INFO     - Connections, subscriptions, JWT refreshes
    WARNING  - Unparseable frames, unknown identifiers, reconnects
    ERROR    - Failed sends, failed re-authentication
    CRITICAL - Unused

Configuration:
    Log level is controlled by the LOG_LEVEL setting in .env file.
"""

import logging
import sys
from typing import Optional

from core.config import settings


ROOT_LOGGER_NAME = "paradex"


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    include_timestamp: bool = True,
    include_module: bool = True
) -> logging.Logger:
    """
    Configure and return the package logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string (uses default if None)
        include_timestamp: Include timestamp in log messages
        include_module: Include module name in log messages

    Returns:
        logging.Logger: Configured logger instance

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Client started")
        2025-01-21 12:00:00 [INFO] paradex Client started
    """
    # Build log format string
    if log_format is None:
        format_parts = []

        if include_timestamp:
            format_parts.append("%(asctime)s")  # 2025-01-21 12:00:00

        # Always include log level
        format_parts.append("[%(levelname)s]")

        if include_module:
            format_parts.append("%(name)s")  # paradex.<module>

        format_parts.append("%(message)s")

        log_format = " ".join(format_parts)

    # Configure the root handler; force replaces any earlier configuration
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True
    )

    # Package logger carries its own level so set_log_level affects only it
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    return logger


# ============================================
# Initialize Logger with Settings
# ============================================

# LOG_LEVEL from .env / environment
logger = setup_logging(log_level=settings.log_level)


# ============================================
# Convenience Functions
# ============================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger for a specific module.

    Args:
        name: Name for the logger (typically __name__)

    Returns:
        logging.Logger: Logger instance named "paradex.<name>"

    Example:
        >>> get_logger("exchanges.paradex.api_client").name
        'paradex.exchanges.paradex.api_client'
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_log_level(level: str) -> None:
    """
    Change the log level at runtime.

    Args:
        level: New log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))


# ============================================
# Log Helper Functions
# ============================================

def log_api_request(method: str, endpoint: str, params: dict = None) -> None:
    """
    Log a REST request with consistent formatting.

    Example:
        >>> log_api_request("GET", "/v1/fills", {"page_size": "5000"})
        [DEBUG] API Request: GET /v1/fills | Params: {'page_size': '5000'}
    """
    if params:
        logger.debug(f"API Request: {method} {endpoint} | Params: {params}")
    else:
        logger.debug(f"API Request: {method} {endpoint}")


def log_api_response(method: str, endpoint: str, status: int, response_time: float = None) -> None:
    """
    Log a REST response with status and timing information.

    Example:
        >>> log_api_response("GET", "/v1/markets", 200, 0.342)
        [DEBUG] API Response: GET /v1/markets | Status: 200 | Time: 0.342s
    """
    time_str = f" | Time: {response_time:.3f}s" if response_time else ""
    logger.debug(f"API Response: {method} {endpoint} | Status: {status}{time_str}")


def log_websocket_event(event: str, channel: str = None, details: str = None) -> None:
    """
    Log a WebSocket lifecycle event.

    Args:
        event: Event type (e.g., "connected", "disconnected", "subscribe", "error")
        channel: Wire channel name (optional)
        details: Additional details (optional)

    Example:
        >>> log_websocket_event("subscribe", "bbo.BTC-USD-PERP")
        [INFO] WebSocket: subscribe | Channel: bbo.BTC-USD-PERP
    """
    channel_str = f" | Channel: {channel}" if channel else ""
    details_str = f" | {details}" if details else ""

    # Errors stand out; lifecycle events stay at INFO
    level = logging.ERROR if event == "error" else logging.INFO
    logger.log(level, f"WebSocket: {event}{channel_str}{details_str}")


# ============================================
# Module Initialization
# ============================================

logger.debug("Logging system initialized")
