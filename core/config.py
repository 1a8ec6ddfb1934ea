"""
Configuration Management Module

This module handles loading, validating, and providing access to client configuration
from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Selects the Paradex environment (testnet or production)
- Holds the optional STARK private key used for private endpoints
- Exposes the WebSocket heartbeat / reconnect tuning knobs
- Handles optional settings with sensible defaults

Usage:
    from core.config import settings

    # Access configuration values
    print(settings.environment_url.rest)
    print(settings.ws_heartbeat_interval)
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """
    Client Settings

    Values are automatically loaded from environment variables or .env file.

    Attributes:
        paradex_environment: Which deployment to talk to ("testnet" or "production")
        paradex_private_key: Hex encoded STARK private key (optional, public endpoints only without it)
        log_level: Logging level
        request_timeout: Timeout for HTTP requests in seconds
        ws_reconnect_delay: Fixed delay between WebSocket reconnection attempts
        ws_heartbeat_interval: Seconds between WebSocket ping frames
        ws_max_missed_pongs: Ticks without a pong before the socket is force-closed
        jwt_refresh_interval: Age in seconds after which the bearer token is refreshed
        domain_hash_cache_size: Capacity of the domain hash LRU cache
    """

    # ============================================
    # Paradex Configuration
    # ============================================

    paradex_environment: str = Field(
        default="testnet",
        description="Paradex deployment (testnet, production)"
    )

    paradex_private_key: Optional[str] = Field(
        default=None,
        description="STARK private key as a 0x-prefixed hex string"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # ============================================
    # REST Configuration
    # ============================================

    request_timeout: int = Field(
        default=30,
        description="HTTP request timeout in seconds"
    )

    jwt_refresh_interval: int = Field(
        default=240,
        description="Refresh the bearer token once it is older than this (seconds)"
    )

    # ============================================
    # WebSocket Configuration
    # ============================================

    ws_reconnect_delay: float = Field(
        default=1.0,
        description="Fixed delay between WebSocket reconnection attempts (seconds)"
    )

    ws_heartbeat_interval: float = Field(
        default=30.0,
        description="Interval between WebSocket ping frames (seconds)"
    )

    ws_max_missed_pongs: int = Field(
        default=3,
        description="Consecutive heartbeat ticks without a pong before reconnecting"
    )

    # ============================================
    # Signing Configuration
    # ============================================

    domain_hash_cache_size: int = Field(
        default=100,
        description="Number of chain ids kept in the domain hash LRU cache"
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
    # Custom Validators and Properties
    # ============================================

    @field_validator("paradex_environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Normalize environment name to lowercase"""
        return v.strip().lower()

    @field_validator("paradex_private_key")
    @classmethod
    def empty_key_is_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat PARADEX_PRIVATE_KEY= (empty) as unset"""
        if v is not None and not v.strip():
            return None
        return v

    @property
    def environment_url(self):
        """
        Resolve the configured environment to its URL pair.

        Returns:
            Environment enum member with .rest and .websocket URLs

        Example:
            >>> settings.environment_url.websocket
            'wss://ws.api.testnet.paradex.trade/v1'
        """
        # Imported lazily to keep core free of exchange imports at module load
        from exchanges.paradex.urls import Environment
        return Environment.from_name(self.paradex_environment)

    @property
    def is_private(self) -> bool:
        """
        Check if a private key is configured.

        Returns:
            True if private endpoints can be used
        """
        return bool(self.paradex_private_key)


# ============================================
# Global Settings Instance
# ============================================

# Create a single instance of settings to be imported throughout the package
settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration() -> None:
    """
    Validate critical configuration settings.

    Raises:
        ValueError: If configuration is missing or invalid
    """
    # Import logger here to avoid circular import
    # (logging.py imports config.py, so we can't import at module level)
    from core.logging import logger

    try:
        environment = settings.environment_url
    except ValueError:
        raise ValueError(
            f"Invalid PARADEX_ENVIRONMENT: '{settings.paradex_environment}'. "
            f"Must be one of: testnet, production"
        )

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if settings.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{settings.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    if settings.ws_heartbeat_interval <= 0:
        raise ValueError(f"WS_HEARTBEAT_INTERVAL must be positive, got {settings.ws_heartbeat_interval}")

    if settings.ws_max_missed_pongs < 1:
        raise ValueError(f"WS_MAX_MISSED_PONGS must be at least 1, got {settings.ws_max_missed_pongs}")

    if settings.ws_reconnect_delay < 0:
        raise ValueError(f"WS_RECONNECT_DELAY cannot be negative, got {settings.ws_reconnect_delay}")

    if settings.domain_hash_cache_size < 1:
        raise ValueError(f"DOMAIN_HASH_CACHE_SIZE must be at least 1, got {settings.domain_hash_cache_size}")

    if settings.paradex_private_key:
        # Same parser the API client uses, so both accept the same keys
        from core.errors import StarknetError
        from exchanges.paradex.signing import parse_private_key
        try:
            parse_private_key(settings.paradex_private_key)
        except StarknetError:
            raise ValueError("PARADEX_PRIVATE_KEY must be a hex string")

    logger.info("Configuration validated successfully")
    logger.info(f"Environment: {settings.paradex_environment} ({environment.rest})")
    logger.info(f"Private endpoints: {'enabled' if settings.is_private else 'disabled'}")
    logger.info(f"Log level: {settings.log_level.upper()}")
