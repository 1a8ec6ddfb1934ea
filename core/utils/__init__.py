"""
Core Utilities Package

This package contains utility functions and helpers used throughout the client.

Modules:
    - time: Timestamp conversion utilities (seconds / milliseconds)
"""

from core.utils.time import datetime_to_timestamp, current_utc_timestamp

__all__ = ["datetime_to_timestamp", "current_utc_timestamp"]
