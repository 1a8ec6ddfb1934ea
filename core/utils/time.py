"""
Time Utilities

Paradex mixes two timestamp units:
- Auth headers and JWT ages: seconds since epoch (e.g., 1737473412)
- Order signatures, fills, klines, orderbooks: milliseconds since epoch (e.g., 1737473412000)

The helpers in this module produce both units from the system clock and
convert UTC datetimes (e.g. fills and funding payment bounds) to either unit.
"""

from datetime import datetime, timezone

from core.errors import TimeError


def datetime_to_timestamp(dt: datetime, milliseconds: bool = False) -> int:
    """
    Convert a datetime object to Unix timestamp.

    Args:
        dt: Datetime object (naive values are treated as UTC)
        milliseconds: If True, return milliseconds (sub-second precision kept)

    Returns:
        int: Unix timestamp in seconds or milliseconds

    Examples:
        >>> dt = datetime(2024, 1, 1, 12, 0, 0, 250000, tzinfo=timezone.utc)
        >>> datetime_to_timestamp(dt)
        1704110400

        >>> datetime_to_timestamp(dt, milliseconds=True)
        1704110400250
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    if milliseconds:
        return int(dt.timestamp() * 1000)

    return int(dt.timestamp())


def current_utc_timestamp(milliseconds: bool = False) -> int:
    """
    Get current UTC timestamp.

    Args:
        milliseconds: If True, return milliseconds; if False, return seconds

    Returns:
        int: Current Unix timestamp

    Raises:
        TimeError: If the system clock reports a time before the epoch
    """
    timestamp = datetime_to_timestamp(datetime.now(timezone.utc), milliseconds)
    if timestamp < 0:
        raise TimeError(f"System clock is before the UNIX epoch: {timestamp}")
    return timestamp
