"""
Domain time utilities (pure).

Centralized timestamp validation and clock helpers.

Every instant the engines compare against (promotion windows, trailing
history windows, the transaction timestamp) is a UTC-aware datetime. Local
wall-clock time only matters for the unusual-hours risk signal, where the
store's timezone is applied explicitly.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Enforces that timestamps are UTC.

    Invariants:
    - Timestamps must be timezone-aware.
    - Timestamps must have UTC offset 0.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_hour(instant: datetime, timezone_name: str = "UTC") -> int:
    """
    Hour of day (0-23) of a UTC instant as seen in the given IANA timezone.

    Raises:
        ValueError: If the timezone name is unknown
    """

    require_utc_timestamp("instant", instant)
    try:
        tz = ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {timezone_name!r}") from e
    return instant.astimezone(tz).hour
