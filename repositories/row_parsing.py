"""
Row conversion helpers shared by the Supabase-backed stores.

Supabase returns timestamps as ISO-8601 strings (sometimes with a trailing
'Z') and numeric columns as numbers or strings depending on the column type.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from domain.money import to_decimal
from domain.time import require_utc_timestamp

# Postgres trims trailing zeros; datetime.fromisoformat before 3.11 wants 3 or 6 digits.
_FRACTION = re.compile(r"\.(\d+)")


def to_iso_utc(dt: datetime, *, name: str) -> str:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def parse_utc_datetime(value: Any) -> datetime:
    """Parse a Supabase timestamp into a timezone-aware UTC datetime."""

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value.replace("Z", "+00:00"), count=1)
        dt = datetime.fromisoformat(text)
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def optional_decimal(value: Any, *, name: str) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return to_decimal(value, name=name)


def optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def raise_on_error(response: Any, action: str) -> list:
    """Return response rows, raising RuntimeError when Supabase reports an error."""

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return getattr(response, "data", None) or []


__all__ = [
    "to_iso_utc",
    "parse_utc_datetime",
    "optional_decimal",
    "optional_int",
    "raise_on_error",
]
