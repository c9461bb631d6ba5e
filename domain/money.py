"""
Domain: money arithmetic.

All amounts are `Decimal`. Values arriving as floats or strings are converted
through `str()` so a float like 0.1 becomes Decimal('0.1') rather than its
binary expansion.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_decimal(value: Any, *, name: str = "amount") -> Decimal:
    """
    Convert a numeric value to a finite Decimal.

    Raises:
        ValueError: If the value is not numeric, NaN or infinite
    """

    if isinstance(value, bool):
        raise ValueError(f"{name} must be numeric, got bool")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as e:
            raise ValueError(f"{name} must be numeric, got {value!r}") from e

    if not result.is_finite():
        raise ValueError(f"{name} must be finite, got {value!r}")
    return result


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents, half up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


__all__ = [
    "ZERO",
    "CENT",
    "to_decimal",
    "quantize_money",
]
