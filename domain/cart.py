"""
Domain: cart snapshot.

A CartSnapshot is the single input shape consumed by both the promotion
engine and the risk engine. It is validated once, at construction, so the
engines can assume sanitized input:

- quantity is a positive integer
- unit_price, cash_tendered and total are non-negative Decimals
- timestamp_override, when given, is a UTC timestamp

Construction raises ValueError for anything else.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Tuple

from .money import ZERO, to_decimal
from .time import require_utc_timestamp


def _require_non_negative(name: str, value: Decimal) -> Decimal:
    amount = to_decimal(value, name=name)
    if amount < 0:
        raise ValueError(f"{name} must be >= 0, got {amount}")
    return amount


@dataclass(frozen=True, slots=True)
class CartLine:
    """
    One product line in a cart or stored transaction.

    category is denormalized from the product so category rules can be
    matched without a product lookup.
    """

    product_id: int
    quantity: int
    unit_price: Decimal
    category: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"quantity must be an integer, got {self.quantity!r}")
        if self.quantity <= 0:
            raise ValueError(f"quantity must be > 0, got {self.quantity}")
        # frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "unit_price", _require_non_negative("unit_price", self.unit_price))

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


def cart_subtotal(lines: Iterable[CartLine]) -> Decimal:
    """Sum of unit_price x quantity over all lines."""
    return sum((line.line_total for line in lines), ZERO)


@dataclass(frozen=True, slots=True)
class CartSnapshot:
    """
    Immutable view of a cart (or stored transaction) at evaluation time.

    total is the amount actually charged when the caller already knows it
    (after tax or manual discounts). When omitted, the line subtotal is used.
    """

    store_id: int
    lines: Tuple[CartLine, ...]
    payment_method: str
    cash_tendered: Optional[Decimal] = None
    customer_id: Optional[int] = None
    timestamp_override: Optional[datetime] = None
    total: Optional[Decimal] = field(default=None)

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))
        for line in self.lines:
            if not isinstance(line, CartLine):
                raise ValueError(f"lines must contain CartLine items, got {type(line).__name__}")
        if self.cash_tendered is not None:
            object.__setattr__(
                self, "cash_tendered", _require_non_negative("cash_tendered", self.cash_tendered)
            )
        if self.total is not None:
            object.__setattr__(self, "total", _require_non_negative("total", self.total))
        if self.timestamp_override is not None:
            require_utc_timestamp("timestamp_override", self.timestamp_override)

    @property
    def subtotal(self) -> Decimal:
        return cart_subtotal(self.lines)

    @property
    def transaction_total(self) -> Decimal:
        return self.total if self.total is not None else self.subtotal

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)


__all__ = [
    "CartLine",
    "CartSnapshot",
    "cart_subtotal",
]
