"""
Tests for `domain/cart.py`, `domain/money.py` and `domain/time.py`.

Covers contract rules:
- quantity must be a positive integer; prices and amounts non-negative.
- Timestamps must be UTC-aware.
- The snapshot total defaults to the line subtotal.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.cart import CartLine, CartSnapshot, cart_subtotal
from domain.money import quantize_money, to_decimal
from domain.time import local_hour, require_utc_timestamp


def test_cart_line_rejects_non_positive_quantity() -> None:
    with pytest.raises(ValueError):
        CartLine(product_id=1, quantity=0, unit_price=Decimal("1.00"))

    with pytest.raises(ValueError):
        CartLine(product_id=1, quantity=-2, unit_price=Decimal("1.00"))


def test_cart_line_rejects_fractional_and_bool_quantity() -> None:
    with pytest.raises(ValueError):
        CartLine(product_id=1, quantity=1.5, unit_price=Decimal("1.00"))  # type: ignore[arg-type]

    with pytest.raises(ValueError):
        CartLine(product_id=1, quantity=True, unit_price=Decimal("1.00"))


def test_cart_line_rejects_negative_price() -> None:
    with pytest.raises(ValueError):
        CartLine(product_id=1, quantity=1, unit_price=Decimal("-0.01"))


def test_cart_line_normalizes_price_to_decimal() -> None:
    line = CartLine(product_id=1, quantity=3, unit_price=0.1)  # type: ignore[arg-type]

    assert line.unit_price == Decimal("0.1")
    assert line.line_total == Decimal("0.3")


def test_cart_line_is_immutable() -> None:
    line = CartLine(product_id=1, quantity=1, unit_price=Decimal("1.00"))

    with pytest.raises(FrozenInstanceError):
        line.quantity = 5  # type: ignore[misc]


def test_cart_subtotal_sums_line_totals() -> None:
    lines = [
        CartLine(product_id=1, quantity=2, unit_price=Decimal("10.00")),
        CartLine(product_id=2, quantity=1, unit_price=Decimal("5.50")),
    ]

    assert cart_subtotal(lines) == Decimal("25.50")
    assert cart_subtotal([]) == Decimal("0")


class TestCartSnapshot:
    def test_total_defaults_to_subtotal(self) -> None:
        snapshot = CartSnapshot(
            store_id=1,
            lines=[CartLine(product_id=1, quantity=4, unit_price=Decimal("25.00"))],
            payment_method="card",
        )

        assert isinstance(snapshot.lines, tuple)
        assert snapshot.transaction_total == Decimal("100.00")
        assert snapshot.total_quantity == 4

    def test_explicit_total_wins(self) -> None:
        snapshot = CartSnapshot(
            store_id=1,
            lines=[CartLine(product_id=1, quantity=1, unit_price=Decimal("100.00"))],
            payment_method="card",
            total=Decimal("108.25"),
        )

        assert snapshot.transaction_total == Decimal("108.25")

    def test_rejects_negative_cash_tendered(self) -> None:
        with pytest.raises(ValueError):
            CartSnapshot(store_id=1, lines=(), payment_method="cash", cash_tendered=Decimal("-1"))

    def test_rejects_non_utc_timestamp(self) -> None:
        with pytest.raises(ValueError):
            CartSnapshot(
                store_id=1,
                lines=(),
                payment_method="cash",
                timestamp_override=datetime(2025, 1, 1, 12, 0),
            )

        with pytest.raises(ValueError):
            CartSnapshot(
                store_id=1,
                lines=(),
                payment_method="cash",
                timestamp_override=datetime(2025, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=-5))),
            )

    def test_rejects_foreign_line_objects(self) -> None:
        with pytest.raises(ValueError):
            CartSnapshot(store_id=1, lines=[{"product_id": 1}], payment_method="cash")  # type: ignore[list-item]


def test_to_decimal_rejects_non_numeric_values() -> None:
    for bad in ("abc", float("nan"), float("inf"), True):
        with pytest.raises(ValueError):
            to_decimal(bad)


def test_quantize_money_rounds_half_up() -> None:
    assert quantize_money(Decimal("2.345")) == Decimal("2.35")
    assert quantize_money(Decimal("2.344")) == Decimal("2.34")


def test_require_utc_timestamp_accepts_utc_only() -> None:
    require_utc_timestamp("ts", datetime(2025, 1, 1, tzinfo=timezone.utc))

    with pytest.raises(ValueError):
        require_utc_timestamp("ts", datetime(2025, 1, 1))


def test_local_hour_applies_store_timezone() -> None:
    instant = datetime(2025, 1, 15, 3, 30, tzinfo=timezone.utc)

    assert local_hour(instant) == 3
    assert local_hour(instant, "America/New_York") == 22

    with pytest.raises(ValueError):
        local_hour(instant, "Not/AZone")
