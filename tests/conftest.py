"""
Pytest configuration for the checkout rules tests.

This file adds the parent directory to the Python path so that tests
can import from the domain, services, repositories, and api packages, and
provides small factories shared by the test modules.
"""

import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest

# Add the project root to the Python path
# so tests can import domain, services, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.cart import CartLine  # noqa: E402
from domain.promotion import Promotion, PromotionRule  # noqa: E402

# Daytime in UTC, so the business-hours signal stays quiet unless a test wants it.
NOW = datetime(2025, 6, 15, 14, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_promotion():
    """Factory for promotions active around NOW."""

    def _make(promotion_id: int = 1, **overrides) -> Promotion:
        fields = {
            "promotion_id": promotion_id,
            "store_id": 1,
            "name": f"Promotion {promotion_id}",
            "type": "percentage",
            "value": Decimal("10"),
            "start_date": NOW - timedelta(days=1),
            "end_date": NOW + timedelta(days=1),
        }
        fields.update(overrides)
        return Promotion(**fields)

    return _make


@pytest.fixture
def make_rule():
    """Factory for promotion rules; rule ids are unique per test."""

    counter = {"next": 1}

    def _make(promotion_id: int = 1, rule_type: str = "all_products", **overrides) -> PromotionRule:
        rule_id = overrides.pop("rule_id", counter["next"])
        counter["next"] += 1
        return PromotionRule(rule_id=rule_id, promotion_id=promotion_id, rule_type=rule_type, **overrides)

    return _make


def line(product_id: int, quantity: int, unit_price: str, category: str = None) -> CartLine:
    return CartLine(product_id=product_id, quantity=quantity, unit_price=Decimal(unit_price), category=category)


@pytest.fixture
def make_line():
    return line
