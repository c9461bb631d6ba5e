"""
Domain: promotions, promotion rules and usage facts.

Contract excerpts implemented here:
- A promotion is active only when is_active is true AND the evaluation
  instant falls within [start_date, end_date] AND (no usage limit OR
  usage_count < usage_limit).
- A promotion owns an unordered set of rules; matching ANY rule makes it
  eligible.
- buy_x_get_y rules carry positive buy/get quantities. Rules without them are
  malformed and skipped by the calculator.
- A PromotionUsage is an immutable fact, created once per successful
  application and never mutated.

Promotions and rules are owned by the administration surface; the engines
treat them as read-only inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from .money import to_decimal
from .time import require_utc_timestamp


class PromotionType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    BUY_X_GET_Y = "buy_x_get_y"


class RuleType(str, Enum):
    ALL_PRODUCTS = "all_products"
    PRODUCT = "product"
    CATEGORY = "category"


@dataclass(frozen=True, slots=True)
class Promotion:
    """
    Discount policy with a validity window and a type.

    customer_limit is stored for reporting but is not enforced when
    evaluating applicability; only the global usage_limit is.
    """

    promotion_id: int
    store_id: int
    name: str
    type: PromotionType
    value: Optional[Decimal]
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    min_order_amount: Optional[Decimal] = None
    max_discount_amount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    usage_count: int = 0
    customer_limit: Optional[int] = None
    description: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("start_date", self.start_date)
        require_utc_timestamp("end_date", self.end_date)
        object.__setattr__(self, "type", PromotionType(self.type))
        for name in ("value", "min_order_amount", "max_discount_amount"):
            raw = getattr(self, name)
            if raw is not None:
                object.__setattr__(self, name, to_decimal(raw, name=name))
        if self.usage_count < 0:
            raise ValueError("usage_count must be >= 0")

    @property
    def usage_limit_reached(self) -> bool:
        return self.usage_limit is not None and self.usage_count >= self.usage_limit

    def is_active_at(self, now: datetime) -> bool:
        """Check activity flag, validity window and global usage limit at `now`."""
        require_utc_timestamp("now", now)
        if not self.is_active:
            return False
        if not (self.start_date <= now <= self.end_date):
            return False
        return not self.usage_limit_reached


@dataclass(frozen=True, slots=True)
class PromotionRule:
    """
    Predicate selecting which cart contents a promotion covers.

    product rules carry product_id, category rules carry category. Any rule
    may additionally carry buy_quantity/get_quantity for buy_x_get_y.
    """

    rule_id: int
    promotion_id: int
    rule_type: RuleType
    product_id: Optional[int] = None
    category: Optional[str] = None
    buy_quantity: Optional[int] = None
    get_quantity: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "rule_type", RuleType(self.rule_type))

    @property
    def has_buy_x_get_y_quantities(self) -> bool:
        return (
            isinstance(self.buy_quantity, int)
            and isinstance(self.get_quantity, int)
            and self.buy_quantity > 0
            and self.get_quantity > 0
        )


@dataclass(frozen=True, slots=True)
class PromotionUsage:
    """Immutable record of one successful promotion application."""

    usage_id: Optional[int]  # None when the store could not report the new id
    promotion_id: int
    discount_amount: Decimal
    created_at: datetime
    customer_id: Optional[int] = None
    transaction_id: Optional[int] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)


@dataclass(frozen=True, slots=True)
class UsageRecordResult:
    """Outcome of the atomic usage-count increment + usage fact append."""

    success: bool
    usage: Optional[PromotionUsage]
    error_code: Optional[str] = None  # USAGE_LIMIT_REACHED, PROMOTION_NOT_FOUND, RPC_ERROR, EXCEPTION
    error_message: Optional[str] = None


__all__ = [
    "PromotionType",
    "RuleType",
    "Promotion",
    "PromotionRule",
    "PromotionUsage",
    "UsageRecordResult",
]
