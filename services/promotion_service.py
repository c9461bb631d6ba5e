"""
Promotion service for evaluating promotions against a cart.

Handles:
- Applicability: active promotions whose rules match the cart and whose
  minimum order amount is met
- Discount computation for one promotion (missing/inactive -> zero)
- Aggregation across every eligible promotion (all apply, no stacking
  suppression)
- Usage accounting via the store's atomic increment

Reference data is read through an injected PromotionDataAccess. Lookup
failures and timeouts never propagate into checkout: the affected promotion
is skipped and a warning is logged. Only caller-input errors raise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Protocol, Sequence

from domain.cart import CartLine, cart_subtotal
from domain.money import ZERO, quantize_money, to_decimal
from domain.promotion import (
    Promotion,
    PromotionRule,
    PromotionType,
    PromotionUsage,
    UsageRecordResult,
)
from domain.time import require_utc_timestamp, utc_now
from services.discount_calculator import DiscountCalculation, calculate_discount
from services.lookups import bounded_call
from services.promotion_matching import promotion_matches

logger = logging.getLogger(__name__)


class PromotionDataAccess(Protocol):
    """Persistence collaborator for promotions, rules and usage facts."""

    def list_active_promotions(self, store_id: int, now: datetime) -> List[Promotion]: ...

    def list_rules(self, promotion_id: int) -> List[PromotionRule]: ...

    def get_promotion(self, promotion_id: int) -> Optional[Promotion]: ...

    def record_usage(
        self,
        promotion_id: int,
        discount_amount: Decimal,
        customer_id: Optional[int] = None,
        transaction_id: Optional[int] = None,
    ) -> UsageRecordResult: ...

    def list_usage(
        self,
        promotion_id: Optional[int] = None,
        customer_id: Optional[int] = None,
    ) -> List[PromotionUsage]: ...


@dataclass(frozen=True, slots=True)
class AppliedPromotion:
    promotion_id: int
    name: str
    discount_amount: Decimal
    type: PromotionType


@dataclass(frozen=True, slots=True)
class PromotionResult:
    """
    Aggregate discount for a cart.

    total_discount is the sum of the applied discounts, capped at the cart
    subtotal.
    """
    total_discount: Decimal
    applied: List[AppliedPromotion] = field(default_factory=list)
    subtotal: Decimal = ZERO


def _resolve_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return utc_now()
    require_utc_timestamp("now", now)
    return now


def _fetch_active(
    store: PromotionDataAccess,
    store_id: int,
    now: datetime,
    lookup_timeout: Optional[float],
) -> List[Promotion]:
    try:
        promotions = bounded_call(store.list_active_promotions, store_id, now, timeout=lookup_timeout)
    except Exception as e:
        logger.warning(
            "Active promotion lookup failed; no promotions applied",
            extra={"store_id": store_id, "error": str(e)},
        )
        return []

    # The store filters too, but its clock and ours may differ.
    return [promotion for promotion in promotions if promotion.is_active_at(now)]


def _fetch_rules(
    store: PromotionDataAccess,
    promotion: Promotion,
    lookup_timeout: Optional[float],
) -> Optional[List[PromotionRule]]:
    try:
        return list(bounded_call(store.list_rules, promotion.promotion_id, timeout=lookup_timeout))
    except Exception as e:
        logger.warning(
            "Promotion rule lookup failed; promotion skipped",
            extra={"promotion_id": promotion.promotion_id, "error": str(e)},
        )
        return None


def _meets_minimum_order(promotion: Promotion, subtotal: Decimal) -> bool:
    return promotion.min_order_amount is None or subtotal >= promotion.min_order_amount


def applicable_promotions(
    store: PromotionDataAccess,
    store_id: int,
    lines: Sequence[CartLine],
    *,
    now: Optional[datetime] = None,
    lookup_timeout: Optional[float] = None,
) -> List[Promotion]:
    """
    Get every currently-active promotion that applies to the cart.

    A promotion applies when at least one of its rules matches the cart and,
    if it has a minimum order amount, the cart subtotal reaches it.

    Example:
        promos = applicable_promotions(store, 1, lines)
        for promo in promos:
            print(promo.name)
    """
    now = _resolve_now(now)
    subtotal = cart_subtotal(lines)

    applicable: List[Promotion] = []
    for promotion in _fetch_active(store, store_id, now, lookup_timeout):
        rules = _fetch_rules(store, promotion, lookup_timeout)
        if rules is None:
            continue
        if not promotion_matches(rules, lines):
            continue
        if not _meets_minimum_order(promotion, subtotal):
            continue
        applicable.append(promotion)

    return applicable


def compute_discount(
    store: PromotionDataAccess,
    promotion_id: int,
    lines: Sequence[CartLine],
    *,
    now: Optional[datetime] = None,
    lookup_timeout: Optional[float] = None,
) -> DiscountCalculation:
    """
    Compute the discount one promotion grants on the cart.

    A missing or inactive promotion, or a failed lookup, yields a zero
    discount with no applied lines rather than an error.
    """
    now = _resolve_now(now)

    try:
        promotion = bounded_call(store.get_promotion, promotion_id, timeout=lookup_timeout)
    except Exception as e:
        logger.warning(
            "Promotion lookup failed; zero discount",
            extra={"promotion_id": promotion_id, "error": str(e)},
        )
        return DiscountCalculation.zero(promotion_id)

    if promotion is None or not promotion.is_active_at(now):
        return DiscountCalculation.zero(promotion_id)

    rules = _fetch_rules(store, promotion, lookup_timeout)
    if rules is None:
        return DiscountCalculation.zero(promotion_id)

    return calculate_discount(promotion, rules, lines)


def apply_promotions(
    store: PromotionDataAccess,
    store_id: int,
    lines: Sequence[CartLine],
    customer_id: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
    lookup_timeout: Optional[float] = None,
) -> PromotionResult:
    """
    Apply every eligible promotion of the store to the cart.

    Process:
    1. Fetch promotions active at `now` (flag, window, usage limit)
    2. Skip promotions with no matching rule or an unmet minimum order
    3. Compute each discount independently and sum them

    Usage counters are not touched; the caller invokes record_usage after
    the checkout commits. customer_id is accepted for the caller's
    bookkeeping; per-customer limits are not enforced.

    Returns:
        PromotionResult with the aggregate discount and one entry per
        promotion that granted a non-zero discount
    """
    now = _resolve_now(now)
    subtotal = cart_subtotal(lines)

    applied: List[AppliedPromotion] = []
    total_discount = ZERO

    for promotion in _fetch_active(store, store_id, now, lookup_timeout):
        rules = _fetch_rules(store, promotion, lookup_timeout)
        if rules is None:
            continue
        if not promotion_matches(rules, lines):
            continue
        if not _meets_minimum_order(promotion, subtotal):
            continue

        calculation = calculate_discount(promotion, rules, lines)
        if calculation.discount_amount <= ZERO:
            continue

        total_discount += calculation.discount_amount
        applied.append(AppliedPromotion(
            promotion_id=promotion.promotion_id,
            name=promotion.name,
            discount_amount=calculation.discount_amount,
            type=promotion.type,
        ))

    if total_discount > subtotal:
        logger.info(
            "Aggregate discount clamped to cart subtotal",
            extra={
                "store_id": store_id,
                "customer_id": customer_id,
                "discount": str(total_discount),
                "subtotal": str(subtotal),
            },
        )
        total_discount = subtotal

    return PromotionResult(
        total_discount=quantize_money(total_discount),
        applied=applied,
        subtotal=subtotal,
    )


def record_usage(
    store: PromotionDataAccess,
    promotion_id: int,
    discount_amount: Decimal,
    customer_id: Optional[int] = None,
    transaction_id: Optional[int] = None,
) -> UsageRecordResult:
    """
    Record one application of a promotion after checkout commits.

    The store increments usage_count and appends the PromotionUsage fact in
    one atomic step, refusing once usage_limit is reached. Of two concurrent
    calls racing for the last use, exactly one succeeds.

    Raises:
        ValueError: If discount_amount is negative or not numeric
    """
    amount = to_decimal(discount_amount, name="discount_amount")
    if amount < 0:
        raise ValueError(f"discount_amount must be >= 0, got {amount}")

    result = store.record_usage(
        promotion_id,
        quantize_money(amount),
        customer_id=customer_id,
        transaction_id=transaction_id,
    )

    if result.success:
        logger.info(
            "Promotion usage recorded",
            extra={"promotion_id": promotion_id, "customer_id": customer_id},
        )
    else:
        logger.warning(
            "Promotion usage rejected",
            extra={
                "promotion_id": promotion_id,
                "customer_id": customer_id,
                "error_code": result.error_code,
                "error_message": result.error_message,
            },
        )

    return result


def list_promotion_usage(
    store: PromotionDataAccess,
    promotion_id: Optional[int] = None,
    customer_id: Optional[int] = None,
) -> List[PromotionUsage]:
    """Usage facts, optionally filtered by promotion and/or customer."""
    return store.list_usage(promotion_id=promotion_id, customer_id=customer_id)


__all__ = [
    "PromotionDataAccess",
    "AppliedPromotion",
    "PromotionResult",
    "applicable_promotions",
    "compute_discount",
    "apply_promotions",
    "record_usage",
    "list_promotion_usage",
]
