"""
Discount calculation for a single promotion.

Pure arithmetic over (promotion, rules, cart lines). Nothing here reads usage
counters or the clock, so identical inputs always give identical output.

Types:
- percentage: cart subtotal x value / 100
- fixed_amount: value, independent of cart size
- buy_x_get_y: for each rule with buy/get quantities,
  sets = eligible_qty // buy, free_units = sets x get, and free units are
  taken from the cheapest unit price first (stable sort, ties keep cart
  order), never more than a line holds. Rules accumulate independently.

Post-processing, in order: cap at max_discount_amount, cap at the cart
subtotal, floor at zero, round to cents (half up).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from domain.cart import CartLine, cart_subtotal
from domain.money import ZERO, quantize_money
from domain.promotion import Promotion, PromotionRule, PromotionType
from services.promotion_matching import covered_lines, eligible_lines

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AppliedLine:
    """A cart line touched by a promotion and how many of its units were discounted."""
    product_id: int
    category: Optional[str]
    quantity: int
    unit_price: Decimal
    discounted_quantity: int


@dataclass(frozen=True, slots=True)
class DiscountCalculation:
    promotion_id: Optional[int]
    discount_amount: Decimal
    applied_lines: List[AppliedLine] = field(default_factory=list)

    @staticmethod
    def zero(promotion_id: Optional[int] = None) -> "DiscountCalculation":
        return DiscountCalculation(promotion_id=promotion_id, discount_amount=ZERO, applied_lines=[])


def _applied(line: CartLine, discounted_quantity: int) -> AppliedLine:
    return AppliedLine(
        product_id=line.product_id,
        category=line.category,
        quantity=line.quantity,
        unit_price=line.unit_price,
        discounted_quantity=discounted_quantity,
    )


def allocate_free_units(
    rule: PromotionRule,
    lines: Sequence[CartLine],
) -> Tuple[Decimal, List[AppliedLine]]:
    """
    Buy-X-get-Y allocation for one rule.

    Returns (discount, applied lines). A rule without positive buy/get
    quantities contributes nothing.

    Example:
        units priced 10, 5, 8 under "buy 2 get 1" -> 1 set, 1 free unit,
        the 5 is freed -> (Decimal('5'), [...])
    """
    if not rule.has_buy_x_get_y_quantities:
        logger.warning(
            "Skipping buy_x_get_y rule without valid quantities",
            extra={
                "promotion_id": rule.promotion_id,
                "rule_id": rule.rule_id,
                "buy_quantity": rule.buy_quantity,
                "get_quantity": rule.get_quantity,
            },
        )
        return ZERO, []

    eligible = eligible_lines(rule, lines)
    total_eligible_qty = sum(line.quantity for line in eligible)
    sets_qualified = total_eligible_qty // rule.buy_quantity
    free_units = sets_qualified * rule.get_quantity

    if free_units <= 0:
        return ZERO, []

    discount = ZERO
    applied: List[AppliedLine] = []
    remaining = free_units

    # sorted() is stable: equal prices keep cart order
    for line in sorted(eligible, key=lambda candidate: candidate.unit_price):
        if remaining <= 0:
            break
        freed = min(remaining, line.quantity)
        discount += line.unit_price * freed
        remaining -= freed
        applied.append(_applied(line, freed))

    return discount, applied


def calculate_discount(
    promotion: Promotion,
    rules: Sequence[PromotionRule],
    lines: Sequence[CartLine],
) -> DiscountCalculation:
    """
    Compute the discount a promotion grants on the given cart.

    Eligibility (activity, rule match, minimum order) is not checked here;
    see services.promotion_service.

    Args:
        promotion: Promotion to apply
        rules: Rules owned by the promotion
        lines: Cart lines

    Returns:
        DiscountCalculation with a non-negative discount no larger than the
        cart subtotal
    """
    subtotal = cart_subtotal(lines)
    value = promotion.value if promotion.value is not None else ZERO

    discount = ZERO
    applied: List[AppliedLine] = []

    if promotion.type is PromotionType.PERCENTAGE:
        discount = subtotal * (value / Decimal(100))
        applied = [_applied(line, line.quantity) for line in covered_lines(rules, lines)]
    elif promotion.type is PromotionType.FIXED_AMOUNT:
        discount = value
        applied = [_applied(line, line.quantity) for line in covered_lines(rules, lines)]
    elif promotion.type is PromotionType.BUY_X_GET_Y:
        for rule in rules:
            rule_discount, rule_applied = allocate_free_units(rule, lines)
            discount += rule_discount
            applied.extend(rule_applied)

    if promotion.max_discount_amount is not None and discount > promotion.max_discount_amount:
        discount = promotion.max_discount_amount

    if discount > subtotal:
        logger.info(
            "Discount clamped to cart subtotal",
            extra={
                "promotion_id": promotion.promotion_id,
                "discount": str(discount),
                "subtotal": str(subtotal),
            },
        )
        discount = subtotal

    if discount < ZERO:
        discount = ZERO

    return DiscountCalculation(
        promotion_id=promotion.promotion_id,
        discount_amount=quantize_money(discount),
        applied_lines=applied,
    )


__all__ = [
    "AppliedLine",
    "DiscountCalculation",
    "allocate_free_units",
    "calculate_discount",
]
