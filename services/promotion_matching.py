"""
Rule-to-cart matching predicates.

Matching rules (disjunctive across a promotion's rules):
- all_products: always matches
- product: any cart line with the rule's product_id
- category: any cart line with the rule's category

A product rule without a product_id, or a category rule without a category,
never matches.
"""

from __future__ import annotations

from typing import Iterable, List, Sequence

from domain.cart import CartLine
from domain.promotion import PromotionRule, RuleType


def _line_selected(rule: PromotionRule, line: CartLine) -> bool:
    if rule.rule_type is RuleType.ALL_PRODUCTS:
        return True
    if rule.rule_type is RuleType.PRODUCT:
        return rule.product_id is not None and line.product_id == rule.product_id
    if rule.rule_type is RuleType.CATEGORY:
        return bool(rule.category) and line.category == rule.category
    return False


def eligible_lines(rule: PromotionRule, lines: Sequence[CartLine]) -> List[CartLine]:
    """Lines covered by a single rule, in cart order."""
    return [line for line in lines if _line_selected(rule, line)]


def rule_matches(rule: PromotionRule, lines: Sequence[CartLine]) -> bool:
    if rule.rule_type is RuleType.ALL_PRODUCTS:
        return True
    return any(_line_selected(rule, line) for line in lines)


def promotion_matches(rules: Iterable[PromotionRule], lines: Sequence[CartLine]) -> bool:
    """True when ANY rule matches the cart."""
    for rule in rules:
        if rule.rule_type is RuleType.ALL_PRODUCTS:
            return True
        if rule_matches(rule, lines):
            return True
    return False


def covered_lines(rules: Iterable[PromotionRule], lines: Sequence[CartLine]) -> List[CartLine]:
    """Union of lines selected by any rule, deduplicated, in cart order."""
    rules = list(rules)
    return [
        line for line in lines
        if any(_line_selected(rule, line) for rule in rules)
    ]


__all__ = [
    "eligible_lines",
    "rule_matches",
    "promotion_matches",
    "covered_lines",
]
