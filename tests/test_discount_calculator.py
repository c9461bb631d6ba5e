"""
Tests for `services/discount_calculator.py`.

Covers contract rules:
- percentage: subtotal x value / 100, capped at max_discount_amount.
- fixed_amount: value, clamped to the cart subtotal.
- buy_x_get_y: floor(qty / buy) x get free units, cheapest first.
- Discounts are never negative and never exceed the subtotal.
"""

from __future__ import annotations

from decimal import Decimal

from services.discount_calculator import allocate_free_units, calculate_discount


class TestPercentage:
    def test_ten_percent_of_two_hundred(self, make_promotion, make_rule, make_line) -> None:
        promotion = make_promotion(type="percentage", value=Decimal("10"))
        lines = [make_line(1, 2, "100.00")]

        result = calculate_discount(promotion, [make_rule()], lines)

        assert result.discount_amount == Decimal("20.00")
        assert [applied.product_id for applied in result.applied_lines] == [1]

    def test_capped_at_max_discount(self, make_promotion, make_rule, make_line) -> None:
        promotion = make_promotion(type="percentage", value=Decimal("10"), max_discount_amount=Decimal("15"))

        result = calculate_discount(promotion, [make_rule()], [make_line(1, 2, "100.00")])

        assert result.discount_amount == Decimal("15.00")

    def test_rounds_to_cents_half_up(self, make_promotion, make_rule, make_line) -> None:
        promotion = make_promotion(type="percentage", value=Decimal("15"))

        # 15% of 0.10 = 0.015 -> 0.02
        result = calculate_discount(promotion, [make_rule()], [make_line(1, 1, "0.10")])

        assert result.discount_amount == Decimal("0.02")

    def test_over_one_hundred_percent_is_clamped(self, make_promotion, make_rule, make_line) -> None:
        promotion = make_promotion(type="percentage", value=Decimal("150"))

        result = calculate_discount(promotion, [make_rule()], [make_line(1, 1, "40.00")])

        assert result.discount_amount == Decimal("40.00")


class TestFixedAmount:
    def test_value_is_the_discount(self, make_promotion, make_rule, make_line) -> None:
        promotion = make_promotion(type="fixed_amount", value=Decimal("5"))

        result = calculate_discount(promotion, [make_rule()], [make_line(1, 3, "10.00")])

        assert result.discount_amount == Decimal("5.00")

    def test_clamped_to_subtotal(self, make_promotion, make_rule, make_line) -> None:
        promotion = make_promotion(type="fixed_amount", value=Decimal("50"))

        result = calculate_discount(promotion, [make_rule()], [make_line(1, 1, "12.00")])

        assert result.discount_amount == Decimal("12.00")

    def test_missing_value_is_zero(self, make_promotion, make_rule, make_line) -> None:
        promotion = make_promotion(type="fixed_amount", value=None)

        result = calculate_discount(promotion, [make_rule()], [make_line(1, 1, "12.00")])

        assert result.discount_amount == Decimal("0.00")


class TestBuyXGetY:
    def test_cheapest_unit_is_free(self, make_promotion, make_rule, make_line) -> None:
        promotion = make_promotion(type="buy_x_get_y", value=None)
        rule = make_rule(buy_quantity=2, get_quantity=1)
        lines = [make_line(1, 1, "10.00"), make_line(2, 1, "5.00"), make_line(3, 1, "8.00")]

        result = calculate_discount(promotion, [rule], lines)

        assert result.discount_amount == Decimal("5.00")
        assert [(a.product_id, a.discounted_quantity) for a in result.applied_lines] == [(2, 1)]

    def test_free_units_span_lines_cheapest_first(self, make_rule, make_line) -> None:
        rule = make_rule(buy_quantity=2, get_quantity=1)
        # 6 units -> 3 free: two at 1.00 then one at 4.00
        lines = [make_line(1, 2, "9.00"), make_line(2, 2, "4.00"), make_line(3, 2, "1.00")]

        discount, applied = allocate_free_units(rule, lines)

        assert discount == Decimal("6.00")
        assert [(a.product_id, a.discounted_quantity) for a in applied] == [(3, 2), (2, 1)]

    def test_ties_keep_cart_order(self, make_rule, make_line) -> None:
        rule = make_rule(buy_quantity=2, get_quantity=1)
        # 3 units -> 1 free; the two 3.00 lines tie for cheapest
        lines = [make_line(5, 1, "3.00"), make_line(4, 1, "3.00"), make_line(6, 1, "9.00")]

        discount, applied = allocate_free_units(rule, lines)

        assert discount == Decimal("3.00")
        assert [a.product_id for a in applied] == [5]

    def test_not_enough_units_for_a_set(self, make_rule, make_line) -> None:
        rule = make_rule(buy_quantity=3, get_quantity=1)

        discount, applied = allocate_free_units(rule, [make_line(1, 2, "10.00")])

        assert discount == Decimal("0.00")
        assert applied == []

    def test_rules_only_count_their_own_lines(self, make_promotion, make_rule, make_line) -> None:
        promotion = make_promotion(type="buy_x_get_y", value=None)
        rules = [
            make_rule(rule_type="category", category="snacks", buy_quantity=2, get_quantity=1),
            make_rule(rule_type="product", product_id=9, buy_quantity=1, get_quantity=1),
        ]
        lines = [
            make_line(1, 2, "3.00", "snacks"),
            make_line(9, 2, "7.00", "drinks"),
            make_line(4, 5, "1.00", "produce"),
        ]

        result = calculate_discount(promotion, rules, lines)

        # snacks: 2 units -> 1 free at 3.00; product 9: 2 units -> 2 free at 7.00
        assert result.discount_amount == Decimal("17.00")

    def test_malformed_rule_is_skipped(self, make_promotion, make_rule, make_line) -> None:
        promotion = make_promotion(type="buy_x_get_y", value=None)
        rules = [
            make_rule(buy_quantity=0, get_quantity=1),
            make_rule(buy_quantity=None, get_quantity=None),
            make_rule(buy_quantity=2, get_quantity=1),
        ]

        result = calculate_discount(promotion, rules, [make_line(1, 2, "4.00")])

        assert result.discount_amount == Decimal("4.00")

    def test_free_units_never_exceed_eligible_units(self, make_rule, make_line) -> None:
        rule = make_rule(buy_quantity=1, get_quantity=5)

        discount, applied = allocate_free_units(rule, [make_line(1, 2, "2.50")])

        assert discount == Decimal("5.00")
        assert applied[0].discounted_quantity == 2


def test_discount_is_bounded_and_repeatable(make_promotion, make_rule, make_line) -> None:
    cases = [
        make_promotion(1, type="percentage", value=Decimal("33.33")),
        make_promotion(2, type="fixed_amount", value=Decimal("1000")),
        make_promotion(3, type="buy_x_get_y", value=None),
    ]
    rules = [make_rule(buy_quantity=1, get_quantity=1)]
    lines = [make_line(1, 3, "19.99"), make_line(2, 1, "0.01")]
    subtotal = Decimal("59.98")

    for promotion in cases:
        first = calculate_discount(promotion, rules, lines)
        second = calculate_discount(promotion, rules, lines)

        assert first == second
        assert Decimal("0") <= first.discount_amount <= subtotal


def test_empty_cart_yields_zero(make_promotion, make_rule) -> None:
    for promotion_type, value in (("percentage", Decimal("10")), ("fixed_amount", Decimal("5"))):
        promotion = make_promotion(type=promotion_type, value=value)

        assert calculate_discount(promotion, [make_rule()], []).discount_amount == Decimal("0.00")
