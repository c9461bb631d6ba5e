"""
Tests for `services/promotion_service.py` (with the in-memory store).

Covers contract rules:
- Only active promotions with a matching rule and a met minimum order apply.
- Every eligible promotion applies; the total never exceeds the subtotal.
- Lookup failures and timeouts skip the affected promotion instead of
  failing checkout.
- Usage recording is atomic: racing for the last use, exactly one wins.
"""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from decimal import Decimal

import pytest

from repositories.in_memory import InMemoryPromotionStore
from services.lookups import LookupTimeout, bounded_call
from services.promotion_service import (
    applicable_promotions,
    apply_promotions,
    compute_discount,
    list_promotion_usage,
    record_usage,
)


class FailingRulesStore(InMemoryPromotionStore):
    """Store whose rule lookup fails for selected promotions."""

    def __init__(self, failing_ids, **kwargs):
        super().__init__(**kwargs)
        self.failing_ids = set(failing_ids)

    def list_rules(self, promotion_id):
        if promotion_id in self.failing_ids:
            raise RuntimeError("Failed to fetch promotion rules: connection reset")
        return super().list_rules(promotion_id)


class SlowRulesStore(InMemoryPromotionStore):
    def __init__(self, slow_ids, delay, **kwargs):
        super().__init__(**kwargs)
        self.slow_ids = set(slow_ids)
        self.delay = delay

    def list_rules(self, promotion_id):
        if promotion_id in self.slow_ids:
            time.sleep(self.delay)
        return super().list_rules(promotion_id)


class BrokenStore(InMemoryPromotionStore):
    def list_active_promotions(self, store_id, now):
        raise RuntimeError("Failed to fetch active promotions: timeout")

    def get_promotion(self, promotion_id):
        raise RuntimeError("Failed to fetch promotion: timeout")


class TestApplicablePromotions:
    def test_minimum_order_amount(self, make_promotion, make_rule, make_line, now) -> None:
        store = InMemoryPromotionStore(
            promotions=[make_promotion(1, min_order_amount=Decimal("100"))],
            rules=[make_rule(1)],
        )

        assert applicable_promotions(store, 1, [make_line(1, 1, "80.00")], now=now) == []
        assert [p.promotion_id for p in applicable_promotions(store, 1, [make_line(1, 1, "100.00")], now=now)] == [1]

    def test_filters_inactive_expired_and_exhausted(self, make_promotion, make_rule, make_line, now) -> None:
        store = InMemoryPromotionStore(
            promotions=[
                make_promotion(1),
                make_promotion(2, is_active=False),
                make_promotion(3, end_date=now - timedelta(minutes=1)),
                make_promotion(4, usage_limit=5, usage_count=5),
                make_promotion(5, store_id=2),
            ],
            rules=[make_rule(pid) for pid in (1, 2, 3, 4, 5)],
        )

        result = applicable_promotions(store, 1, [make_line(1, 1, "10.00")], now=now)

        assert [p.promotion_id for p in result] == [1]

    def test_requires_a_matching_rule(self, make_promotion, make_rule, make_line, now) -> None:
        store = InMemoryPromotionStore(
            promotions=[make_promotion(1), make_promotion(2)],
            rules=[
                make_rule(1, rule_type="category", category="dairy"),
                make_rule(2, rule_type="product", product_id=3),
            ],
        )

        result = applicable_promotions(store, 1, [make_line(3, 1, "10.00", "bakery")], now=now)

        assert [p.promotion_id for p in result] == [2]

    def test_promotion_without_rules_never_applies(self, make_promotion, make_line, now) -> None:
        store = InMemoryPromotionStore(promotions=[make_promotion(1)])

        assert applicable_promotions(store, 1, [make_line(1, 1, "10.00")], now=now) == []

    def test_rule_lookup_failure_skips_promotion(self, make_promotion, make_rule, make_line, now) -> None:
        store = FailingRulesStore(
            failing_ids={1},
            promotions=[make_promotion(1), make_promotion(2)],
            rules=[make_rule(1), make_rule(2)],
        )

        result = applicable_promotions(store, 1, [make_line(1, 1, "10.00")], now=now)

        assert [p.promotion_id for p in result] == [2]

    def test_naive_now_is_rejected(self, make_line) -> None:
        from datetime import datetime

        with pytest.raises(ValueError):
            applicable_promotions(InMemoryPromotionStore(), 1, [make_line(1, 1, "1.00")], now=datetime(2025, 1, 1))


class TestComputeDiscount:
    def test_unknown_promotion_yields_zero(self, make_line, now) -> None:
        result = compute_discount(InMemoryPromotionStore(), 42, [make_line(1, 1, "10.00")], now=now)

        assert result.discount_amount == Decimal("0.00")
        assert result.applied_lines == []

    def test_inactive_promotion_yields_zero(self, make_promotion, make_rule, make_line, now) -> None:
        store = InMemoryPromotionStore(promotions=[make_promotion(1, is_active=False)], rules=[make_rule(1)])

        assert compute_discount(store, 1, [make_line(1, 1, "10.00")], now=now).discount_amount == Decimal("0.00")

    def test_is_idempotent(self, make_promotion, make_rule, make_line, now) -> None:
        store = InMemoryPromotionStore(
            promotions=[make_promotion(1, type="buy_x_get_y", value=None)],
            rules=[make_rule(1, buy_quantity=2, get_quantity=1)],
        )
        lines = [make_line(1, 1, "10.00"), make_line(2, 1, "5.00"), make_line(3, 1, "8.00")]

        first = compute_discount(store, 1, lines, now=now)
        second = compute_discount(store, 1, lines, now=now)

        assert first == second
        assert first.discount_amount == Decimal("5.00")
        assert store.get_promotion(1).usage_count == 0

    def test_lookup_failure_yields_zero(self, make_line, now) -> None:
        result = compute_discount(BrokenStore(), 1, [make_line(1, 1, "10.00")], now=now)

        assert result.discount_amount == Decimal("0.00")


class TestApplyPromotions:
    def test_all_eligible_promotions_apply(self, make_promotion, make_rule, make_line, now) -> None:
        store = InMemoryPromotionStore(
            promotions=[
                make_promotion(1, type="percentage", value=Decimal("10"), max_discount_amount=Decimal("15")),
                make_promotion(2, type="fixed_amount", value=Decimal("5")),
            ],
            rules=[make_rule(1), make_rule(2)],
        )

        result = apply_promotions(store, 1, [make_line(1, 2, "100.00")], now=now)

        assert result.subtotal == Decimal("200.00")
        assert result.total_discount == Decimal("20.00")
        assert [(a.promotion_id, a.discount_amount) for a in result.applied] == [
            (1, Decimal("15.00")),
            (2, Decimal("5.00")),
        ]

    def test_total_clamped_to_subtotal(self, make_promotion, make_rule, make_line, now) -> None:
        store = InMemoryPromotionStore(
            promotions=[
                make_promotion(1, type="fixed_amount", value=Decimal("8")),
                make_promotion(2, type="fixed_amount", value=Decimal("8")),
            ],
            rules=[make_rule(1), make_rule(2)],
        )

        result = apply_promotions(store, 1, [make_line(1, 1, "10.00")], now=now)

        assert result.total_discount == Decimal("10.00")
        assert len(result.applied) == 2

    def test_zero_discount_promotions_are_not_listed(self, make_promotion, make_rule, make_line, now) -> None:
        store = InMemoryPromotionStore(
            promotions=[make_promotion(1, type="buy_x_get_y", value=None)],
            rules=[make_rule(1, buy_quantity=3, get_quantity=1)],
        )

        result = apply_promotions(store, 1, [make_line(1, 2, "10.00")], now=now)

        assert result.total_discount == Decimal("0.00")
        assert result.applied == []

    def test_empty_cart(self, make_promotion, make_rule, now) -> None:
        store = InMemoryPromotionStore(promotions=[make_promotion(1)], rules=[make_rule(1)])

        result = apply_promotions(store, 1, [], now=now)

        assert result.total_discount == Decimal("0.00")
        assert result.subtotal == Decimal("0.00")

    def test_store_failure_means_no_discount(self, make_line, now) -> None:
        result = apply_promotions(BrokenStore(), 1, [make_line(1, 1, "10.00")], now=now)

        assert result.total_discount == Decimal("0.00")
        assert result.applied == []

    def test_slow_rule_lookup_is_skipped(self, make_promotion, make_rule, make_line, now) -> None:
        store = SlowRulesStore(
            slow_ids={1},
            delay=0.5,
            promotions=[
                make_promotion(1, type="fixed_amount", value=Decimal("3")),
                make_promotion(2, type="fixed_amount", value=Decimal("2")),
            ],
            rules=[make_rule(1), make_rule(2)],
        )

        result = apply_promotions(store, 1, [make_line(1, 1, "10.00")], now=now, lookup_timeout=0.05)

        assert [a.promotion_id for a in result.applied] == [2]
        assert result.total_discount == Decimal("2.00")

    def test_hung_lookups_do_not_starve_other_stores(self, make_promotion, make_rule, make_line, now) -> None:
        hung = SlowRulesStore(
            slow_ids={1},
            delay=3.0,
            promotions=[make_promotion(1, type="fixed_amount", value=Decimal("3"))],
            rules=[make_rule(1)],
        )
        for _ in range(24):
            stalled = apply_promotions(hung, 1, [make_line(1, 1, "10.00")], now=now, lookup_timeout=0.02)
            assert stalled.total_discount == Decimal("0.00")

        healthy = InMemoryPromotionStore(
            promotions=[make_promotion(2, type="fixed_amount", value=Decimal("5"))],
            rules=[make_rule(2)],
        )
        result = apply_promotions(healthy, 1, [make_line(1, 1, "10.00")], now=now, lookup_timeout=0.5)

        assert result.total_discount == Decimal("5.00")

    def test_does_not_touch_usage_counters(self, make_promotion, make_rule, make_line, now) -> None:
        store = InMemoryPromotionStore(promotions=[make_promotion(1, usage_limit=1)], rules=[make_rule(1)])

        apply_promotions(store, 1, [make_line(1, 1, "10.00")], now=now)
        apply_promotions(store, 1, [make_line(1, 1, "10.00")], now=now)

        assert store.get_promotion(1).usage_count == 0
        assert list_promotion_usage(store) == []


class TestRecordUsage:
    def test_records_fact_and_increments_count(self, make_promotion) -> None:
        store = InMemoryPromotionStore(promotions=[make_promotion(1)])

        result = record_usage(store, 1, Decimal("4.999"), customer_id=7, transaction_id=99)

        assert result.success is True
        assert result.usage.discount_amount == Decimal("5.00")
        assert store.get_promotion(1).usage_count == 1
        assert list_promotion_usage(store, customer_id=7) == [result.usage]
        assert list_promotion_usage(store, customer_id=8) == []

    def test_limit_reached(self, make_promotion) -> None:
        store = InMemoryPromotionStore(promotions=[make_promotion(1, usage_limit=1)])

        assert record_usage(store, 1, Decimal("1.00")).success is True
        rejected = record_usage(store, 1, Decimal("1.00"))

        assert rejected.success is False
        assert rejected.error_code == "USAGE_LIMIT_REACHED"
        assert store.get_promotion(1).usage_count == 1

    def test_unknown_promotion(self) -> None:
        result = record_usage(InMemoryPromotionStore(), 404, Decimal("1.00"))

        assert result.error_code == "PROMOTION_NOT_FOUND"

    def test_negative_amount_is_rejected(self, make_promotion) -> None:
        store = InMemoryPromotionStore(promotions=[make_promotion(1)])

        with pytest.raises(ValueError):
            record_usage(store, 1, Decimal("-1"))

    def test_race_for_last_use_has_one_winner(self, make_promotion) -> None:
        store = InMemoryPromotionStore(promotions=[make_promotion(1, usage_limit=1)])
        barrier = threading.Barrier(2)
        results = []

        def checkout(customer_id: int) -> None:
            barrier.wait()
            results.append(record_usage(store, 1, Decimal("2.00"), customer_id=customer_id))

        threads = [threading.Thread(target=checkout, args=(cid,)) for cid in (1, 2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(r.success for r in results) == [False, True]
        assert [r.error_code for r in results if not r.success] == ["USAGE_LIMIT_REACHED"]
        assert store.get_promotion(1).usage_count == 1
        assert len(list_promotion_usage(store, promotion_id=1)) == 1

    def test_many_concurrent_checkouts_never_overrun_limit(self, make_promotion) -> None:
        store = InMemoryPromotionStore(promotions=[make_promotion(1, usage_limit=3)])
        barrier = threading.Barrier(10)
        results = []

        def checkout() -> None:
            barrier.wait()
            results.append(record_usage(store, 1, Decimal("1.00")))

        threads = [threading.Thread(target=checkout) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(1 for r in results if r.success) == 3
        assert store.get_promotion(1).usage_count == 3


def test_bounded_call_raises_lookup_timeout() -> None:
    with pytest.raises(LookupTimeout):
        bounded_call(time.sleep, 0.5, timeout=0.05)

    assert bounded_call(sum, [1, 2, 3], timeout=1.0) == 6
    assert bounded_call(sum, [1, 2]) == 3


def test_bounded_call_propagates_errors() -> None:
    def lookup():
        raise RuntimeError("connection reset")

    with pytest.raises(RuntimeError, match="connection reset"):
        bounded_call(lookup, timeout=1.0)
