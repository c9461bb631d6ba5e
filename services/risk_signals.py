"""
Risk signals evaluated against a transaction.

Each signal is an independent detector: it reads the snapshot (and, for the
customer and stock signals, the history accessor) and returns a reason
string when it fires, None otherwise. Detectors never share state, so their
order only affects the order of reasons and recommendations.

Weights are fixed and auditable:

  high_value_transaction          total > 500                         25
  cash_only_large_transaction     cash AND total > 200                20
  unusual_quantity                sum(quantity) > 50                  15
  multiple_high_value_items       >= 3 lines with unit_price > 100    20
  suspicious_payment_pattern      card AND cash_tendered > 0          10
  unusual_time_transaction        local hour < 6 or > 22               5
  first_time_customer             customer with 0 prior transactions  10
  frequent_returns                >= 3 voids in trailing 30 days      15
  rapid_sequential_transactions   >= 3 transactions in trailing hour  20
  low_stock_items                 qty > 50% of stock AND stock < 10   10
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple

from domain.cart import CartSnapshot
from domain.risk import RiskSignal
from domain.time import local_hour

HIGH_VALUE_THRESHOLD = Decimal("500")
LARGE_CASH_THRESHOLD = Decimal("200")
UNUSUAL_QUANTITY_THRESHOLD = 50
HIGH_VALUE_ITEM_PRICE = Decimal("100")
HIGH_VALUE_ITEM_COUNT = 3
BUSINESS_HOURS_START = 6
BUSINESS_HOURS_END = 22
FREQUENT_RETURNS_COUNT = 3
FREQUENT_RETURNS_WINDOW = timedelta(days=30)
RAPID_TRANSACTIONS_COUNT = 3
RAPID_TRANSACTIONS_WINDOW = timedelta(hours=1)
LOW_STOCK_LEVEL = 10
LOW_STOCK_SHARE = Decimal("0.5")


@dataclass(frozen=True, slots=True)
class SignalContext:
    """Everything a detector may look at for one evaluation."""
    snapshot: CartSnapshot
    history: Any  # RiskHistoryAccess, possibly wrapped with a lookup timeout
    now: datetime
    timezone_name: str = "UTC"

    @property
    def payment_method(self) -> str:
        return (self.snapshot.payment_method or "").strip().lower()


Detector = Callable[[SignalContext], Optional[str]]


def high_value_transaction(ctx: SignalContext) -> Optional[str]:
    total = ctx.snapshot.transaction_total
    if total > HIGH_VALUE_THRESHOLD:
        return f"High value transaction ({total:.2f})"
    return None


def cash_only_large_transaction(ctx: SignalContext) -> Optional[str]:
    total = ctx.snapshot.transaction_total
    if ctx.payment_method == "cash" and total > LARGE_CASH_THRESHOLD:
        return f"Large cash transaction ({total:.2f})"
    return None


def unusual_quantity(ctx: SignalContext) -> Optional[str]:
    total_items = ctx.snapshot.total_quantity
    if total_items > UNUSUAL_QUANTITY_THRESHOLD:
        return f"Unusually large quantity ({total_items} items)"
    return None


def multiple_high_value_items(ctx: SignalContext) -> Optional[str]:
    count = sum(1 for line in ctx.snapshot.lines if line.unit_price > HIGH_VALUE_ITEM_PRICE)
    if count >= HIGH_VALUE_ITEM_COUNT:
        return f"Multiple high-value items ({count} items)"
    return None


def suspicious_payment_pattern(ctx: SignalContext) -> Optional[str]:
    tendered = ctx.snapshot.cash_tendered
    if ctx.payment_method == "card" and tendered is not None and tendered > 0:
        return "Mixed payment methods detected"
    return None


def unusual_time_transaction(ctx: SignalContext) -> Optional[str]:
    hour = local_hour(ctx.now, ctx.timezone_name)
    if hour < BUSINESS_HOURS_START or hour > BUSINESS_HOURS_END:
        return "Transaction outside normal business hours"
    return None


def first_time_customer(ctx: SignalContext) -> Optional[str]:
    customer_id = ctx.snapshot.customer_id
    if customer_id is None:
        return None
    if ctx.history.count_prior_transactions(customer_id) == 0:
        return "First-time customer transaction"
    return None


def frequent_returns(ctx: SignalContext) -> Optional[str]:
    customer_id = ctx.snapshot.customer_id
    if customer_id is None:
        return None
    voids = ctx.history.count_voids_since(customer_id, ctx.now - FREQUENT_RETURNS_WINDOW)
    if voids >= FREQUENT_RETURNS_COUNT:
        return f"Frequent returns ({voids} in last 30 days)"
    return None


def rapid_sequential_transactions(ctx: SignalContext) -> Optional[str]:
    customer_id = ctx.snapshot.customer_id
    if customer_id is None:
        return None
    recent = ctx.history.count_transactions_since(customer_id, ctx.now - RAPID_TRANSACTIONS_WINDOW)
    if recent >= RAPID_TRANSACTIONS_COUNT:
        return f"Multiple transactions in last hour ({recent})"
    return None


def low_stock_items(ctx: SignalContext) -> Optional[str]:
    product_ids = sorted({line.product_id for line in ctx.snapshot.lines})
    if not product_ids:
        return None

    # Products missing from the map are unknown and never count as low stock.
    stock_levels: Dict[int, int] = ctx.history.get_stock_levels(product_ids)

    low: set[int] = set()
    for line in ctx.snapshot.lines:
        if line.product_id not in stock_levels:
            continue
        stock = stock_levels[line.product_id] or 0
        if stock < LOW_STOCK_LEVEL and line.quantity > stock * LOW_STOCK_SHARE:
            low.add(line.product_id)

    if low:
        return f"Transaction includes low-stock items ({len(low)} items)"
    return None


SIGNALS: Tuple[Tuple[RiskSignal, Detector], ...] = (
    (RiskSignal("high_value_transaction", 25, "Verify customer identity and payment method"),
     high_value_transaction),
    (RiskSignal("cash_only_large_transaction", 20, "Count cash carefully and consider counterfeit detection"),
     cash_only_large_transaction),
    (RiskSignal("unusual_quantity", 15, "Verify legitimate business purpose"),
     unusual_quantity),
    (RiskSignal("multiple_high_value_items", 20, "Verify customer purchasing power and intent"),
     multiple_high_value_items),
    (RiskSignal("suspicious_payment_pattern", 10, "Verify payment method consistency"),
     suspicious_payment_pattern),
    (RiskSignal("unusual_time_transaction", 5, "Extra vigilance for off-hours transactions"),
     unusual_time_transaction),
    (RiskSignal("first_time_customer", 10, "Verify customer information and ID"),
     first_time_customer),
    (RiskSignal("frequent_returns", 15, "Review return policy compliance"),
     frequent_returns),
    (RiskSignal("rapid_sequential_transactions", 20, "Verify legitimate need for multiple transactions"),
     rapid_sequential_transactions),
    (RiskSignal("low_stock_items", 10, "Verify stock levels and update inventory"),
     low_stock_items),
)


__all__ = [
    "SignalContext",
    "SIGNALS",
]
