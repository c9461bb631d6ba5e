"""
Risk service for scoring transactions.

Evaluates every signal in services.risk_signals against a transaction
snapshot, sums the weights of the signals that fire and classifies the total
into a RiskLevel.

Degradation:
- A signal whose history lookup fails or times out is treated as not fired.
- assess_risk always returns a complete RiskAssessment.
- History and daily-summary reports degrade to an empty list / None.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Protocol

from domain.cart import CartSnapshot
from domain.risk import (
    AssessedTransaction,
    DailyRiskSummary,
    RiskAssessment,
    RiskLevel,
    TransactionRecord,
)
from domain.time import require_utc_timestamp, utc_now
from services.lookups import bounded_call
from services.risk_signals import SIGNALS, SignalContext

logger = logging.getLogger(__name__)


class RiskHistoryAccess(Protocol):
    """Read-only lookups over the transaction ledger and product stock."""

    def count_prior_transactions(self, customer_id: int) -> int: ...

    def count_voids_since(self, customer_id: int, since: datetime) -> int: ...

    def count_transactions_since(self, customer_id: int, since: datetime) -> int: ...

    def get_stock_levels(self, product_ids: List[int]) -> Dict[int, int]: ...

    def list_customer_transactions(self, customer_id: int, limit: int) -> List[TransactionRecord]: ...

    def list_transactions_between(self, start: datetime, end: datetime) -> List[TransactionRecord]: ...


class _BoundedHistory:
    """Proxy that applies the caller's lookup timeout to every history call."""

    def __init__(self, history: RiskHistoryAccess, timeout: Optional[float]):
        self._history = history
        self._timeout = timeout

    def count_prior_transactions(self, customer_id: int) -> int:
        return bounded_call(self._history.count_prior_transactions, customer_id, timeout=self._timeout)

    def count_voids_since(self, customer_id: int, since: datetime) -> int:
        return bounded_call(self._history.count_voids_since, customer_id, since, timeout=self._timeout)

    def count_transactions_since(self, customer_id: int, since: datetime) -> int:
        return bounded_call(self._history.count_transactions_since, customer_id, since, timeout=self._timeout)

    def get_stock_levels(self, product_ids: List[int]) -> Dict[int, int]:
        return bounded_call(self._history.get_stock_levels, product_ids, timeout=self._timeout)


def _dedupe(items: Iterable[str]) -> List[str]:
    seen: set[str] = set()
    result: List[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def assess_risk(
    snapshot: CartSnapshot,
    history: RiskHistoryAccess,
    *,
    now: Optional[datetime] = None,
    lookup_timeout: Optional[float] = None,
    timezone_name: str = "UTC",
) -> RiskAssessment:
    """
    Score a transaction against every risk signal.

    The evaluation instant is the snapshot's timestamp_override, else `now`,
    else the current time. Trailing windows (30 days, 1 hour) and the
    business-hours check are measured from that instant; the hour is read in
    `timezone_name`.

    Args:
        snapshot: Transaction to assess
        history: Ledger/stock accessor
        now: Evaluation instant when the snapshot carries none (UTC)
        lookup_timeout: Seconds allowed per history lookup (None = unbounded)
        timezone_name: Store timezone for the business-hours check

    Returns:
        RiskAssessment; never raises for lookup failures

    Example:
        assessment = assess_risk(snapshot, history)
        if assessment.risk_level is RiskLevel.CRITICAL:
            print(assessment.recommendations)
    """
    instant = snapshot.timestamp_override or now or utc_now()
    require_utc_timestamp("now", instant)

    ctx = SignalContext(
        snapshot=snapshot,
        history=_BoundedHistory(history, lookup_timeout),
        now=instant,
        timezone_name=timezone_name,
    )

    score = 0
    factors: Dict[str, bool] = {}
    reasons: List[str] = []
    signal_recommendations: List[str] = []

    for signal, detect in SIGNALS:
        try:
            reason = detect(ctx)
        except Exception as e:
            logger.warning(
                f"Risk signal '{signal.name}' unavailable; treated as not fired",
                extra={
                    "signal": signal.name,
                    "customer_id": snapshot.customer_id,
                    "error": str(e),
                },
            )
            reason = None

        factors[signal.name] = reason is not None
        if reason is None:
            continue

        score += signal.weight
        reasons.append(reason)
        signal_recommendations.append(signal.recommendation)

    level = RiskLevel.from_score(score)

    return RiskAssessment(
        risk_score=score,
        risk_level=level,
        risk_factors=factors,
        risk_reasons=reasons,
        recommendations=_dedupe([*signal_recommendations, *level.recommendations]),
    )


def _assess_record(
    record: TransactionRecord,
    history: RiskHistoryAccess,
    lookup_timeout: Optional[float],
    timezone_name: str,
) -> RiskAssessment:
    return assess_risk(
        record.snapshot,
        history,
        now=record.created_at,
        lookup_timeout=lookup_timeout,
        timezone_name=timezone_name,
    )


def get_transaction_risk_history(
    customer_id: int,
    history: RiskHistoryAccess,
    limit: int = 10,
    *,
    lookup_timeout: Optional[float] = None,
    timezone_name: str = "UTC",
) -> List[AssessedTransaction]:
    """
    Re-assess a customer's most recent transactions.

    Each transaction is assessed as of its own created_at. Returns an empty
    list when the ledger cannot be read.
    """
    try:
        records = bounded_call(history.list_customer_transactions, customer_id, limit, timeout=lookup_timeout)
    except Exception as e:
        logger.warning(
            "Customer transaction lookup failed; empty risk history",
            extra={"customer_id": customer_id, "error": str(e)},
        )
        return []

    return [
        AssessedTransaction(
            transaction=record,
            assessment=_assess_record(record, history, lookup_timeout, timezone_name),
        )
        for record in records
    ]


def get_daily_risk_summary(
    day: date,
    history: RiskHistoryAccess,
    *,
    lookup_timeout: Optional[float] = None,
    timezone_name: str = "UTC",
) -> Optional[DailyRiskSummary]:
    """
    Summarize risk for every transaction created on `day` (UTC calendar day).

    High and critical transactions are listed in `flagged`. Returns None
    when the ledger cannot be read.
    """
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    end = start + timedelta(days=1)

    try:
        records = bounded_call(history.list_transactions_between, start, end, timeout=lookup_timeout)
    except Exception as e:
        logger.warning(
            "Daily transaction lookup failed; no risk summary",
            extra={"day": day.isoformat(), "error": str(e)},
        )
        return None

    counts = {level: 0 for level in RiskLevel}
    total_score = 0
    flagged: List[AssessedTransaction] = []

    for record in records:
        assessment = _assess_record(record, history, lookup_timeout, timezone_name)
        counts[assessment.risk_level] += 1
        total_score += assessment.risk_score
        if assessment.risk_level.rank >= RiskLevel.HIGH.rank:
            flagged.append(AssessedTransaction(transaction=record, assessment=assessment))

    return DailyRiskSummary(
        day=day,
        total_transactions=len(records),
        low_risk=counts[RiskLevel.LOW],
        medium_risk=counts[RiskLevel.MEDIUM],
        high_risk=counts[RiskLevel.HIGH],
        critical_risk=counts[RiskLevel.CRITICAL],
        total_risk_score=total_score,
        flagged=flagged,
    )


__all__ = [
    "RiskHistoryAccess",
    "assess_risk",
    "get_transaction_risk_history",
    "get_daily_risk_summary",
]
