"""
In-memory stores.

Process-local implementations of PromotionDataAccess and RiskHistoryAccess,
used by the API when DATA_BACKEND=memory and by the tests. Both are safe to
share across threads: every read and write holds the store's lock, and the
usage increment is a check-and-set under that lock.

load_seed_file() fills both stores from a JSON export of the tables
(MEMORY_SEED_FILE).
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from itertools import count
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from domain.promotion import (
    Promotion,
    PromotionRule,
    PromotionUsage,
    UsageRecordResult,
)
from domain.risk import TransactionRecord
from domain.time import require_utc_timestamp, utc_now
from repositories.promotion_repository import _parse_rows, _row_to_promotion, _row_to_rule
from repositories.risk_history_repository import _row_to_transaction

logger = logging.getLogger(__name__)

VOIDED_STATUS = "voided"


class InMemoryPromotionStore:
    """
    PromotionDataAccess over dictionaries.

    Example:
        store = InMemoryPromotionStore(promotions=[promo], rules=[rule])
        result = apply_promotions(store, store_id=1, lines=lines)
    """

    def __init__(
        self,
        promotions: Iterable[Promotion] = (),
        rules: Iterable[PromotionRule] = (),
    ):
        self._lock = threading.Lock()
        self._promotions: Dict[int, Promotion] = {p.promotion_id: p for p in promotions}
        self._rules: Dict[int, List[PromotionRule]] = {}
        for rule in rules:
            self._rules.setdefault(rule.promotion_id, []).append(rule)
        self._usage: List[PromotionUsage] = []
        self._usage_ids = count(1)

    def list_active_promotions(self, store_id: int, now: datetime) -> List[Promotion]:
        with self._lock:
            return [
                p for p in self._promotions.values()
                if p.store_id == store_id and p.is_active and p.start_date <= now <= p.end_date
            ]

    def get_promotion(self, promotion_id: int) -> Optional[Promotion]:
        with self._lock:
            return self._promotions.get(promotion_id)

    def list_rules(self, promotion_id: int) -> List[PromotionRule]:
        with self._lock:
            return list(self._rules.get(promotion_id, []))

    def record_usage(
        self,
        promotion_id: int,
        discount_amount: Decimal,
        customer_id: Optional[int] = None,
        transaction_id: Optional[int] = None,
    ) -> UsageRecordResult:
        with self._lock:
            promotion = self._promotions.get(promotion_id)
            if promotion is None:
                return UsageRecordResult(
                    success=False,
                    usage=None,
                    error_code="PROMOTION_NOT_FOUND",
                    error_message=f"Promotion {promotion_id} not found",
                )

            if promotion.usage_limit_reached:
                return UsageRecordResult(
                    success=False,
                    usage=None,
                    error_code="USAGE_LIMIT_REACHED",
                    error_message=f"Promotion {promotion_id} reached its usage limit of {promotion.usage_limit}",
                )

            self._promotions[promotion_id] = replace(promotion, usage_count=promotion.usage_count + 1)
            usage = PromotionUsage(
                usage_id=next(self._usage_ids),
                promotion_id=promotion_id,
                discount_amount=discount_amount,
                created_at=utc_now(),
                customer_id=customer_id,
                transaction_id=transaction_id,
            )
            self._usage.append(usage)
            return UsageRecordResult(success=True, usage=usage)

    def list_usage(
        self,
        promotion_id: Optional[int] = None,
        customer_id: Optional[int] = None,
    ) -> List[PromotionUsage]:
        with self._lock:
            return [
                u for u in self._usage
                if (promotion_id is None or u.promotion_id == promotion_id)
                and (customer_id is None or u.customer_id == customer_id)
            ]


class InMemoryRiskHistory:
    """RiskHistoryAccess over a list of transactions and a stock map."""

    def __init__(
        self,
        transactions: Iterable[TransactionRecord] = (),
        stock_levels: Optional[Mapping[int, int]] = None,
    ):
        self._lock = threading.Lock()
        self._transactions: List[TransactionRecord] = list(transactions)
        self._stock: Dict[int, int] = dict(stock_levels or {})

    def _for_customer(self, customer_id: int) -> List[TransactionRecord]:
        return [t for t in self._transactions if t.snapshot.customer_id == customer_id]

    def count_prior_transactions(self, customer_id: int) -> int:
        with self._lock:
            return len(self._for_customer(customer_id))

    def count_voids_since(self, customer_id: int, since: datetime) -> int:
        require_utc_timestamp("since", since)
        with self._lock:
            return sum(
                1 for t in self._for_customer(customer_id)
                if t.status == VOIDED_STATUS and t.created_at >= since
            )

    def count_transactions_since(self, customer_id: int, since: datetime) -> int:
        require_utc_timestamp("since", since)
        with self._lock:
            return sum(1 for t in self._for_customer(customer_id) if t.created_at >= since)

    def get_stock_levels(self, product_ids: List[int]) -> Dict[int, int]:
        with self._lock:
            return {pid: self._stock[pid] for pid in product_ids if pid in self._stock}

    def list_customer_transactions(self, customer_id: int, limit: int) -> List[TransactionRecord]:
        with self._lock:
            records = sorted(self._for_customer(customer_id), key=lambda t: t.created_at, reverse=True)
        return records[:limit]

    def list_transactions_between(self, start: datetime, end: datetime) -> List[TransactionRecord]:
        with self._lock:
            records = [t for t in self._transactions if start <= t.created_at < end]
        return sorted(records, key=lambda t: t.created_at)


def load_seed_file(path: Path) -> Tuple[InMemoryPromotionStore, InMemoryRiskHistory]:
    """
    Build both in-memory stores from a JSON file keyed by table name.

    Rows use the same columns as the Supabase tables, so an export of
    promotions, promotion_rules, transactions, transaction_items and
    products (id, stock) loads as-is. Missing keys mean empty tables, and
    malformed rows are skipped with a warning.

    Example:
        {"promotions": [{"id": 1, "store_id": 1, "name": "10% off", ...}],
         "promotion_rules": [{"id": 1, "promotion_id": 1, "rule_type": "all_products"}],
         "products": [{"id": 3, "stock": 4}]}

    Raises:
        RuntimeError: If the file cannot be read or is not a JSON object
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            tables = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise RuntimeError(f"Failed to load memory seed file {path}: {e}") from e
    if not isinstance(tables, dict):
        raise RuntimeError(f"Memory seed file {path} must hold a JSON object keyed by table name")

    promotions = _parse_rows(tables.get("promotions", []), _row_to_promotion, "promotion")
    rules = _parse_rows(tables.get("promotion_rules", []), _row_to_rule, "promotion rule")

    items_by_transaction: Dict[int, List[Mapping[str, Any]]] = defaultdict(list)
    for item in tables.get("transaction_items", []):
        if item.get("transaction_id") is None:
            continue
        items_by_transaction[int(item["transaction_id"])].append(item)

    transactions = _parse_rows(
        tables.get("transactions", []),
        lambda row: _row_to_transaction(row, items_by_transaction.get(int(row["id"]), [])),
        "transaction",
    )
    stock_levels = {
        int(row["id"]): int(row.get("stock") or 0)
        for row in tables.get("products", [])
        if row.get("id") is not None
    }

    logger.info(
        "Loaded memory seed file",
        extra={
            "path": str(path),
            "promotions": len(promotions),
            "transactions": len(transactions),
        },
    )
    return (
        InMemoryPromotionStore(promotions=promotions, rules=rules),
        InMemoryRiskHistory(transactions=transactions, stock_levels=stock_levels),
    )


__all__ = [
    "InMemoryPromotionStore",
    "InMemoryRiskHistory",
    "load_seed_file",
]
