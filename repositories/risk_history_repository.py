"""
Risk history repository (persistence).

Supabase-backed implementation of services.risk_service.RiskHistoryAccess.
Read-only: counts over the transactions ledger, stock levels from products,
and transactions (with their items) for the risk reports. Reads may be
served from a replica; a few seconds of staleness is acceptable.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping

from domain.cart import CartLine, CartSnapshot
from domain.risk import TransactionRecord
from repositories.row_parsing import (
    optional_decimal,
    optional_int,
    parse_utc_datetime,
    raise_on_error,
    to_iso_utc,
)

logger = logging.getLogger(__name__)

_TRANSACTIONS_TABLE: str = "transactions"
_TRANSACTION_ITEMS_TABLE: str = "transaction_items"
_PRODUCTS_TABLE: str = "products"

VOIDED_STATUS = "voided"


def _row_to_line(row: Mapping[str, Any]) -> CartLine:
    return CartLine(
        product_id=int(row["product_id"]),
        quantity=int(row["quantity"]),
        unit_price=Decimal(str(row["unit_price"])),
        category=row.get("category"),
    )


def _row_to_transaction(row: Mapping[str, Any], item_rows: List[Mapping[str, Any]]) -> TransactionRecord:
    """Convert a transaction row and its item rows into a TransactionRecord."""

    lines: List[CartLine] = []
    for item in item_rows:
        try:
            lines.append(_row_to_line(item))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                "Skipping malformed transaction item",
                extra={"transaction_id": row.get("id"), "item_id": item.get("id"), "error": str(e)},
            )

    created_at = parse_utc_datetime(row["created_at"])
    snapshot = CartSnapshot(
        store_id=int(row.get("store_id") or 0),
        lines=tuple(lines),
        payment_method=str(row.get("payment_method") or "cash"),
        cash_tendered=optional_decimal(row.get("cash_tendered"), name="cash_tendered"),
        customer_id=optional_int(row.get("customer_id")),
        timestamp_override=created_at,
        total=optional_decimal(row.get("total"), name="total"),
    )
    return TransactionRecord(
        transaction_id=int(row["id"]),
        transaction_number=row.get("transaction_number"),
        status=str(row.get("status") or "completed"),
        created_at=created_at,
        snapshot=snapshot,
    )


class SupabaseRiskHistory:
    """
    RiskHistoryAccess over Supabase tables.

    Example:
        history = SupabaseRiskHistory()
        assessment = assess_risk(snapshot, history, lookup_timeout=2.0)
    """

    def __init__(self, client: Any = None):
        if client is None:
            from repositories.client import get_supabase
            client = get_supabase()
        self._client = client

    def _count(self, query: Any, action: str) -> int:
        response = query.limit(1).execute()
        raise_on_error(response, action)
        return int(getattr(response, "count", None) or 0)

    def count_prior_transactions(self, customer_id: int) -> int:
        query = (
            self._client.table(_TRANSACTIONS_TABLE)
            .select("id", count="exact")
            .eq("customer_id", customer_id)
        )
        return self._count(query, "count customer transactions")

    def count_voids_since(self, customer_id: int, since: datetime) -> int:
        query = (
            self._client.table(_TRANSACTIONS_TABLE)
            .select("id", count="exact")
            .eq("customer_id", customer_id)
            .eq("status", VOIDED_STATUS)
            .gte("created_at", to_iso_utc(since, name="since"))
        )
        return self._count(query, "count voided transactions")

    def count_transactions_since(self, customer_id: int, since: datetime) -> int:
        query = (
            self._client.table(_TRANSACTIONS_TABLE)
            .select("id", count="exact")
            .eq("customer_id", customer_id)
            .gte("created_at", to_iso_utc(since, name="since"))
        )
        return self._count(query, "count recent transactions")

    def get_stock_levels(self, product_ids: List[int]) -> Dict[int, int]:
        """Current stock per product; a NULL stock column reads as 0."""
        if not product_ids:
            return {}

        response = (
            self._client.table(_PRODUCTS_TABLE)
            .select("id, stock")
            .in_("id", list(product_ids))
            .execute()
        )
        rows = raise_on_error(response, "fetch stock levels")
        return {int(row["id"]): int(row.get("stock") or 0) for row in rows}

    def _with_items(self, rows: List[Mapping[str, Any]]) -> List[TransactionRecord]:
        if not rows:
            return []

        ids = [int(row["id"]) for row in rows]
        response = (
            self._client.table(_TRANSACTION_ITEMS_TABLE)
            .select("*")
            .in_("transaction_id", ids)
            .execute()
        )
        item_rows = raise_on_error(response, "fetch transaction items")

        items_by_transaction: Dict[int, List[Mapping[str, Any]]] = defaultdict(list)
        for item in item_rows:
            items_by_transaction[int(item["transaction_id"])].append(item)

        return [
            _row_to_transaction(row, items_by_transaction.get(int(row["id"]), []))
            for row in rows
        ]

    def list_customer_transactions(self, customer_id: int, limit: int) -> List[TransactionRecord]:
        """Most recent transactions of a customer, newest first."""
        response = (
            self._client.table(_TRANSACTIONS_TABLE)
            .select("*")
            .eq("customer_id", customer_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        rows = raise_on_error(response, "list customer transactions")
        return self._with_items(rows)

    def list_transactions_between(self, start: datetime, end: datetime) -> List[TransactionRecord]:
        """Transactions with start <= created_at < end, oldest first."""
        response = (
            self._client.table(_TRANSACTIONS_TABLE)
            .select("*")
            .gte("created_at", to_iso_utc(start, name="start"))
            .lt("created_at", to_iso_utc(end, name="end"))
            .order("created_at")
            .execute()
        )
        rows = raise_on_error(response, "list transactions for period")
        return self._with_items(rows)


__all__ = [
    "SupabaseRiskHistory",
]
