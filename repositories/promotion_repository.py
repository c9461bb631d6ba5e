"""
Promotion repository (persistence).

Supabase-backed implementation of services.promotion_service.PromotionDataAccess.
It only reads and writes rows; eligibility and discount rules live in the
services.

Usage accounting goes through the PostgreSQL function
record_promotion_usage() (sql/record_promotion_usage.sql), which in a single
transaction:
- increments usage_count with a conditional UPDATE
  (usage_limit IS NULL OR usage_count < usage_limit)
- inserts the promotion_usage fact
so concurrent checkouts cannot overrun usage_limit.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, List, Mapping, Optional, TypeVar

from domain.promotion import (
    Promotion,
    PromotionRule,
    PromotionUsage,
    UsageRecordResult,
)
from domain.time import utc_now
from repositories.row_parsing import (
    optional_decimal,
    optional_int,
    parse_utc_datetime,
    raise_on_error,
    to_iso_utc,
)

logger = logging.getLogger(__name__)

# Supabase table names. Keep these aligned with your database schema.
_PROMOTIONS_TABLE: str = "promotions"
_RULES_TABLE: str = "promotion_rules"
_USAGE_TABLE: str = "promotion_usage"
_RECORD_USAGE_RPC: str = "record_promotion_usage"

T = TypeVar("T")


def _row_to_promotion(row: Mapping[str, Any]) -> Promotion:
    """Convert a Supabase row into a Promotion."""

    return Promotion(
        promotion_id=int(row["id"]),
        store_id=int(row["store_id"]),
        name=str(row["name"]),
        type=row["type"],
        value=optional_decimal(row.get("value"), name="value"),
        start_date=parse_utc_datetime(row["start_date"]),
        end_date=parse_utc_datetime(row["end_date"]),
        is_active=bool(row.get("is_active", True)),
        min_order_amount=optional_decimal(row.get("min_order_amount"), name="min_order_amount"),
        max_discount_amount=optional_decimal(row.get("max_discount_amount"), name="max_discount_amount"),
        usage_limit=optional_int(row.get("usage_limit")),
        usage_count=int(row.get("usage_count") or 0),
        customer_limit=optional_int(row.get("customer_limit")),
        description=row.get("description"),
    )


def _row_to_rule(row: Mapping[str, Any]) -> PromotionRule:
    """Convert a Supabase row into a PromotionRule."""

    return PromotionRule(
        rule_id=int(row["id"]),
        promotion_id=int(row["promotion_id"]),
        rule_type=row["rule_type"],
        product_id=optional_int(row.get("product_id")),
        category=row.get("category"),
        buy_quantity=optional_int(row.get("buy_quantity")),
        get_quantity=optional_int(row.get("get_quantity")),
    )


def _row_to_usage(row: Mapping[str, Any]) -> PromotionUsage:
    """Convert a Supabase row into a PromotionUsage."""

    return PromotionUsage(
        usage_id=int(row["id"]),
        promotion_id=int(row["promotion_id"]),
        discount_amount=Decimal(str(row["discount_amount"])),
        created_at=parse_utc_datetime(row["created_at"]),
        customer_id=optional_int(row.get("customer_id")),
        transaction_id=optional_int(row.get("transaction_id")),
    )


def _parse_rows(rows: List[Mapping[str, Any]], convert: Callable[[Mapping[str, Any]], T], kind: str) -> List[T]:
    """
    Convert rows, skipping (and logging) malformed ones.

    An unknown promotion type or rule type, or a missing required column,
    removes that row from evaluation instead of failing the whole query.
    """
    parsed: List[T] = []
    for row in rows:
        try:
            parsed.append(convert(row))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                f"Skipping malformed {kind} row",
                extra={"row_id": row.get("id"), "error": str(e)},
            )
    return parsed


class SupabasePromotionStore:
    """
    PromotionDataAccess over Supabase tables.

    Example:
        store = SupabasePromotionStore()
        result = apply_promotions(store, store_id=1, lines=lines)
    """

    def __init__(self, client: Any = None):
        if client is None:
            from repositories.client import get_supabase
            client = get_supabase()
        self._client = client

    def list_active_promotions(self, store_id: int, now: datetime) -> List[Promotion]:
        """
        Promotions of a store flagged active whose window contains `now`.

        The usage limit is checked by the service, against the returned
        usage_count.
        """
        now_iso = to_iso_utc(now, name="now")
        response = (
            self._client.table(_PROMOTIONS_TABLE)
            .select("*")
            .eq("store_id", store_id)
            .eq("is_active", True)
            .lte("start_date", now_iso)
            .gte("end_date", now_iso)
            .execute()
        )
        rows = raise_on_error(response, "fetch active promotions")
        return _parse_rows(rows, _row_to_promotion, "promotion")

    def get_promotion(self, promotion_id: int) -> Optional[Promotion]:
        response = (
            self._client.table(_PROMOTIONS_TABLE)
            .select("*")
            .eq("id", promotion_id)
            .limit(1)
            .execute()
        )
        rows = raise_on_error(response, "fetch promotion")
        promotions = _parse_rows(rows, _row_to_promotion, "promotion")
        return promotions[0] if promotions else None

    def list_rules(self, promotion_id: int) -> List[PromotionRule]:
        response = (
            self._client.table(_RULES_TABLE)
            .select("*")
            .eq("promotion_id", promotion_id)
            .execute()
        )
        rows = raise_on_error(response, "fetch promotion rules")
        return _parse_rows(rows, _row_to_rule, "promotion rule")

    def record_usage(
        self,
        promotion_id: int,
        discount_amount: Decimal,
        customer_id: Optional[int] = None,
        transaction_id: Optional[int] = None,
    ) -> UsageRecordResult:
        """
        Atomically increment usage_count and append a usage fact via RPC.

        Only the call itself can fail the write. Once the function answers
        success, the usage is committed and this returns success even if
        the answer's usage_id or created_at cannot be read.

        Returns:
            UsageRecordResult with the created usage, or an error code:
            USAGE_LIMIT_REACHED, PROMOTION_NOT_FOUND, RPC_ERROR, API_ERROR, EXCEPTION
        """
        from postgrest.exceptions import APIError

        params = {
            "p_promotion_id": promotion_id,
            "p_discount_amount": str(discount_amount),
            "p_customer_id": customer_id,
            "p_transaction_id": transaction_id,
        }

        try:
            response = self._client.rpc(_RECORD_USAGE_RPC, params).execute()

        except APIError as e:
            # supabase-py may raise APIError for a JSON body returned by the
            # function, including a successful one.
            try:
                error_data = e.json() if callable(getattr(e, "json", None)) else {}
            except Exception:
                error_data = {}

            if not (isinstance(error_data, dict) and "success" in error_data):
                return UsageRecordResult(
                    success=False,
                    usage=None,
                    error_code="API_ERROR",
                    error_message=str(e),
                )
            result = error_data

        except Exception as e:
            return UsageRecordResult(
                success=False,
                usage=None,
                error_code="EXCEPTION",
                error_message=str(e),
            )

        else:
            error = getattr(response, "error", None)
            if error:
                return UsageRecordResult(
                    success=False,
                    usage=None,
                    error_code="RPC_ERROR",
                    error_message=str(error),
                )
            result = response.data or {}

        return self._usage_result(result, promotion_id, discount_amount, customer_id, transaction_id)

    @staticmethod
    def _usage_result(
        result: Mapping[str, Any],
        promotion_id: int,
        discount_amount: Decimal,
        customer_id: Optional[int],
        transaction_id: Optional[int],
    ) -> UsageRecordResult:
        if not result.get("success"):
            return UsageRecordResult(
                success=False,
                usage=None,
                error_code=result.get("error"),
                error_message=result.get("message"),
            )

        try:
            usage_id = optional_int(result.get("usage_id"))
        except (TypeError, ValueError):
            logger.warning(
                "Committed usage returned an unreadable usage_id",
                extra={"promotion_id": promotion_id, "usage_id": result.get("usage_id")},
            )
            usage_id = None

        try:
            created_at = parse_utc_datetime(result.get("created_at"))
        except (TypeError, ValueError):
            logger.warning(
                "Committed usage returned an unreadable created_at, using current time",
                extra={"promotion_id": promotion_id, "created_at": result.get("created_at")},
            )
            created_at = utc_now()

        usage = PromotionUsage(
            usage_id=usage_id,
            promotion_id=promotion_id,
            discount_amount=discount_amount,
            created_at=created_at,
            customer_id=customer_id,
            transaction_id=transaction_id,
        )
        return UsageRecordResult(success=True, usage=usage)

    def list_usage(
        self,
        promotion_id: Optional[int] = None,
        customer_id: Optional[int] = None,
    ) -> List[PromotionUsage]:
        query = self._client.table(_USAGE_TABLE).select("*")
        if promotion_id is not None:
            query = query.eq("promotion_id", promotion_id)
        if customer_id is not None:
            query = query.eq("customer_id", customer_id)

        rows = raise_on_error(query.order("created_at").execute(), "list promotion usage")
        return _parse_rows(rows, _row_to_usage, "promotion usage")


__all__ = [
    "SupabasePromotionStore",
]
