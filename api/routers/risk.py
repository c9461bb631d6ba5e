"""
Risk API Endpoints.

Endpoints for scoring transactions and reviewing risk history.
"""

from datetime import date, timezone

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_risk_history, get_settings
from api.models import (
    AssessedTransactionResponse,
    CustomerRiskHistoryResponse,
    DailyRiskSummaryResponse,
    RiskAssessmentRequest,
    RiskAssessmentResponse,
)
from api.routers.promotions import to_cart_lines
from config.settings import Settings
from domain.cart import CartSnapshot
from domain.risk import AssessedTransaction, RiskAssessment
from services.risk_service import (
    RiskHistoryAccess,
    assess_risk,
    get_daily_risk_summary,
    get_transaction_risk_history,
)

router = APIRouter()


def _assessment_response(assessment: RiskAssessment) -> RiskAssessmentResponse:
    return RiskAssessmentResponse(**assessment.to_dict())


def _assessed_response(item: AssessedTransaction) -> AssessedTransactionResponse:
    record = item.transaction
    return AssessedTransactionResponse(
        transaction_id=record.transaction_id,
        transaction_number=record.transaction_number,
        status=record.status,
        created_at=record.created_at,
        total=record.snapshot.transaction_total,
        assessment=_assessment_response(item.assessment),
    )


@router.post(
    "/risk/assess",
    response_model=RiskAssessmentResponse,
    summary="Assess Transaction Risk",
    description="Score a transaction against every risk signal and map the score to a risk level."
)
def assess_transaction_risk(
    request: RiskAssessmentRequest,
    history: RiskHistoryAccess = Depends(get_risk_history),
    settings: Settings = Depends(get_settings),
):
    """
    Assess the risk of a transaction.

    Signals whose lookups fail count as not fired, so this endpoint answers
    even when the transaction history is unavailable.

    **Example request:**
    ```json
    {
      "store_id": 1,
      "lines": [{"product_id": 42, "quantity": 1, "unit_price": "250.00"}],
      "payment_method": "cash",
      "customer_id": 15
    }
    ```
    """
    try:
        timestamp = request.timestamp_override
        if timestamp is not None and timestamp.tzinfo is not None:
            timestamp = timestamp.astimezone(timezone.utc)

        snapshot = CartSnapshot(
            store_id=request.store_id,
            lines=tuple(to_cart_lines(request.lines)),
            payment_method=request.payment_method,
            cash_tendered=request.cash_tendered,
            customer_id=request.customer_id,
            timestamp_override=timestamp,
            total=request.total,
        )

        assessment = assess_risk(
            snapshot,
            history,
            lookup_timeout=settings.lookup_timeout_seconds,
            timezone_name=settings.store_timezone,
        )
        return _assessment_response(assessment)

    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to assess risk: {str(e)}"
        )


@router.get(
    "/risk/customers/{customer_id}",
    response_model=CustomerRiskHistoryResponse,
    summary="Customer Risk History",
    description="Re-assess a customer's most recent transactions."
)
def get_customer_risk_history(
    customer_id: int,
    limit: int = Query(10, ge=1, le=100, description="Number of recent transactions"),
    history: RiskHistoryAccess = Depends(get_risk_history),
    settings: Settings = Depends(get_settings),
):
    try:
        assessed = get_transaction_risk_history(
            customer_id,
            history,
            limit,
            lookup_timeout=settings.lookup_timeout_seconds,
            timezone_name=settings.store_timezone,
        )
        return CustomerRiskHistoryResponse(
            customer_id=customer_id,
            transactions=[_assessed_response(item) for item in assessed],
        )

    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to get risk history: {str(e)}"
        )


@router.get(
    "/risk/daily/{day}",
    response_model=DailyRiskSummaryResponse,
    summary="Daily Risk Summary",
    description="Risk level counts and flagged transactions for one UTC calendar day."
)
def get_daily_summary(
    day: date,
    history: RiskHistoryAccess = Depends(get_risk_history),
    settings: Settings = Depends(get_settings),
):
    """
    Summarize risk for every transaction created on `day`.

    Returns 503 when the transaction ledger cannot be read.
    """
    try:
        summary = get_daily_risk_summary(
            day,
            history,
            lookup_timeout=settings.lookup_timeout_seconds,
            timezone_name=settings.store_timezone,
        )

        if summary is None:
            raise HTTPException(
                status_code=503,
                detail=f"Transaction history unavailable for {day.isoformat()}"
            )

        average = (
            summary.total_risk_score / summary.total_transactions
            if summary.total_transactions
            else 0.0
        )

        return DailyRiskSummaryResponse(
            day=summary.day,
            total_transactions=summary.total_transactions,
            low_risk=summary.low_risk,
            medium_risk=summary.medium_risk,
            high_risk=summary.high_risk,
            critical_risk=summary.critical_risk,
            total_risk_score=summary.total_risk_score,
            average_risk_score=round(average, 2),
            flagged=[_assessed_response(item) for item in summary.flagged],
        )

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to get daily risk summary: {str(e)}"
        )
