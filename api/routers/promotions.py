"""
Promotions API Endpoints.

Endpoints for evaluating promotions against a cart and recording usage.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_promotion_store, get_settings
from api.models import (
    AppliedLineResponse,
    AppliedPromotionResponse,
    ApplicablePromotionsRequest,
    ApplyPromotionsRequest,
    ApplyPromotionsResponse,
    CartLineIn,
    DiscountRequest,
    DiscountResponse,
    PromotionResponse,
    PromotionUsageListResponse,
    PromotionUsageResponse,
    RecordUsageRequest,
)
from config.settings import Settings
from domain.cart import CartLine
from domain.promotion import Promotion, PromotionUsage
from services.promotion_service import (
    PromotionDataAccess,
    applicable_promotions,
    apply_promotions,
    compute_discount,
    list_promotion_usage,
    record_usage,
)

router = APIRouter()

_STATUS_BY_ERROR_CODE = {
    "PROMOTION_NOT_FOUND": 404,
    "USAGE_LIMIT_REACHED": 409,
}


def to_cart_lines(lines: List[CartLineIn]) -> List[CartLine]:
    return [
        CartLine(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price=line.unit_price,
            category=line.category,
        )
        for line in lines
    ]


def _promotion_response(promotion: Promotion) -> PromotionResponse:
    return PromotionResponse(
        promotion_id=promotion.promotion_id,
        store_id=promotion.store_id,
        name=promotion.name,
        description=promotion.description,
        type=promotion.type.value,
        value=promotion.value,
        min_order_amount=promotion.min_order_amount,
        max_discount_amount=promotion.max_discount_amount,
        start_date=promotion.start_date,
        end_date=promotion.end_date,
        usage_limit=promotion.usage_limit,
        usage_count=promotion.usage_count,
    )


def _usage_response(usage: PromotionUsage) -> PromotionUsageResponse:
    return PromotionUsageResponse(
        usage_id=usage.usage_id,
        promotion_id=usage.promotion_id,
        discount_amount=usage.discount_amount,
        customer_id=usage.customer_id,
        transaction_id=usage.transaction_id,
        created_at=usage.created_at,
    )


@router.post(
    "/promotions/applicable",
    response_model=List[PromotionResponse],
    summary="List Applicable Promotions",
    description="Active promotions of the store whose rules match the cart and whose minimum order is met."
)
def list_applicable_promotions(
    request: ApplicablePromotionsRequest,
    store: PromotionDataAccess = Depends(get_promotion_store),
    settings: Settings = Depends(get_settings),
):
    """
    List the promotions that apply to a cart right now.

    **Example request:**
    ```json
    {
      "store_id": 1,
      "lines": [{"product_id": 42, "quantity": 2, "unit_price": "50.00"}]
    }
    ```
    """
    try:
        promotions = applicable_promotions(
            store,
            request.store_id,
            to_cart_lines(request.lines),
            lookup_timeout=settings.lookup_timeout_seconds,
        )
        return [_promotion_response(promotion) for promotion in promotions]

    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to list applicable promotions: {str(e)}"
        )


@router.post(
    "/promotions/{promotion_id}/discount",
    response_model=DiscountResponse,
    summary="Compute Promotion Discount",
    description="Discount one promotion grants on a cart. Missing or inactive promotions yield zero."
)
def compute_promotion_discount(
    promotion_id: int,
    request: DiscountRequest,
    store: PromotionDataAccess = Depends(get_promotion_store),
    settings: Settings = Depends(get_settings),
):
    try:
        calculation = compute_discount(
            store,
            promotion_id,
            to_cart_lines(request.lines),
            lookup_timeout=settings.lookup_timeout_seconds,
        )
        return DiscountResponse(
            promotion_id=calculation.promotion_id,
            discount_amount=calculation.discount_amount,
            applied_lines=[
                AppliedLineResponse(
                    product_id=line.product_id,
                    category=line.category,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    discounted_quantity=line.discounted_quantity,
                )
                for line in calculation.applied_lines
            ],
        )

    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to compute discount: {str(e)}"
        )


@router.post(
    "/promotions/apply",
    response_model=ApplyPromotionsResponse,
    summary="Apply Promotions",
    description="Apply every eligible promotion of the store to a cart and return the aggregate discount."
)
def apply_cart_promotions(
    request: ApplyPromotionsRequest,
    store: PromotionDataAccess = Depends(get_promotion_store),
    settings: Settings = Depends(get_settings),
):
    """
    Apply all eligible promotions to a cart.

    Every eligible promotion applies; the total discount never exceeds the
    cart subtotal. Usage is not recorded here: call
    `POST /promotions/{promotion_id}/usage` once the checkout commits.

    **Success response:**
    ```json
    {
      "subtotal": "200.00",
      "total_discount": "15.00",
      "applied": [
        {"promotion_id": 7, "name": "10% off", "discount_amount": "15.00", "type": "percentage"}
      ]
    }
    ```
    """
    try:
        result = apply_promotions(
            store,
            request.store_id,
            to_cart_lines(request.lines),
            customer_id=request.customer_id,
            lookup_timeout=settings.lookup_timeout_seconds,
        )
        return ApplyPromotionsResponse(
            subtotal=result.subtotal,
            total_discount=result.total_discount,
            applied=[
                AppliedPromotionResponse(
                    promotion_id=applied.promotion_id,
                    name=applied.name,
                    discount_amount=applied.discount_amount,
                    type=applied.type.value,
                )
                for applied in result.applied
            ],
        )

    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to apply promotions: {str(e)}"
        )


@router.post(
    "/promotions/{promotion_id}/usage",
    response_model=PromotionUsageResponse,
    status_code=201,
    summary="Record Promotion Usage",
    description="Atomically increment the usage count and store a usage record."
)
def record_promotion_usage(
    promotion_id: int,
    request: RecordUsageRequest,
    store: PromotionDataAccess = Depends(get_promotion_store),
):
    """
    Record one application of a promotion after checkout commits.

    Returns 409 once the promotion's usage limit is reached and 404 for an
    unknown promotion.
    """
    try:
        result = record_usage(
            store,
            promotion_id,
            request.discount_amount,
            customer_id=request.customer_id,
            transaction_id=request.transaction_id,
        )

        if not result.success:
            raise HTTPException(
                status_code=_STATUS_BY_ERROR_CODE.get(result.error_code, 500),
                detail=result.error_message or result.error_code or "Failed to record usage"
            )

        return _usage_response(result.usage)

    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to record usage: {str(e)}"
        )


@router.get(
    "/promotions/usage",
    response_model=PromotionUsageListResponse,
    summary="List Promotion Usage",
    description="Usage records, optionally filtered by promotion and/or customer."
)
def get_promotion_usage(
    promotion_id: Optional[int] = Query(None, description="Filter by promotion"),
    customer_id: Optional[int] = Query(None, description="Filter by customer"),
    store: PromotionDataAccess = Depends(get_promotion_store),
):
    try:
        usage = list_promotion_usage(store, promotion_id=promotion_id, customer_id=customer_id)
        return PromotionUsageListResponse(
            items=[_usage_response(item) for item in usage],
            total_count=len(usage),
        )

    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to list promotion usage: {str(e)}"
        )
