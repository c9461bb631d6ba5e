"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Cart Models
# ============================================================================

class CartLineIn(BaseModel):
    """Single cart line in a request."""
    product_id: int
    quantity: int = Field(..., gt=0, description="Units of the product (> 0)")
    unit_price: Decimal = Field(..., ge=0, description="Price per unit (>= 0)")
    category: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "product_id": 42,
                "quantity": 2,
                "unit_price": "10.00",
                "category": "beverages"
            }
        }


# ============================================================================
# Promotion Models
# ============================================================================

class ApplicablePromotionsRequest(BaseModel):
    """Request to list promotions applicable to a cart."""
    store_id: int
    lines: List[CartLineIn] = Field(default_factory=list)


class PromotionResponse(BaseModel):
    """Promotion as returned by the API."""
    promotion_id: int
    store_id: int
    name: str
    description: Optional[str] = None
    type: str
    value: Optional[Decimal] = None
    min_order_amount: Optional[Decimal] = None
    max_discount_amount: Optional[Decimal] = None
    start_date: datetime
    end_date: datetime
    usage_limit: Optional[int] = None
    usage_count: int

    class Config:
        json_schema_extra = {
            "example": {
                "promotion_id": 7,
                "store_id": 1,
                "name": "10% off everything",
                "description": None,
                "type": "percentage",
                "value": "10.00",
                "min_order_amount": "100.00",
                "max_discount_amount": "15.00",
                "start_date": "2025-01-01T00:00:00Z",
                "end_date": "2025-12-31T23:59:59Z",
                "usage_limit": 500,
                "usage_count": 12
            }
        }


class DiscountRequest(BaseModel):
    """Request to compute one promotion's discount on a cart."""
    lines: List[CartLineIn] = Field(default_factory=list)


class AppliedLineResponse(BaseModel):
    product_id: int
    category: Optional[str] = None
    quantity: int
    unit_price: Decimal
    discounted_quantity: int


class DiscountResponse(BaseModel):
    """Discount granted by a single promotion."""
    promotion_id: Optional[int]
    discount_amount: Decimal
    applied_lines: List[AppliedLineResponse]

    class Config:
        json_schema_extra = {
            "example": {
                "promotion_id": 3,
                "discount_amount": "5.00",
                "applied_lines": [
                    {"product_id": 2, "category": None, "quantity": 1,
                     "unit_price": "5.00", "discounted_quantity": 1}
                ]
            }
        }


class ApplyPromotionsRequest(BaseModel):
    """Request to apply every eligible promotion to a cart."""
    store_id: int
    lines: List[CartLineIn] = Field(default_factory=list)
    customer_id: Optional[int] = None


class AppliedPromotionResponse(BaseModel):
    promotion_id: int
    name: str
    discount_amount: Decimal
    type: str


class ApplyPromotionsResponse(BaseModel):
    """Aggregate discount for a cart."""
    subtotal: Decimal
    total_discount: Decimal
    applied: List[AppliedPromotionResponse]

    class Config:
        json_schema_extra = {
            "example": {
                "subtotal": "200.00",
                "total_discount": "15.00",
                "applied": [
                    {"promotion_id": 7, "name": "10% off everything",
                     "discount_amount": "15.00", "type": "percentage"}
                ]
            }
        }


class RecordUsageRequest(BaseModel):
    """Request to record one application of a promotion."""
    discount_amount: Decimal = Field(..., ge=0)
    customer_id: Optional[int] = None
    transaction_id: Optional[int] = None


class PromotionUsageResponse(BaseModel):
    usage_id: Optional[int] = None
    promotion_id: int
    discount_amount: Decimal
    customer_id: Optional[int] = None
    transaction_id: Optional[int] = None
    created_at: datetime


class PromotionUsageListResponse(BaseModel):
    items: List[PromotionUsageResponse]
    total_count: int


# ============================================================================
# Risk Models
# ============================================================================

class RiskAssessmentRequest(BaseModel):
    """Transaction to assess."""
    store_id: int
    lines: List[CartLineIn] = Field(default_factory=list)
    payment_method: str = Field(..., min_length=1, description="cash, card, ...")
    cash_tendered: Optional[Decimal] = Field(None, ge=0)
    customer_id: Optional[int] = None
    timestamp_override: Optional[datetime] = Field(
        None,
        description="Evaluation instant (timezone-aware); defaults to now"
    )
    total: Optional[Decimal] = Field(
        None,
        ge=0,
        description="Amount charged, when it differs from the line subtotal"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "store_id": 1,
                "lines": [{"product_id": 42, "quantity": 1, "unit_price": "250.00"}],
                "payment_method": "cash",
                "cash_tendered": "260.00",
                "customer_id": 15
            }
        }


class RiskAssessmentResponse(BaseModel):
    risk_score: int
    risk_level: str
    risk_factors: Dict[str, bool]
    risk_reasons: List[str]
    recommendations: List[str]
    color: str
    badge: str

    class Config:
        json_schema_extra = {
            "example": {
                "risk_score": 20,
                "risk_level": "medium",
                "risk_factors": {"cash_only_large_transaction": True},
                "risk_reasons": ["Large cash transaction (250.00)"],
                "recommendations": [
                    "Count cash carefully and consider counterfeit detection",
                    "Additional verification suggested"
                ],
                "color": "rgb(251, 146, 60)",
                "badge": "MEDIUM"
            }
        }


class AssessedTransactionResponse(BaseModel):
    transaction_id: int
    transaction_number: Optional[str] = None
    status: str
    created_at: datetime
    total: Decimal
    assessment: RiskAssessmentResponse


class CustomerRiskHistoryResponse(BaseModel):
    customer_id: int
    transactions: List[AssessedTransactionResponse]


class DailyRiskSummaryResponse(BaseModel):
    day: date
    total_transactions: int
    low_risk: int
    medium_risk: int
    high_risk: int
    critical_risk: int
    total_risk_score: int
    average_risk_score: float
    flagged: List[AssessedTransactionResponse]

