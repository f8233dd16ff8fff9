"""Coupon schemas: checkout validation and admin management."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.models.coupon import DiscountType
from app.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema, PaginatedResponse


# ==================== Checkout ====================

class CartItem(BaseCreateSchema):
    """Cart line sent with a coupon check. Only its presence matters here."""
    product_id: UUID
    quantity: int = Field(1, ge=1)
    price: Optional[Decimal] = None


class ValidateCouponRequest(BaseCreateSchema):
    """Request to validate a coupon against the current cart."""
    code: str = Field(..., min_length=1, max_length=50)
    cart_total: Decimal
    items: List[CartItem] = []


class CouponEvaluation(BaseModel):
    """Validated coupon with the discount it gives on this cart."""
    id: UUID
    code: str
    name: str
    discount_type: DiscountType
    discount_value: float
    discount_amount: float


class ValidateCouponResponse(BaseModel):
    valid: bool = True
    coupon: CouponEvaluation


# ==================== Admin ====================

def check_discount_rules(discount_type: Optional[DiscountType], value: Optional[Decimal]) -> None:
    if discount_type is None or value is None:
        return
    if discount_type == DiscountType.PERCENTAGE and not (Decimal("0") < value <= Decimal("100")):
        raise ValueError("Percentage discount must be greater than 0 and at most 100")
    if discount_type == DiscountType.FIXED and value <= 0:
        raise ValueError("Fixed discount must be greater than 0")


def check_validity_window(start: Optional[datetime], end: Optional[datetime]) -> None:
    if start is not None and end is not None and end <= start:
        raise ValueError("end_date must be after start_date")


class CouponCreate(BaseCreateSchema):
    """Create a coupon."""
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: Decimal
    maximum_discount: Optional[Decimal] = Field(None, gt=0)
    minimum_purchase: Optional[Decimal] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    max_usage: Optional[int] = Field(None, ge=1)
    max_usage_per_user: Optional[int] = Field(None, ge=1)
    applicable_user_ids: List[UUID] = []
    excluded_user_ids: List[UUID] = []
    is_first_time_only: bool = False
    is_single_use: bool = False
    is_active: bool = True

    @model_validator(mode="after")
    def validate_rules(self):
        check_discount_rules(self.discount_type, self.discount_value)
        check_validity_window(self.start_date, self.end_date)
        return self


class CouponUpdate(BaseUpdateSchema):
    """Partial coupon update. The usage counter is not client-writable."""
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = None
    maximum_discount: Optional[Decimal] = Field(None, gt=0)
    minimum_purchase: Optional[Decimal] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    max_usage: Optional[int] = Field(None, ge=1)
    max_usage_per_user: Optional[int] = Field(None, ge=1)
    applicable_user_ids: Optional[List[UUID]] = None
    excluded_user_ids: Optional[List[UUID]] = None
    is_first_time_only: Optional[bool] = None
    is_single_use: Optional[bool] = None
    is_active: Optional[bool] = None


class CouponResponse(BaseResponseSchema):
    id: UUID
    code: str
    name: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: float
    maximum_discount: Optional[float] = None
    minimum_purchase: Optional[float] = None
    start_date: datetime
    end_date: Optional[datetime] = None
    max_usage: Optional[int] = None
    max_usage_per_user: Optional[int] = None
    times_used: int
    applicable_user_ids: List[str] = []
    excluded_user_ids: List[str] = []
    is_first_time_only: bool
    is_single_use: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime


class CouponOrderBrief(BaseResponseSchema):
    """Order that redeemed a coupon."""
    id: UUID
    user_id: UUID
    total: float
    status: str
    payment_status: str
    created_at: datetime


class CouponDetailResponse(CouponResponse):
    recent_orders: List[CouponOrderBrief] = []


class CouponListResponse(PaginatedResponse):
    items: List[CouponResponse]
