"""Order schemas for checkout, order history and admin fulfilment."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.order import OrderStatus
from app.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema, PaginatedResponse


# ==================== Create ====================

class OrderItemCreate(BaseCreateSchema):
    """Cart line. Unit price is taken from the product, not the client."""
    product_id: UUID
    quantity: int = Field(..., ge=1)
    size: Optional[str] = Field(None, max_length=20)
    color: Optional[str] = Field(None, max_length=50)


class OrderCreate(BaseCreateSchema):
    """Checkout request."""
    items: List[OrderItemCreate] = Field(..., min_length=1)
    address_id: UUID
    coupon_id: Optional[UUID] = None
    coupon_code: Optional[str] = Field(None, max_length=50)
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    subtotal: Decimal = Field(..., ge=0)
    tax: Decimal = Field(Decimal("0"), ge=0)
    shipping: Decimal = Field(Decimal("0"), ge=0)
    total: Decimal = Field(..., ge=0)


class OrderSummary(BaseModel):
    id: UUID
    total: float


class PaymentInitiation(BaseModel):
    """What the checkout page needs to open the Razorpay widget."""
    gateway_order_id: str
    amount: int  # In paise
    currency: str
    public_key: str


class OrderCreatedResponse(BaseModel):
    order: OrderSummary
    payment: PaymentInitiation


# ==================== Read ====================

class OrderItemResponse(BaseResponseSchema):
    id: UUID
    product_id: UUID
    size: Optional[str] = None
    color: Optional[str] = None
    quantity: int
    price: float
    total_price: float


class OrderStatusHistoryResponse(BaseResponseSchema):
    from_status: Optional[str] = None
    to_status: str
    from_payment_status: Optional[str] = None
    to_payment_status: Optional[str] = None
    source: str
    notes: Optional[str] = None
    created_at: datetime


class OrderResponse(BaseResponseSchema):
    id: UUID
    user_id: UUID
    shipping_address_id: UUID
    status: str
    payment_status: str
    subtotal: float
    tax: float
    shipping: float
    discount_amount: float
    total: float
    currency: str
    coupon_id: Optional[UUID] = None
    coupon_code: Optional[str] = None
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    items: List[OrderItemResponse] = []


class OrderDetailResponse(OrderResponse):
    status_history: List[OrderStatusHistoryResponse] = []


class OrderListResponse(PaginatedResponse):
    items: List[OrderResponse]


# ==================== Admin ====================

class OrderStatusUpdate(BaseUpdateSchema):
    """Admin fulfilment transition."""
    status: OrderStatus
    notes: Optional[str] = Field(None, max_length=500)
