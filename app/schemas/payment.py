"""
Payment schemas.

Razorpay webhook bodies are parsed into a discriminated union on the
`event` field; only the payment events we act on are modelled.
"""

from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter


class VerifyPaymentRequest(BaseModel):
    """Checkout callback after the customer completes payment."""
    gateway_order_id: str = Field(..., min_length=1, description="Razorpay order ID")
    gateway_payment_id: str = Field(..., min_length=1, description="Razorpay payment ID")
    signature: str = Field(..., description="Razorpay signature for verification")
    order_id: UUID = Field(..., description="Internal order ID")


class VerifyPaymentResponse(BaseModel):
    success: bool
    status: str
    order_id: UUID


class WebhookResponse(BaseModel):
    status: str
    event: Optional[str] = None


# ==================== Webhook payloads ====================

class PaymentEntity(BaseModel):
    """Razorpay payment entity (subset)."""
    id: str
    order_id: str
    amount: int  # In paise
    currency: Optional[str] = None
    status: Optional[str] = None
    method: Optional[str] = None
    error_code: Optional[str] = None
    error_description: Optional[str] = None


class PaymentEnvelope(BaseModel):
    entity: PaymentEntity


class PaymentEventPayload(BaseModel):
    payment: PaymentEnvelope


class _PaymentEvent(BaseModel):
    payload: PaymentEventPayload
    created_at: Optional[int] = None

    @property
    def payment(self) -> PaymentEntity:
        return self.payload.payment.entity


class PaymentCapturedEvent(_PaymentEvent):
    event: Literal["payment.captured"]


class PaymentAuthorizedEvent(_PaymentEvent):
    event: Literal["payment.authorized"]


class PaymentFailedEvent(_PaymentEvent):
    event: Literal["payment.failed"]


PaymentWebhookEvent = Annotated[
    Union[PaymentCapturedEvent, PaymentAuthorizedEvent, PaymentFailedEvent],
    Field(discriminator="event"),
]

payment_webhook_adapter = TypeAdapter(PaymentWebhookEvent)
