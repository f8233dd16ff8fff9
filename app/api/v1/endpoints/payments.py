"""
Payment API endpoints for Razorpay integration.

Handles:
- Checkout verify callback (signed with the key secret)
- Webhook events (signed with the webhook secret)

Both verify the signature first and then hand the outcome to the
reconciliation service, which applies it exactly once.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Request, Header
from pydantic import ValidationError as PydanticValidationError

from app.api.deps import DB, CurrentUser, Payments
from app.core.exceptions import ValidationError, AuthzError
from app.models.order import TransitionSource
from app.schemas.payment import (
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookResponse,
    PaymentFailedEvent,
    payment_webhook_adapter,
)
from app.services.payment_service import WebhookEvent
from app.services.reconciliation_service import ReconciliationService, ReconciliationResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])

HANDLED_EVENTS = {
    WebhookEvent.PAYMENT_CAPTURED,
    WebhookEvent.PAYMENT_AUTHORIZED,
    WebhookEvent.PAYMENT_FAILED,
}


# ==================== VERIFY ====================

@router.post("/verify", response_model=VerifyPaymentResponse)
async def verify_payment(
    request: VerifyPaymentRequest,
    user: CurrentUser,
    db: DB,
    payments: Payments,
):
    """
    Verify payment after the Razorpay checkout completes.

    Called by the storefront with the fields Razorpay returned to the widget.
    Safe to call repeatedly: an already paid order is a no-op.
    """
    payments.verify_payment_signature(
        request.gateway_order_id,
        request.gateway_payment_id,
        request.signature,
    )

    service = ReconciliationService(db)
    order = await service.get_order_by_gateway_id(request.gateway_order_id)
    if order.id != request.order_id or order.user_id != user.id:
        logger.warning(
            f"Verify for {request.gateway_order_id} rejected: order {request.order_id} "
            f"user {user.id} does not match order {order.id} user {order.user_id}"
        )
        raise AuthzError("Order does not belong to this user")

    result = await service.confirm_payment(
        request.gateway_order_id,
        request.gateway_payment_id,
        TransitionSource.VERIFY,
    )

    return VerifyPaymentResponse(
        success=result != ReconciliationResult.IGNORED,
        status=result.value,
        order_id=order.id,
    )


# ==================== WEBHOOK ====================

@router.post(
    "/webhook",
    response_model=WebhookResponse,
    summary="Razorpay webhook handler",
    include_in_schema=False  # Hide from API docs
)
async def razorpay_webhook(
    request: Request,
    db: DB,
    payments: Payments,
    x_razorpay_signature: Optional[str] = Header(None, alias="X-Razorpay-Signature"),
):
    """
    Handle Razorpay webhook events.

    Events handled:
    - payment.captured / payment.authorized: money received
    - payment.failed: payment attempt failed

    Other events are acknowledged and ignored. Errors return non-2xx so
    Razorpay retries; retries are idempotent.
    """
    # Signature is over the raw body
    body = await request.body()
    payments.verify_webhook_signature(body, x_razorpay_signature)

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON payload")

    if not isinstance(payload, dict) or not payload.get("event"):
        raise ValidationError("Missing event type")

    event_type = payload["event"]
    logger.info(f"Received Razorpay webhook: {event_type}")

    if event_type not in HANDLED_EVENTS:
        logger.info(f"Unhandled webhook event: {event_type}")
        return WebhookResponse(status=ReconciliationResult.IGNORED.value, event=event_type)

    try:
        event = payment_webhook_adapter.validate_python(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Malformed {event_type} payload",
            details={"errors": e.errors(include_url=False)},
        )

    payment = event.payment
    service = ReconciliationService(db)

    if isinstance(event, PaymentFailedEvent):
        result = await service.fail_payment(
            payment.order_id,
            payment.id,
            TransitionSource.WEBHOOK,
            reason=payment.error_description,
        )
    else:
        result = await service.confirm_payment(
            payment.order_id,
            payment.id,
            TransitionSource.WEBHOOK,
            amount=payment.amount,
        )

    return WebhookResponse(status=result.value, event=event_type)
