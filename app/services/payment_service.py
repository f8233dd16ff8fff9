"""
Payment Service - Razorpay Integration

Handles the gateway side of checkout:
- Create Razorpay orders
- Verify checkout callback and webhook signatures
- Fetch the payments made against a Razorpay order (pending sweep)
"""

import logging
import hmac
import hashlib
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any
import uuid

import razorpay
from pydantic import BaseModel

from app.config import settings
from app.core.exceptions import GatewayConfigurationError, SignatureError

logger = logging.getLogger(__name__)


class PaymentOrder(BaseModel):
    """Razorpay order created for a storefront order."""
    gateway_order_id: str
    amount: int  # In paise
    currency: str
    public_key: str


def to_minor_units(amount: Decimal) -> int:
    """Convert a rupee amount to paise, rounding half-up."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _hmac_sha256(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class PaymentService:
    """
    Service for handling Razorpay payments.

    Gateway calls are blocking (the SDK uses requests); callers run them
    in a worker thread.
    """

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize Razorpay client."""
        self.key_id = settings.RAZORPAY_KEY_ID if key_id is None else key_id
        self.key_secret = settings.RAZORPAY_KEY_SECRET if key_secret is None else key_secret
        self.webhook_secret = (
            settings.RAZORPAY_WEBHOOK_SECRET if webhook_secret is None else webhook_secret
        )
        self.timeout = timeout or settings.PAYMENT_GATEWAY_TIMEOUT
        self.currency = settings.PAYMENT_CURRENCY
        self.client = razorpay.Client(auth=(self.key_id, self.key_secret))

    def create_order(
        self,
        order_id: uuid.UUID,
        amount: Decimal,
        notes: Optional[Dict[str, str]] = None,
    ) -> PaymentOrder:
        """
        Create a Razorpay order for payment.

        Args:
            order_id: Storefront order id, used as the receipt
            amount: Order total in INR
            notes: Extra notes stored on the Razorpay order

        Returns:
            PaymentOrder with the Razorpay order id and the amount in paise
        """
        amount_in_paise = to_minor_units(amount)

        order_data = {
            "amount": amount_in_paise,
            "currency": self.currency,
            "receipt": str(order_id),
            "notes": {"order_id": str(order_id), **(notes or {})},
        }

        try:
            razorpay_order = self.client.order.create(data=order_data, timeout=self.timeout)
        except Exception as e:
            logger.error(f"Failed to create Razorpay order for order {order_id}: {e}")
            raise

        logger.info(
            f"Created Razorpay order {razorpay_order['id']} "
            f"for order {order_id} ({amount_in_paise} paise)"
        )

        return PaymentOrder(
            gateway_order_id=razorpay_order["id"],
            amount=amount_in_paise,
            currency=self.currency,
            public_key=self.key_id,
        )

    def verify_payment_signature(
        self,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: Optional[str],
    ) -> None:
        """
        Verify the signature returned to the checkout page.

        Signature is HMAC-SHA256(key_secret, "order_id|payment_id").

        Raises:
            GatewayConfigurationError: key secret not configured
            SignatureError: signature missing or not matching
        """
        if not self.key_secret:
            logger.error("RAZORPAY_KEY_SECRET not configured, rejecting payment verification")
            raise GatewayConfigurationError("RAZORPAY_KEY_SECRET is not set")

        payload = f"{gateway_order_id}|{gateway_payment_id}"
        expected_signature = _hmac_sha256(self.key_secret, payload.encode())

        if not signature or not hmac.compare_digest(expected_signature, signature):
            logger.warning(
                f"Invalid payment signature for {gateway_order_id}: "
                f"expected={expected_signature} received={signature}"
            )
            raise SignatureError(
                "Payment signature mismatch",
                details={"gateway_order_id": gateway_order_id, "gateway_payment_id": gateway_payment_id},
            )

    def verify_webhook_signature(self, body: bytes, signature: Optional[str]) -> None:
        """
        Verify Razorpay webhook signature.

        Args:
            body: Raw request body bytes
            signature: X-Razorpay-Signature header value

        Raises:
            GatewayConfigurationError: webhook secret not configured
            SignatureError: signature missing or not matching
        """
        if not self.webhook_secret:
            logger.error("RAZORPAY_WEBHOOK_SECRET not configured, rejecting webhook")
            raise GatewayConfigurationError("RAZORPAY_WEBHOOK_SECRET is not set")

        expected_signature = _hmac_sha256(self.webhook_secret, body)

        # Constant-time comparison
        if not signature or not hmac.compare_digest(expected_signature, signature):
            logger.warning(
                f"Invalid webhook signature: expected={expected_signature} received={signature}"
            )
            raise SignatureError("Webhook signature mismatch")

    def get_order_payments(self, gateway_order_id: str) -> list[Dict[str, Any]]:
        """
        Get all payments for a Razorpay order.

        Args:
            gateway_order_id: Razorpay order ID

        Returns:
            List of payments for the order
        """
        try:
            payments = self.client.order.payments(gateway_order_id, timeout=self.timeout)
        except Exception as e:
            logger.error(f"Failed to fetch payments for {gateway_order_id}: {e}")
            raise
        return payments.get("items", [])


# Webhook event types
class WebhookEvent:
    """Razorpay webhook event types."""
    PAYMENT_AUTHORIZED = "payment.authorized"
    PAYMENT_CAPTURED = "payment.captured"
    PAYMENT_FAILED = "payment.failed"


# Razorpay payment entity states treated as money received
SUCCESSFUL_PAYMENT_STATES = ("captured", "authorized")
