"""
Checkout error taxonomy.

Services raise these; the API layer maps each class to its HTTP status in
one exception handler (see app.main). `public_message` is what the caller
sees, `message` and `details` are for the server log.
"""

from typing import Dict, Optional


class CheckoutError(Exception):
    """Base class for checkout, coupon and payment errors."""
    status_code: int = 400
    public_message: Optional[str] = None  # None = expose `message`
    log_details: bool = False  # True = log full context server-side

    def __init__(self, message: str, details: Dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def client_message(self) -> str:
        return self.public_message or self.message


class ValidationError(CheckoutError):
    """Bad or missing input."""
    status_code = 400


class AuthzError(CheckoutError):
    """Resource does not belong to the caller, or caller lacks the role."""
    status_code = 403


class NotFoundError(CheckoutError):
    """Coupon, order, address or product does not exist."""
    status_code = 404


class ConflictError(CheckoutError):
    """Coupon caps exhausted, duplicate usage, or an illegal state transition."""
    status_code = 409


class SignatureError(CheckoutError):
    """Payment signature missing or not matching. Details never leave the server."""
    status_code = 400
    public_message = "Invalid signature"
    log_details = True


class GatewayConfigurationError(CheckoutError):
    """A gateway secret needed to authenticate a payment is not configured."""
    status_code = 500
    public_message = "Payment service is not configured"
    log_details = True


class TransientInfraError(CheckoutError):
    """Payment gateway or data store unreachable. Safe to retry."""
    status_code = 500
    public_message = "Service temporarily unavailable, please retry"
    log_details = True
