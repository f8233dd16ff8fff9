# Services module
from app.services.payment_service import PaymentService
from app.services.coupon_service import CouponService
from app.services.order_service import OrderService
from app.services.reconciliation_service import ReconciliationService
from app.services.address_service import AddressService

__all__ = [
    "PaymentService",
    "CouponService",
    "OrderService",
    "ReconciliationService",
    "AddressService",
]
