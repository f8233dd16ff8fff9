from app.models.user import User, UserRole, Address
from app.models.product import Product
from app.models.coupon import Coupon, CouponUsage, DiscountType
from app.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusHistory,
    PaymentStatus,
    TransitionSource,
)

__all__ = [
    "User",
    "UserRole",
    "Address",
    "Product",
    "Coupon",
    "CouponUsage",
    "DiscountType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderStatusHistory",
    "PaymentStatus",
    "TransitionSource",
]
