from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Checkout
    coupons,
    orders,
    payments,
    # Account
    addresses,
)

api_router = APIRouter(prefix="/api/v1")

# ==================== Checkout ====================
api_router.include_router(coupons.router)
api_router.include_router(orders.router)
api_router.include_router(payments.router)

# ==================== Account ====================
api_router.include_router(addresses.router)
