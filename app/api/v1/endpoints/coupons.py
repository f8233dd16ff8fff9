"""
Coupon API Endpoints

Checkout coupon validation for shoppers, plus coupon management for admins.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Query, status

from app.api.deps import DB, CurrentUser, AdminUser
from app.schemas.coupon import (
    ValidateCouponRequest,
    ValidateCouponResponse,
    CouponCreate,
    CouponUpdate,
    CouponResponse,
    CouponDetailResponse,
    CouponListResponse,
    CouponOrderBrief,
)
from app.schemas.base import page_count
from app.services.coupon_service import CouponService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/coupons", tags=["Coupons"])


# ==================== Checkout ====================

@router.post("/validate", response_model=ValidateCouponResponse)
async def validate_coupon(
    request: ValidateCouponRequest,
    user: CurrentUser,
    db: DB,
):
    """
    Validate a coupon code for the current cart.
    Returns the discount it gives, or an error explaining why it does not apply.
    """
    service = CouponService(db)
    coupon = await service.evaluate(
        code=request.code.strip(),
        user_id=user.id,
        cart_total=request.cart_total,
        items=request.items,
    )
    return ValidateCouponResponse(valid=True, coupon=coupon)


# ==================== Admin ====================

@router.get("", response_model=CouponListResponse)
async def list_coupons(
    db: DB,
    admin: AdminUser,
    search: Optional[str] = Query(None, description="Search code, name or description"),
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
):
    """List coupons with search and pagination."""
    service = CouponService(db)
    coupons, total = await service.get_coupons(
        search=search,
        is_active=is_active,
        page=page,
        size=size,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return CouponListResponse(
        items=[CouponResponse.model_validate(c) for c in coupons],
        total=total,
        page=page,
        size=size,
        pages=page_count(total, size),
    )


@router.get("/{coupon_id}", response_model=CouponDetailResponse)
async def get_coupon(coupon_id: uuid.UUID, db: DB, admin: AdminUser):
    """Coupon detail with the latest orders that used it."""
    service = CouponService(db)
    coupon = await service.get_coupon(coupon_id)
    orders = await service.get_recent_orders(coupon_id)

    detail = CouponDetailResponse.model_validate(coupon)
    detail.recent_orders = [CouponOrderBrief.model_validate(o) for o in orders]
    return detail


@router.post("", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
async def create_coupon(data: CouponCreate, db: DB, admin: AdminUser):
    """Create a coupon. Codes are unique."""
    service = CouponService(db)
    coupon = await service.create_coupon(data, created_by=admin.id)
    return coupon


@router.patch("/{coupon_id}", response_model=CouponResponse)
async def update_coupon(coupon_id: uuid.UUID, data: CouponUpdate, db: DB, admin: AdminUser):
    """Partially update a coupon."""
    service = CouponService(db)
    return await service.update_coupon(coupon_id, data)


@router.delete("/{coupon_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_coupon(coupon_id: uuid.UUID, db: DB, admin: AdminUser):
    """Delete a coupon together with its usage records."""
    service = CouponService(db)
    await service.delete_coupon(coupon_id)
