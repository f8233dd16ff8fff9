"""
Order API endpoints.

Checkout creates a PENDING order plus its Razorpay order. Payment state is
changed only through /payments; admins move paid orders through fulfilment.
"""

import uuid
import logging
from typing import List, Optional

from fastapi import APIRouter, Query, status

from app.api.deps import DB, CurrentUser, AdminUser, Payments
from app.models.order import OrderStatus, PaymentStatus
from app.schemas.order import (
    OrderCreate,
    OrderCreatedResponse,
    OrderSummary,
    PaymentInitiation,
    OrderResponse,
    OrderDetailResponse,
    OrderListResponse,
    OrderStatusUpdate,
)
from app.schemas.base import page_count
from app.services.order_service import OrderService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", response_model=OrderCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    data: OrderCreate,
    user: CurrentUser,
    db: DB,
    payments: Payments,
):
    """
    Create an order and its Razorpay order.

    The response carries what the checkout page needs to open the
    Razorpay widget.
    """
    service = OrderService(db)
    order, payment_order = await service.create_order(user.id, data, payments)

    return OrderCreatedResponse(
        order=OrderSummary(id=order.id, total=float(order.total)),
        payment=PaymentInitiation(**payment_order.model_dump()),
    )


@router.get("", response_model=List[OrderResponse])
async def list_my_orders(user: CurrentUser, db: DB):
    """Get the current user's orders, newest first."""
    service = OrderService(db)
    return await service.get_user_orders(user.id)


@router.get("/admin/all", response_model=OrderListResponse)
async def list_orders(
    db: DB,
    admin: AdminUser,
    status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
):
    """Get paginated orders for the back office."""
    service = OrderService(db)
    skip = (page - 1) * size
    orders, total = await service.get_orders(
        status=status,
        payment_status=payment_status,
        skip=skip,
        limit=size,
    )

    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        size=size,
        pages=page_count(total, size),
    )


@router.patch("/admin/{order_id}/status", response_model=OrderDetailResponse)
async def update_order_status(
    order_id: uuid.UUID,
    data: OrderStatusUpdate,
    db: DB,
    admin: AdminUser,
):
    """Move an order through fulfilment (ship, deliver) or cancel an unpaid one."""
    service = OrderService(db)
    return await service.update_order_status(
        order_id,
        data.status,
        changed_by=admin.id,
        notes=data.notes,
    )


@router.get("/{order_id}", response_model=OrderDetailResponse)
async def get_my_order(order_id: uuid.UUID, user: CurrentUser, db: DB):
    """Get one of the current user's orders with its status history."""
    service = OrderService(db)
    return await service.get_user_order(order_id, user.id)
