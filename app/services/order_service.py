from typing import List, Optional, Tuple
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
import asyncio
import uuid
import logging

from sqlalchemy import select, func, update
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import (
    ValidationError,
    NotFoundError,
    ConflictError,
    TransientInfraError,
)
from app.models.user import Address
from app.models.coupon import Coupon
from app.models.order import (
    Order, OrderItem, OrderStatus, OrderStatusHistory,
    PaymentStatus, TransitionSource,
)
from app.models.product import Product
from app.schemas.order import OrderCreate
from app.services.coupon_service import calculate_discount
from app.services.payment_service import PaymentService, PaymentOrder

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
# Allowed drift between client-computed and server-computed amounts
MONEY_TOLERANCE = Decimal("0.01")

# Fulfilment transitions an admin may apply. Payment-driven transitions
# belong to reconciliation.
ADMIN_TRANSITIONS = {
    OrderStatus.PROCESSING.value: {OrderStatus.SHIPPED.value},
    OrderStatus.SHIPPED.value: {OrderStatus.DELIVERED.value},
    OrderStatus.PENDING.value: {OrderStatus.CANCELLED.value},
}


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _differs(a: Decimal, b: Decimal) -> bool:
    return abs(Decimal(a) - Decimal(b)) > MONEY_TOLERANCE


class OrderService:
    """Service for checkout order intake, order reads and fulfilment status."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== CHECKOUT ====================

    async def create_order(
        self,
        user_id: uuid.UUID,
        data: OrderCreate,
        payments: PaymentService,
    ) -> Tuple[Order, PaymentOrder]:
        """
        Create a PENDING order and its Razorpay order as one unit.

        Nothing is committed unless the gateway order was created. Inventory
        and coupon counters are left alone until payment is confirmed.
        """
        if not data.items:
            raise ValidationError("Cart is empty")

        # Address must belong to the caller
        address = (await self.db.execute(
            select(Address).where(Address.id == data.address_id, Address.user_id == user_id)
        )).scalar_one_or_none()
        if not address:
            raise ValidationError("Invalid shipping address")

        coupon = await self._resolve_coupon(data)

        # Price every line from the catalogue
        product_ids = {item.product_id for item in data.items}
        products = {
            p.id: p for p in (await self.db.execute(
                select(Product).where(Product.id.in_(product_ids))
            )).scalars().all()
        }

        order_items = []
        computed_subtotal = Decimal("0")
        for item in data.items:
            product = products.get(item.product_id)
            if not product or not product.is_active:
                raise NotFoundError(f"Product {item.product_id} not found")

            price = _money(product.price)
            line_total = _money(price * item.quantity)
            computed_subtotal += line_total
            order_items.append(OrderItem(
                product_id=product.id,
                size=item.size,
                color=item.color,
                quantity=item.quantity,
                price=price,
                total_price=line_total,
            ))

        total = self._check_amounts(data, computed_subtotal, coupon)

        order = Order(
            user_id=user_id,
            shipping_address_id=address.id,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            subtotal=_money(computed_subtotal),
            tax=_money(data.tax),
            shipping=_money(data.shipping),
            discount_amount=_money(data.discount_amount),
            total=total,
            coupon_id=coupon.id if coupon else None,
            coupon_code=coupon.code if coupon else None,
            items=order_items,
        )
        self.db.add(order)
        await self.db.flush()

        try:
            payment_order = await asyncio.to_thread(
                payments.create_order,
                order.id,
                order.total,
                {"user_id": str(user_id)},
            )
        except Exception as e:
            order_id = order.id
            await self.db.rollback()
            raise TransientInfraError(
                "Payment gateway order creation failed",
                details={"order_id": str(order_id), "error": str(e)},
            )

        order.gateway_order_id = payment_order.gateway_order_id
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            # The gateway order is orphaned; no money has moved
            await self.db.rollback()
            raise TransientInfraError(
                "Order could not be saved",
                details={"gateway_order_id": payment_order.gateway_order_id, "error": str(e)},
            )

        logger.info(
            f"Order {order.id} created for user {user_id}: total {order.total}, "
            f"gateway order {payment_order.gateway_order_id}"
        )
        return order, payment_order

    async def _resolve_coupon(self, data: OrderCreate) -> Optional[Coupon]:
        """The coupon id/code pair must still resolve to an active coupon."""
        if data.coupon_id is None and not data.coupon_code:
            if data.discount_amount > 0:
                raise ValidationError("Discount requires a coupon")
            return None

        if data.coupon_id is None or not data.coupon_code:
            raise ValidationError("Both coupon_id and coupon_code are required")

        coupon = (await self.db.execute(
            select(Coupon).where(
                Coupon.id == data.coupon_id,
                Coupon.code == data.coupon_code,
                Coupon.is_active == True,
            )
        )).scalar_one_or_none()
        if not coupon:
            raise ValidationError("Invalid coupon")
        return coupon

    def _check_amounts(
        self,
        data: OrderCreate,
        computed_subtotal: Decimal,
        coupon: Optional[Coupon] = None,
    ) -> Decimal:
        """Check client amounts against the priced cart and return the order total."""
        if _differs(data.subtotal, computed_subtotal):
            raise ValidationError(
                "Order subtotal does not match cart items",
                details={"subtotal": str(data.subtotal), "computed": str(computed_subtotal)},
            )

        if data.discount_amount > computed_subtotal:
            raise ValidationError("Discount cannot exceed subtotal")

        # Caps and validity window were checked when the coupon was applied
        if coupon is not None:
            expected_discount = calculate_discount(coupon, _money(computed_subtotal))
            if _differs(data.discount_amount, expected_discount):
                raise ValidationError(
                    "Discount does not match coupon",
                    details={
                        "discount_amount": str(data.discount_amount),
                        "expected": str(expected_discount),
                    },
                )

        expected_total = (
            _money(computed_subtotal) + _money(data.tax) + _money(data.shipping)
            - _money(data.discount_amount)
        )
        if _differs(data.total, expected_total):
            raise ValidationError(
                "Order total does not match subtotal, tax, shipping and discount",
                details={"total": str(data.total), "expected": str(expected_total)},
            )
        return expected_total

    # ==================== READ ====================

    async def get_user_orders(self, user_id: uuid.UUID) -> List[Order]:
        """Get a customer's orders, newest first."""
        stmt = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().unique().all())

    async def get_order_by_id(
        self,
        order_id: uuid.UUID,
        include_all: bool = False
    ) -> Optional[Order]:
        """Get order by ID."""
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )

        if include_all:
            stmt = stmt.options(
                selectinload(Order.items),
                selectinload(Order.status_history),
            )
        else:
            stmt = stmt.options(selectinload(Order.items))

        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user_order(self, order_id: uuid.UUID, user_id: uuid.UUID) -> Order:
        order = await self.get_order_by_id(order_id, include_all=True)
        if not order or order.user_id != user_id:
            raise NotFoundError("Order not found")
        return order

    async def get_orders(
        self,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Order], int]:
        """Get paginated orders with filters."""
        filters = []
        if status:
            filters.append(Order.status == status.value)
        if payment_status:
            filters.append(Order.payment_status == payment_status.value)

        count_stmt = select(func.count(Order.id)).where(*filters)
        total = (await self.db.execute(count_stmt)).scalar() or 0

        stmt = (
            select(Order)
            .options(selectinload(Order.items))
            .where(*filters)
            .order_by(Order.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().unique().all()), total

    # ==================== ADMIN STATUS ====================

    async def update_order_status(
        self,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        changed_by: Optional[uuid.UUID] = None,
        notes: Optional[str] = None
    ) -> Order:
        """Apply an admin fulfilment transition."""
        order = await self.get_order_by_id(order_id)
        if not order:
            raise NotFoundError("Order not found")

        old_status = order.status
        target = new_status.value
        if target not in ADMIN_TRANSITIONS.get(old_status, set()):
            raise ConflictError(f"Cannot change order status from {old_status} to {target}")

        now = datetime.now(timezone.utc)
        values = {"status": target, "updated_at": now}
        criteria = [Order.id == order.id, Order.status == old_status]
        if target == OrderStatus.CANCELLED.value:
            criteria.append(Order.payment_status != PaymentStatus.PAID.value)
            values["cancelled_at"] = now

        result = await self.db.execute(
            update(Order).where(*criteria).values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConflictError("Order was updated by another process, reload and retry")

        self.db.add(OrderStatusHistory(
            order_id=order.id,
            from_status=old_status,
            to_status=target,
            from_payment_status=order.payment_status,
            to_payment_status=order.payment_status,
            source=TransitionSource.ADMIN.value,
            changed_by=changed_by,
            notes=notes,
        ))
        await self.db.commit()
        await self.db.refresh(order)

        logger.info(f"Order {order.id} status {old_status} -> {target} by {changed_by}")
        return await self.get_order_by_id(order_id, include_all=True)
