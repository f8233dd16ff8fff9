"""
Payment Reconciliation Service

Single place where an order moves out of payment PENDING. The webhook,
the checkout verify callback and the pending-payment sweep all call in here.

Every transition is a conditional UPDATE guarded on payment_status, so
duplicate and concurrent deliveries apply side effects exactly once. Side
effects (history row, coupon redemption, stock) run in SAVEPOINTs inside the
same transaction: a failing side effect is logged for manual reconciliation
and does not undo the payment transition.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional
import uuid
import logging

from sqlalchemy import select, update, func, or_
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import NotFoundError, ConflictError
from app.models.coupon import Coupon, CouponUsage
from app.models.order import (
    Order, OrderItem, OrderStatus, OrderStatusHistory,
    PaymentStatus, TransitionSource,
)
from app.models.product import Product
from app.services.payment_service import to_minor_units

logger = logging.getLogger(__name__)


class ReconciliationResult(str, Enum):
    """Outcome of applying a payment event."""
    PROCESSED = "processed"
    ALREADY_PROCESSED = "already_processed"
    IGNORED = "ignored"


class ReconciliationService:
    """Applies payment outcomes to orders."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_order_by_gateway_id(self, gateway_order_id: str) -> Order:
        stmt = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.gateway_order_id == gateway_order_id)
        )
        order = (await self.db.execute(stmt)).scalar_one_or_none()
        if not order:
            raise NotFoundError(
                "Order not found",
                details={"gateway_order_id": gateway_order_id},
            )
        return order

    # ==================== SUCCESS ====================

    async def confirm_payment(
        self,
        gateway_order_id: str,
        gateway_payment_id: str,
        source: TransitionSource,
        amount: Optional[int] = None,
    ) -> ReconciliationResult:
        """
        Mark an order PAID/PROCESSING and apply its side effects once.

        Args:
            gateway_order_id: Razorpay order id stored on the order
            gateway_payment_id: Razorpay payment id
            source: Adapter that received the event
            amount: Paid amount in paise, checked against the order total when given

        Raises:
            NotFoundError: no order for this gateway order id
            ConflictError: paid amount differs from the order total
        """
        order = await self.get_order_by_gateway_id(gateway_order_id)

        if order.payment_status == PaymentStatus.PAID.value:
            logger.info(f"Order {order.id} already paid, {source.value} event for {gateway_payment_id} ignored")
            return ReconciliationResult.ALREADY_PROCESSED

        expected_amount = to_minor_units(order.total)
        if amount is not None and amount != expected_amount:
            logger.error(
                f"Payment amount mismatch on order {order.id}: "
                f"paid {amount} expected {expected_amount} (payment {gateway_payment_id})"
            )
            raise ConflictError(
                "Payment amount does not match order total",
                details={"order_id": str(order.id), "paid": amount, "expected": expected_amount},
            )

        from_status = order.status
        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            update(Order)
            .where(Order.id == order.id, Order.payment_status == PaymentStatus.PENDING.value)
            .values(
                status=OrderStatus.PROCESSING.value,
                payment_status=PaymentStatus.PAID.value,
                gateway_payment_id=gateway_payment_id,
                paid_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            # Someone else moved the order first
            await self.db.refresh(order)
            if order.payment_status == PaymentStatus.PAID.value:
                logger.info(f"Order {order.id} confirmed concurrently, {source.value} event is a duplicate")
                return ReconciliationResult.ALREADY_PROCESSED
            logger.error(
                f"Payment {gateway_payment_id} succeeded for order {order.id} "
                f"already in payment status {order.payment_status}, manual reconciliation required"
            )
            return ReconciliationResult.IGNORED

        await self._side_effect(
            order.id, "status history",
            lambda: self._record_history(
                order.id, from_status, OrderStatus.PROCESSING.value,
                PaymentStatus.PENDING.value, PaymentStatus.PAID.value,
                source, f"Payment {gateway_payment_id} confirmed",
            ),
        )

        if order.coupon_id:
            await self._side_effect(
                order.id, f"coupon {order.coupon_id} redemption",
                lambda: self._redeem_coupon(order),
            )

        for item in order.items:
            await self._side_effect(
                order.id, f"stock update for product {item.product_id}",
                lambda item=item: self._adjust_stock(item),
            )

        await self.db.commit()
        await self.db.refresh(order)

        logger.info(f"Order {order.id} paid via {source.value} (payment {gateway_payment_id})")
        return ReconciliationResult.PROCESSED

    # ==================== FAILURE ====================

    async def fail_payment(
        self,
        gateway_order_id: str,
        gateway_payment_id: Optional[str],
        source: TransitionSource,
        reason: Optional[str] = None,
    ) -> ReconciliationResult:
        """Mark a PENDING order FAILED/CANCELLED. A PAID order is never downgraded."""
        order = await self.get_order_by_gateway_id(gateway_order_id)
        return await self._mark_failed(
            order, gateway_payment_id, source, reason or "Payment failed"
        )

    async def expire_order(self, order: Order) -> ReconciliationResult:
        """Cancel an order whose payment never arrived."""
        return await self._mark_failed(
            order, None, TransitionSource.SWEEP, "Payment not received before expiry"
        )

    async def _mark_failed(
        self,
        order: Order,
        gateway_payment_id: Optional[str],
        source: TransitionSource,
        notes: str,
    ) -> ReconciliationResult:
        if order.payment_status == PaymentStatus.PAID.value:
            logger.error(
                f"Payment failure ({source.value}) received for paid order {order.id}, "
                f"payment {gateway_payment_id}; order left as PAID"
            )
            return ReconciliationResult.IGNORED
        if order.payment_status == PaymentStatus.FAILED.value:
            return ReconciliationResult.ALREADY_PROCESSED

        from_status = order.status
        now = datetime.now(timezone.utc)
        values = {
            "status": OrderStatus.CANCELLED.value,
            "payment_status": PaymentStatus.FAILED.value,
            "cancelled_at": now,
            "updated_at": now,
        }
        if gateway_payment_id:
            values["gateway_payment_id"] = gateway_payment_id

        result = await self.db.execute(
            update(Order)
            .where(Order.id == order.id, Order.payment_status == PaymentStatus.PENDING.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            await self.db.refresh(order)
            if order.payment_status == PaymentStatus.PAID.value:
                logger.error(
                    f"Payment failure ({source.value}) lost to a confirmation on order {order.id}; "
                    f"order left as PAID"
                )
                return ReconciliationResult.IGNORED
            return ReconciliationResult.ALREADY_PROCESSED

        await self._side_effect(
            order.id, "status history",
            lambda: self._record_history(
                order.id, from_status, OrderStatus.CANCELLED.value,
                PaymentStatus.PENDING.value, PaymentStatus.FAILED.value,
                source, notes,
            ),
        )
        await self.db.commit()
        await self.db.refresh(order)

        logger.info(f"Order {order.id} payment failed via {source.value}: {notes}")
        return ReconciliationResult.PROCESSED

    # ==================== SIDE EFFECTS ====================

    async def _side_effect(
        self,
        order_id: uuid.UUID,
        label: str,
        apply: Callable[[], Awaitable[None]],
    ) -> bool:
        """Run one side effect in a SAVEPOINT. Returns False if it was rolled back."""
        try:
            async with self.db.begin_nested():
                await apply()
        except SQLAlchemyError as e:
            logger.error(
                f"Order {order_id}: {label} failed, manual reconciliation required: {e}"
            )
            return False
        return True

    async def _record_history(
        self,
        order_id: uuid.UUID,
        from_status: str,
        to_status: str,
        from_payment_status: str,
        to_payment_status: str,
        source: TransitionSource,
        notes: str,
    ) -> None:
        self.db.add(OrderStatusHistory(
            order_id=order_id,
            from_status=from_status,
            to_status=to_status,
            from_payment_status=from_payment_status,
            to_payment_status=to_payment_status,
            source=source.value,
            notes=notes,
        ))
        await self.db.flush()

    async def _redeem_coupon(self, order: Order) -> None:
        """Count the redemption, never past the coupon's global or per-user cap."""
        coupon = await self.db.get(Coupon, order.coupon_id, populate_existing=True)
        if not coupon:
            logger.error(
                f"Order {order.id}: coupon {order.coupon_id} ({order.coupon_code}) missing "
                f"at payment time, redemption not recorded"
            )
            return

        used, last_use = (await self.db.execute(
            select(
                func.count(CouponUsage.id),
                func.coalesce(func.max(CouponUsage.use_number), 0),
            ).where(
                CouponUsage.coupon_id == coupon.id,
                CouponUsage.user_id == order.user_id,
            )
        )).one()
        per_user_cap = 1 if coupon.is_single_use else coupon.max_usage_per_user
        if per_user_cap is not None and used >= per_user_cap:
            logger.error(
                f"Order {order.id}: coupon {coupon.id} ({coupon.code}) per-user limit "
                f"reached for user {order.user_id} ({used} of {per_user_cap}), "
                f"redemption not recorded"
            )
            return

        result = await self.db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon.id,
                or_(Coupon.max_usage.is_(None), Coupon.times_used < Coupon.max_usage),
            )
            .values(times_used=Coupon.times_used + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.error(
                f"Order {order.id}: coupon {coupon.id} ({coupon.code}) usage limit "
                f"reached at payment time, redemption not recorded"
            )
            return

        # A concurrent redemption claiming the same slot fails the unique
        # constraint and rolls back the counter with it
        self.db.add(CouponUsage(
            coupon_id=coupon.id,
            user_id=order.user_id,
            order_id=order.id,
            use_number=last_use + 1,
        ))
        await self.db.flush()

    async def _adjust_stock(self, item: OrderItem) -> None:
        result = await self.db.execute(
            update(Product)
            .where(Product.id == item.product_id)
            .values(
                inventory=Product.inventory - item.quantity,
                times_sold=Product.times_sold + item.quantity,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.error(
                f"Order {item.order_id}: product {item.product_id} missing, "
                f"stock not adjusted for {item.quantity} unit(s)"
            )
