"""
Order Processing Jobs

Background jobs for managing order-related tasks:
- Pending payment sweep
"""

import asyncio
import logging
from typing import Dict, Any, Optional
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.db_types import as_utc
from app.models.order import Order, OrderStatus, PaymentStatus, TransitionSource
from app.services.payment_service import PaymentService, SUCCESSFUL_PAYMENT_STATES
from app.services.reconciliation_service import ReconciliationService, ReconciliationResult

logger = logging.getLogger(__name__)


async def check_pending_payments(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    payments: Optional[PaymentService] = None,
) -> Dict[str, Any]:
    """
    Reconcile orders still waiting for payment with Razorpay.

    Safety net for webhooks that never arrived. Runs every
    PAYMENT_SWEEP_INTERVAL_MINUTES:
    1. Find PENDING orders older than PAYMENT_SWEEP_MIN_AGE_MINUTES
    2. Ask Razorpay for the payments made against each order
    3. captured/authorized -> confirm through reconciliation
    4. Nothing received after PAYMENT_EXPIRY_HOURS -> cancel the order

    Each order is handled in its own session; one failure does not stop
    the sweep.
    """
    if session_factory is None:
        from app.database import async_session_factory
        session_factory = async_session_factory
    payments = payments or PaymentService()

    logger.info("Starting pending payments check...")
    start_time = datetime.now(timezone.utc)
    stats = {"processed": 0, "confirmed": 0, "expired": 0, "errors": 0}

    cutoff_time = start_time - timedelta(minutes=settings.PAYMENT_SWEEP_MIN_AGE_MINUTES)
    expiry_time = start_time - timedelta(hours=settings.PAYMENT_EXPIRY_HOURS)

    async with session_factory() as session:
        result = await session.execute(
            select(Order.id, Order.gateway_order_id, Order.created_at)
            .where(
                Order.payment_status == PaymentStatus.PENDING.value,
                Order.status == OrderStatus.PENDING.value,
                Order.gateway_order_id.is_not(None),
                Order.created_at < cutoff_time,
            )
            .order_by(Order.created_at.asc())
            .limit(settings.PAYMENT_SWEEP_BATCH_SIZE)
        )
        pending_orders = result.all()

    for order_id, gateway_order_id, created_at in pending_orders:
        stats["processed"] += 1
        try:
            gateway_payments = await asyncio.to_thread(payments.get_order_payments, gateway_order_id)
            paid = next(
                (p for p in gateway_payments if p.get("status") in SUCCESSFUL_PAYMENT_STATES),
                None,
            )

            async with session_factory() as session:
                service = ReconciliationService(session)

                if paid:
                    outcome = await service.confirm_payment(
                        gateway_order_id,
                        paid["id"],
                        TransitionSource.SWEEP,
                        amount=paid.get("amount"),
                    )
                    if outcome == ReconciliationResult.PROCESSED:
                        stats["confirmed"] += 1
                        logger.info(f"Order {order_id}: payment {paid['id']} recovered by sweep")

                elif as_utc(created_at) < expiry_time:
                    order = await service.get_order_by_gateway_id(gateway_order_id)
                    outcome = await service.expire_order(order)
                    if outcome == ReconciliationResult.PROCESSED:
                        stats["expired"] += 1
                        logger.info(f"Order {order_id}: expired due to no payment")

        except Exception as e:
            stats["errors"] += 1
            logger.error(f"Error processing order {order_id}: {e}")

    elapsed = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(
        f"Pending payments check completed: "
        f"processed {stats['processed']}, confirmed {stats['confirmed']}, "
        f"expired {stats['expired']}, errors {stats['errors']} "
        f"in {elapsed:.2f}s"
    )
    return stats
