"""Tests for the pending payment sweep job."""

from datetime import datetime, timedelta, timezone

from app.jobs.order_jobs import check_pending_payments
from app.models import Order, Product
from app.services.payment_service import to_minor_units
from tests.helpers import history_sources, make_order, reload


def hours_ago(hours):
    return datetime.now(timezone.utc) - timedelta(hours=hours)


class TestCheckPendingPayments:

    async def test_recovers_captured_payment(self, session_factory, payments, customer, address, tshirt):
        order = await make_order(
            session_factory, customer, address, [(tshirt, 1)], created_at=hours_ago(1)
        )
        payments.order_payments[order.gateway_order_id] = [
            {"id": "pay_failed_1", "status": "failed", "amount": to_minor_units(order.total)},
            {"id": "pay_ok_1", "status": "captured", "amount": to_minor_units(order.total)},
        ]

        stats = await check_pending_payments(session_factory, payments)

        assert stats == {"processed": 1, "confirmed": 1, "expired": 0, "errors": 0}
        stored = await reload(session_factory, Order, order.id)
        assert stored.payment_status == "PAID"
        assert stored.gateway_payment_id == "pay_ok_1"
        assert (await reload(session_factory, Product, tshirt.id)).inventory == 39
        assert await history_sources(session_factory, order) == ["SWEEP"]

    async def test_expires_old_unpaid_order(self, session_factory, payments, customer, address, tshirt):
        order = await make_order(
            session_factory, customer, address, [(tshirt, 1)], created_at=hours_ago(30)
        )

        stats = await check_pending_payments(session_factory, payments)

        assert stats["expired"] == 1
        stored = await reload(session_factory, Order, order.id)
        assert stored.status == "CANCELLED"
        assert stored.payment_status == "FAILED"
        assert (await reload(session_factory, Product, tshirt.id)).inventory == 40

    async def test_leaves_recent_orders_alone(self, session_factory, payments, customer, address, tshirt):
        fresh = await make_order(session_factory, customer, address, [(tshirt, 1)])
        waiting = await make_order(
            session_factory, customer, address, [(tshirt, 1)], created_at=hours_ago(2)
        )

        stats = await check_pending_payments(session_factory, payments)

        # Too young to be swept, and not yet expired
        assert stats == {"processed": 1, "confirmed": 0, "expired": 0, "errors": 0}
        assert (await reload(session_factory, Order, fresh.id)).payment_status == "PENDING"
        assert (await reload(session_factory, Order, waiting.id)).payment_status == "PENDING"

    async def test_skips_orders_already_settled(self, session_factory, payments, customer, address, tshirt):
        order = await make_order(
            session_factory, customer, address, [(tshirt, 1)], created_at=hours_ago(30)
        )
        async with session_factory() as session:
            stored = await session.get(Order, order.id)
            stored.payment_status = "PAID"
            stored.status = "PROCESSING"
            await session.commit()

        stats = await check_pending_payments(session_factory, payments)

        assert stats["processed"] == 0

    async def test_gateway_error_does_not_stop_the_sweep(
        self, session_factory, payments, customer, address, tshirt
    ):
        broken = await make_order(
            session_factory, customer, address, [(tshirt, 1)], created_at=hours_ago(3)
        )
        healthy = await make_order(
            session_factory, customer, address, [(tshirt, 1)], created_at=hours_ago(2)
        )
        payments.fail_fetch_for.add(broken.gateway_order_id)
        payments.order_payments[healthy.gateway_order_id] = [
            {"id": "pay_ok_2", "status": "captured", "amount": to_minor_units(healthy.total)},
        ]

        stats = await check_pending_payments(session_factory, payments)

        assert stats == {"processed": 2, "confirmed": 1, "expired": 0, "errors": 1}
        assert (await reload(session_factory, Order, broken.id)).payment_status == "PENDING"
        assert (await reload(session_factory, Order, healthy.id)).payment_status == "PAID"

    async def test_amount_mismatch_is_counted_as_error(
        self, session_factory, payments, customer, address, tshirt
    ):
        order = await make_order(
            session_factory, customer, address, [(tshirt, 1)], created_at=hours_ago(1)
        )
        payments.order_payments[order.gateway_order_id] = [
            {"id": "pay_short", "status": "captured", "amount": 100},
        ]

        stats = await check_pending_payments(session_factory, payments)

        assert stats["errors"] == 1
        assert (await reload(session_factory, Order, order.id)).payment_status == "PENDING"
