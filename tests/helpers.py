"""Shared builders for tests: gateway double, signatures, seed rows."""

import hashlib
import hmac
import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence, Tuple

from sqlalchemy import select, func

from app.core.security import create_access_token
from app.models import (
    Address,
    Coupon,
    CouponUsage,
    Order,
    OrderItem,
    OrderStatusHistory,
    Product,
    User,
)
from app.services.payment_service import PaymentService, PaymentOrder, to_minor_units

KEY_ID = "rzp_test_key"
KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"


class FakePaymentService(PaymentService):
    """Razorpay stand-in: real signature checks, canned gateway calls."""

    def __init__(self, key_secret: str = KEY_SECRET, webhook_secret: str = WEBHOOK_SECRET):
        super().__init__(key_id=KEY_ID, key_secret=key_secret, webhook_secret=webhook_secret)
        self.created_orders = []
        self.order_payments = {}
        self.fail_create = False
        self.fail_fetch_for = set()

    def create_order(self, order_id, amount, notes=None) -> PaymentOrder:
        if self.fail_create:
            raise ConnectionError("gateway unreachable")
        gateway_order_id = f"order_{uuid.uuid4().hex[:14]}"
        self.created_orders.append({
            "id": gateway_order_id,
            "receipt": str(order_id),
            "amount": to_minor_units(amount),
            "notes": notes or {},
        })
        return PaymentOrder(
            gateway_order_id=gateway_order_id,
            amount=to_minor_units(amount),
            currency=self.currency,
            public_key=self.key_id,
        )

    def get_order_payments(self, gateway_order_id: str) -> list:
        if gateway_order_id in self.fail_fetch_for:
            raise ConnectionError("gateway timeout")
        return self.order_payments.get(gateway_order_id, [])


# ==================== Signatures ====================

def sign_webhook(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def sign_checkout(gateway_order_id: str, gateway_payment_id: str, secret: str = KEY_SECRET) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def payment_event(
    event: str,
    gateway_order_id: str,
    amount: int,
    payment_id: Optional[str] = None,
    status: str = "captured",
) -> dict:
    return {
        "entity": "event",
        "account_id": "acc_test",
        "event": event,
        "contains": ["payment"],
        "payload": {
            "payment": {
                "entity": {
                    "id": payment_id or f"pay_{uuid.uuid4().hex[:14]}",
                    "entity": "payment",
                    "order_id": gateway_order_id,
                    "amount": amount,
                    "currency": "INR",
                    "status": status,
                    "method": "upi",
                    "error_description": "Payment declined" if status == "failed" else None,
                }
            }
        },
        "created_at": 1760000000,
    }


def signed_webhook(payload: dict, secret: str = WEBHOOK_SECRET) -> Tuple[bytes, dict]:
    body = json.dumps(payload).encode()
    headers = {"X-Razorpay-Signature": sign_webhook(body, secret), "Content-Type": "application/json"}
    return body, headers


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


# ==================== Seed rows ====================

async def add_all(session_factory, *rows):
    async with session_factory() as session:
        session.add_all(rows)
        await session.commit()
    return rows


async def make_user(session_factory, email: str, role: str = "CUSTOMER") -> User:
    user = User(email=email, name=email.split("@")[0].title(), role=role)
    await add_all(session_factory, user)
    return user


async def make_address(session_factory, user: User, is_default: bool = True) -> Address:
    address = Address(
        user_id=user.id,
        name="Home",
        address_line1="12 MG Road",
        city="Bengaluru",
        state="Karnataka",
        postal_code="560001",
        is_default=is_default,
    )
    await add_all(session_factory, address)
    return address


async def make_product(session_factory, slug: str, price: str, inventory: int = 50) -> Product:
    product = Product(
        name=slug.replace("-", " ").title(),
        slug=slug,
        category="MEN",
        price=Decimal(price),
        inventory=inventory,
    )
    await add_all(session_factory, product)
    return product


async def make_coupon(session_factory, code: str, **fields) -> Coupon:
    values = {
        "name": code.title(),
        "discount_type": "PERCENTAGE",
        "discount_value": Decimal("10"),
        "start_date": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    values.update(fields)
    coupon = Coupon(code=code, **values)
    await add_all(session_factory, coupon)
    return coupon


async def make_order(
    session_factory,
    user: User,
    address: Address,
    lines: Sequence[Tuple[Product, int]],
    coupon: Optional[Coupon] = None,
    discount: Decimal = Decimal("0"),
    created_at: Optional[datetime] = None,
) -> Order:
    """PENDING order with a gateway order id, as left by checkout."""
    items = [
        OrderItem(
            product_id=product.id,
            quantity=qty,
            price=product.price,
            total_price=product.price * qty,
        )
        for product, qty in lines
    ]
    subtotal = sum((i.total_price for i in items), Decimal("0"))
    order = Order(
        user_id=user.id,
        shipping_address_id=address.id,
        subtotal=subtotal,
        discount_amount=discount,
        total=subtotal - discount,
        coupon_id=coupon.id if coupon else None,
        coupon_code=coupon.code if coupon else None,
        gateway_order_id=f"order_{uuid.uuid4().hex[:14]}",
        items=items,
    )
    if created_at is not None:
        order.created_at = created_at
    await add_all(session_factory, order)
    return order


# ==================== Reads ====================

async def reload(session_factory, model, pk):
    async with session_factory() as session:
        return await session.get(model, pk)


async def count_rows(session_factory, model, *criteria) -> int:
    async with session_factory() as session:
        stmt = select(func.count()).select_from(model).where(*criteria)
        return (await session.execute(stmt)).scalar()


async def usage_count(session_factory, order: Order) -> int:
    return await count_rows(session_factory, CouponUsage, CouponUsage.order_id == order.id)


async def history_sources(session_factory, order: Order) -> list:
    async with session_factory() as session:
        result = await session.execute(
            select(OrderStatusHistory.source)
            .where(OrderStatusHistory.order_id == order.id)
            .order_by(OrderStatusHistory.created_at)
        )
        return list(result.scalars().all())
