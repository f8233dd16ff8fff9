"""Tests for checkout order creation: amount checks, coupon binding and the gateway order."""

from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from app.models import Coupon, Order, Product
from app.services.payment_service import to_minor_units
from tests.helpers import (
    auth_headers,
    count_rows,
    make_address,
    make_coupon,
    make_product,
    reload,
)

ORDERS_URL = "/api/v1/orders"


def checkout_body(address, lines, **amounts):
    """Checkout request with a consistent subtotal and total unless overridden."""
    subtotal = sum((Decimal(p.price) * qty for p, qty in lines), Decimal("0"))
    tax = Decimal(amounts.pop("tax", "0"))
    shipping = Decimal(amounts.pop("shipping", "0"))
    discount = Decimal(amounts.pop("discount_amount", "0"))
    body = {
        "items": [
            {"product_id": str(p.id), "quantity": qty, "size": "M", "color": "Black"}
            for p, qty in lines
        ],
        "address_id": str(address.id),
        "subtotal": str(subtotal),
        "tax": str(tax),
        "shipping": str(shipping),
        "discount_amount": str(discount),
        "total": str(subtotal + tax + shipping - discount),
    }
    body.update({k: str(v) if v is not None else None for k, v in amounts.items()})
    return body


class TestMinorUnits:

    def test_whole_rupees(self):
        assert to_minor_units(Decimal("998.00")) == 99800

    def test_rounds_half_up(self):
        assert to_minor_units(Decimal("10.005")) == 1001


class TestCreateOrder:
    """POST /api/v1/orders"""

    async def test_creates_pending_order_with_gateway_order(
        self, client, customer, address, tshirt, jeans, payments, session_factory
    ):
        body = checkout_body(address, [(tshirt, 2), (jeans, 1)], tax="89.91", shipping="49")

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 201
        data = response.json()
        assert data["order"]["total"] == 2635.91
        assert data["payment"]["amount"] == 263591
        assert data["payment"]["currency"] == "INR"
        assert data["payment"]["public_key"] == "rzp_test_key"

        gateway_order = payments.created_orders[0]
        assert data["payment"]["gateway_order_id"] == gateway_order["id"]
        assert gateway_order["receipt"] == data["order"]["id"]
        assert gateway_order["notes"]["user_id"] == str(customer.id)

        async with session_factory() as session:
            order = await session.get(Order, UUID(data["order"]["id"]))
            assert order.status == "PENDING"
            assert order.payment_status == "PENDING"
            assert order.gateway_order_id == gateway_order["id"]
            assert order.subtotal == Decimal("2497.00")
            assert order.total == order.subtotal + order.tax + order.shipping - order.discount_amount

    async def test_prices_are_taken_from_catalogue(
        self, client, customer, address, tshirt, session_factory
    ):
        body = checkout_body(address, [(tshirt, 2)])

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 201
        listing = await client.get(ORDERS_URL, headers=auth_headers(customer))
        item = listing.json()[0]["items"][0]
        assert item["price"] == 499.0
        assert item["total_price"] == 998.0
        assert item["size"] == "M"

    async def test_inventory_and_coupon_untouched_until_paid(
        self, client, customer, address, tshirt, session_factory
    ):
        coupon = await make_coupon(session_factory, "SAVE10", max_usage=10)
        body = checkout_body(
            address, [(tshirt, 2)],
            discount_amount="99.80", coupon_id=coupon.id, coupon_code="SAVE10",
        )

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 201
        assert response.json()["order"]["total"] == 898.2
        assert (await reload(session_factory, Product, tshirt.id)).inventory == 40
        assert (await reload(session_factory, Coupon, coupon.id)).times_used == 0

    async def test_fixed_coupon_on_small_cart(self, client, customer, address, session_factory):
        socks = await make_product(session_factory, "ankle-socks", "15.00")
        coupon = await make_coupon(
            session_factory, "FLAT20", discount_type="FIXED", discount_value=Decimal("20")
        )
        body = checkout_body(
            address, [(socks, 1)], tax="2.70", shipping="40",
            discount_amount="15", coupon_id=coupon.id, coupon_code="FLAT20",
        )

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 201
        assert response.json()["order"]["total"] == 42.7

    async def test_address_of_another_user(
        self, client, customer, other_customer, tshirt, session_factory
    ):
        foreign = await make_address(session_factory, other_customer)
        body = checkout_body(foreign, [(tshirt, 1)])

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid shipping address"
        assert await count_rows(session_factory, Order) == 0

    async def test_discount_without_coupon(self, client, customer, address, tshirt):
        body = checkout_body(address, [(tshirt, 1)], discount_amount="10")

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 400
        assert response.json()["error"] == "Discount requires a coupon"

    async def test_coupon_code_must_match_id(self, client, customer, address, tshirt, session_factory):
        coupon = await make_coupon(session_factory, "SAVE10")
        body = checkout_body(
            address, [(tshirt, 1)],
            discount_amount="49.90", coupon_id=coupon.id, coupon_code="OTHER",
        )

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid coupon"

    async def test_inactive_coupon(self, client, customer, address, tshirt, session_factory):
        coupon = await make_coupon(session_factory, "PAUSED", is_active=False)
        body = checkout_body(
            address, [(tshirt, 1)],
            discount_amount="49.90", coupon_id=coupon.id, coupon_code="PAUSED",
        )

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid coupon"

    async def test_coupon_code_without_id(self, client, customer, address, tshirt):
        body = checkout_body(address, [(tshirt, 1)], coupon_code="SAVE10")

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 400
        assert response.json()["error"] == "Both coupon_id and coupon_code are required"

    @pytest.mark.parametrize("field, value, message", [
        ("subtotal", "100.00", "Order subtotal does not match cart items"),
        ("total", "1.00", "Order total does not match subtotal, tax, shipping and discount"),
    ])
    async def test_amount_mismatch(self, client, customer, address, tshirt, field, value, message):
        body = checkout_body(address, [(tshirt, 2)])
        body[field] = value

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 400
        assert response.json()["error"] == message

    async def test_one_paisa_drift_is_tolerated(self, client, customer, address, tshirt):
        body = checkout_body(address, [(tshirt, 2)])
        body["total"] = "998.01"

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 201
        # Stored total is the server-computed one
        assert response.json()["order"]["total"] == 998.0

    async def test_discount_larger_than_subtotal(
        self, client, customer, address, tshirt, session_factory
    ):
        coupon = await make_coupon(session_factory, "SAVE10")
        body = checkout_body(address, [(tshirt, 1)], coupon_id=coupon.id, coupon_code="SAVE10")
        body["discount_amount"] = "600"

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 400
        assert response.json()["error"] == "Discount cannot exceed subtotal"

    @pytest.mark.parametrize("discount", ["498.00", "19.98", "0"])
    async def test_discount_must_match_coupon(
        self, client, customer, address, tshirt, session_factory, discount
    ):
        coupon = await make_coupon(
            session_factory, "FLAT20", discount_type="FIXED", discount_value=Decimal("20")
        )
        body = checkout_body(
            address, [(tshirt, 1)],
            discount_amount=discount, coupon_id=coupon.id, coupon_code="FLAT20",
        )

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 400
        assert response.json()["error"] == "Discount does not match coupon"
        assert await count_rows(session_factory, Order) == 0

    async def test_exhausted_coupon_still_prices_the_order(
        self, client, customer, address, tshirt, session_factory
    ):
        coupon = await make_coupon(session_factory, "LAST", max_usage=1, times_used=1)
        body = checkout_body(
            address, [(tshirt, 1)],
            discount_amount="49.90", coupon_id=coupon.id, coupon_code="LAST",
        )

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 201
        assert response.json()["order"]["total"] == 449.1

    async def test_unknown_product(self, client, customer, address, tshirt):
        body = checkout_body(address, [(tshirt, 1)])
        missing = str(uuid4())
        body["items"][0]["product_id"] = missing

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 404
        assert response.json()["error"] == f"Product {missing} not found"

    async def test_inactive_product(self, client, customer, address, session_factory):
        retired = await make_product(session_factory, "retired-hoodie", "999.00")
        async with session_factory() as session:
            (await session.get(Product, retired.id)).is_active = False
            await session.commit()
        body = checkout_body(address, [(retired, 1)])

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 404

    async def test_empty_cart(self, client, customer, address):
        body = checkout_body(address, [])

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 400

    async def test_gateway_failure_leaves_no_order(
        self, client, customer, address, tshirt, payments, session_factory
    ):
        payments.fail_create = True
        body = checkout_body(address, [(tshirt, 1)])

        response = await client.post(ORDERS_URL, json=body, headers=auth_headers(customer))

        assert response.status_code == 500
        assert response.json()["error"] == "Service temporarily unavailable, please retry"
        assert await count_rows(session_factory, Order) == 0

    async def test_requires_authentication(self, client, address, tshirt):
        response = await client.post(ORDERS_URL, json=checkout_body(address, [(tshirt, 1)]))

        assert response.status_code == 401


class TestReadOrders:

    async def test_customer_sees_only_own_orders(
        self, client, customer, other_customer, address, tshirt
    ):
        created = await client.post(
            ORDERS_URL, json=checkout_body(address, [(tshirt, 1)]), headers=auth_headers(customer)
        )
        order_id = created.json()["order"]["id"]

        mine = await client.get(ORDERS_URL, headers=auth_headers(customer))
        theirs = await client.get(ORDERS_URL, headers=auth_headers(other_customer))
        detail = await client.get(f"{ORDERS_URL}/{order_id}", headers=auth_headers(customer))
        foreign = await client.get(f"{ORDERS_URL}/{order_id}", headers=auth_headers(other_customer))

        assert [o["id"] for o in mine.json()] == [order_id]
        assert theirs.json() == []
        assert detail.status_code == 200
        assert detail.json()["status_history"] == []
        assert foreign.status_code == 404
