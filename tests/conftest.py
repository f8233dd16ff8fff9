"""
Test fixtures.

Settings are read at import time, so the environment is prepared before
anything under `app` is imported. Each test gets its own SQLite file; the
API runs in-process through httpx's ASGI transport.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-checkout-tests")
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "test_key_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "test_webhook_secret"
os.environ["PAYMENT_SWEEP_ENABLED"] = "false"

import pytest
from httpx import AsyncClient, ASGITransport

from app.api.deps import get_payment_service
from app.database import build_engine, build_session_factory, get_db, init_db
from app.main import app
from tests.helpers import (
    FakePaymentService,
    make_address,
    make_product,
    make_user,
)


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'checkout.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def payments():
    return FakePaymentService()


@pytest.fixture
async def client(session_factory, payments):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_service] = lambda: payments

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ==================== Seed data ====================

@pytest.fixture
async def customer(session_factory):
    return await make_user(session_factory, "asha@example.com")


@pytest.fixture
async def other_customer(session_factory):
    return await make_user(session_factory, "ravi@example.com")


@pytest.fixture
async def admin(session_factory):
    return await make_user(session_factory, "ops@example.com", role="ADMIN")


@pytest.fixture
async def address(session_factory, customer):
    return await make_address(session_factory, customer)


@pytest.fixture
async def tshirt(session_factory):
    return await make_product(session_factory, "oversized-tee", "499.00", inventory=40)


@pytest.fixture
async def jeans(session_factory):
    return await make_product(session_factory, "slim-fit-jeans", "1499.00", inventory=20)
