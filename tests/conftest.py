import json
import time
import uuid

import httpx
import pytest
import pytest_asyncio
from tortoise import Tortoise

from shopilent.core import config
from shopilent.core.db import MODELS_MODULES
from shopilent.core.security import Role, create_access_token
from shopilent.gateways.stripe import build_signature_header
from shopilent.models.payment import PaymentProvider
from shopilent.services.order_service import create_order
from shopilent.services.payment_service import create_payment

WEBHOOK_SECRET = "whsec_test_secret"
CUSTOMER_ID = uuid.UUID("11111111-1111-4111-8111-111111111111")
OTHER_CUSTOMER_ID = uuid.UUID("22222222-2222-4222-8222-222222222222")
ADMIN_ID = uuid.UUID("33333333-3333-4333-8333-333333333333")
INTENT_ID = "pi_test_123"


@pytest.fixture(autouse=True)
def webhook_secret(monkeypatch):
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    return WEBHOOK_SECRET


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory SQLite database per test."""
    await Tortoise.init(
        db_url="sqlite://:memory:",
        modules={"models": MODELS_MODULES},
        use_tz=True,
        timezone="UTC",
    )
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


@pytest_asyncio.fixture
async def order(db):
    return await create_order(
        str(CUSTOMER_ID),
        [{"product_name": "Widget", "quantity": 2, "unit_price": "12.50"}],
    )


@pytest_asyncio.fixture
async def payment(order):
    return await create_payment(order.id, str(CUSTOMER_ID), PaymentProvider.STRIPE, external_reference=INTENT_ID)


@pytest.fixture
def auth_headers():
    def _headers(role: Role = Role.CUSTOMER, user_id: uuid.UUID = CUSTOMER_ID):
        return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}

    return _headers


@pytest.fixture
def stripe_webhook():
    """Builds a Stripe event body and a valid Stripe-Signature header for it."""

    def _build(event_id: str, event_type: str, obj: dict, timestamp: int = None):
        payload = json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}}).encode("utf-8")
        ts = timestamp if timestamp is not None else int(time.time())
        return payload, build_signature_header(WEBHOOK_SECRET, ts, payload)

    return _build


@pytest_asyncio.fixture
async def client(db):
    from shopilent.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
