# tests/conftest.py
# Shared fixtures: sqlite database, Shopify mock transport, Stripe doubles

import hashlib
import hmac
import json
import os
import tempfile
import time
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Settings are read at import time, so the environment is prepared first
_DB_DIR = tempfile.mkdtemp(prefix="checkout-tests-")

TEST_ACCOUNTS = [
    {
        "label": "Account A",
        "secret_key": "sk_test_account_a",
        "publishable_key": "pk_test_account_a",
        "webhook_secret": "whsec_account_a",
        "active": False,
        "order": 0,
    },
    {
        "label": "Account B",
        "secret_key": "sk_test_account_b",
        "publishable_key": "pk_test_account_b",
        "webhook_secret": "whsec_account_b",
        "active": True,
        "order": 1,
    },
]

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/app.db"
os.environ["STRIPE_ACCOUNTS"] = json.dumps(TEST_ACCOUNTS)
os.environ["SHOPIFY_SHOP_DOMAIN"] = "test-shop.myshopify.com"
os.environ["SHOPIFY_CLIENT_ID"] = "shopify-client-id"
os.environ["SHOPIFY_CLIENT_SECRET"] = "shopify-client-secret"
os.environ["SHOPIFY_STOREFRONT_TOKEN"] = "storefront-token"
os.environ["SLACK_ALERTS_URL"] = ""
os.environ["ENVIRONMENT"] = "development"

from app.core.background import BackgroundDispatcher  # noqa: E402
from app.core.config import StripeAccountConfig  # noqa: E402
from app.core.unit_of_work import UnitOfWork, UnitOfWorkFactory  # noqa: E402
from app.models import Base  # noqa: E402
from app.services.account_registry import AccountRegistry  # noqa: E402
from app.services.shopify_service import ShopifyService  # noqa: E402
from app.services.slack_service import SlackService  # noqa: E402
from app.services.statistics_service import StatisticsService  # noqa: E402


def sign_payload(payload: str, secret: str, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header the way Stripe does."""
    timestamp = timestamp if timestamp is not None else int(time.time())
    signed_payload = f"{timestamp}.{payload}"
    signature = hmac.new(
        secret.encode(),
        signed_payload.encode(),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def payment_succeeded_event(
    session_id: str | None = "cs_test_1",
    amount: int = 2230,
    currency: str = "eur",
    customer: str | None = "cus_test_1",
    payment_method: str | None = "pm_test_1",
    latest_charge: str | None = "ch_test_1",
    extra_metadata: dict | None = None,
    event_type: str = "payment_intent.succeeded",
) -> dict:
    metadata = {"sessionId": session_id} if session_id else {}
    metadata.update(extra_metadata or {})
    return {
        "id": "evt_test_1",
        "object": "event",
        "type": event_type,
        "livemode": False,
        "data": {
            "object": {
                "id": "pi_test_1",
                "object": "payment_intent",
                "amount": amount,
                "currency": currency,
                "status": "succeeded",
                "customer": customer,
                "payment_method": payment_method,
                "latest_charge": latest_charge,
                "metadata": metadata,
            }
        },
    }


def session_document(**overrides) -> dict:
    document = {
        "currency": "EUR",
        "items": [
            {
                "id": 1,
                "variantId": 44012345678901,
                "title": "Serum",
                "quantity": 2,
                "priceCents": 1115,
                "linePriceCents": 2230,
            }
        ],
        "subtotal_cents": 2230,
        "shipping_cents": 0,
        "total_cents": 2230,
        "customer": {
            "fullName": "Mario Rossi",
            "email": "mario@example.com",
            "phone": "333 123 4567",
            "countryCode": "IT",
            "address1": "Via Roma 1",
            "city": "Milano",
            "province": "MI",
            "postalCode": "20100",
        },
        "raw_cart_id": "gid://shopify/Cart/abc123",
    }
    document.update(overrides)
    return document


class MemoryTokenCache:
    def __init__(self):
        self.values: dict[str, str] = {}

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value, ttl=None):
        self.values[key] = value

    async def delete(self, key):
        self.values.pop(key, None)


class FakeShopify:
    """Mock transport answering the Shopify endpoints this service calls."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.order_status = 201
        self.order_body: dict = {"errors": {"line_items": ["is invalid"]}}
        # Non-JSON 200 body for orders.json, e.g. a maintenance page
        self.order_html: str | None = None
        self.next_order_id = 5001

    @property
    def order_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/orders.json")]

    def order_payloads(self) -> list[dict]:
        return [json.loads(r.content) for r in self.order_requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/admin/oauth/access_token":
            return httpx.Response(200, json={"access_token": "shpat_test", "expires_in": 86399})

        if path.endswith("/orders.json"):
            if self.order_html is not None:
                return httpx.Response(
                    200, text=self.order_html, headers={"content-type": "text/html"}
                )
            if self.order_status != 201:
                return httpx.Response(self.order_status, json=self.order_body)
            order_id = self.next_order_id
            self.next_order_id += 1
            return httpx.Response(
                201,
                json={"order": {"id": order_id, "order_number": order_id - 4000}},
            )

        if path.endswith("/graphql.json"):
            body = json.loads(request.content)
            if "cartLinesRemove" in body["query"]:
                return httpx.Response(
                    200,
                    json={"data": {"cartLinesRemove": {"cart": {"id": "c"}, "userErrors": []}}},
                )
            return httpx.Response(
                200,
                json={
                    "data": {
                        "cart": {"lines": {"edges": [{"node": {"id": "gid://shopify/CartLine/1"}}]}}
                    }
                },
            )

        return httpx.Response(404, json={"errors": "Not Found"})


@pytest.fixture
def session_maker(tmp_path):
    db_path = tmp_path / "checkout.db"
    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()

    # NullPool keeps aiosqlite connections off the pool across event loops
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
def uow_factory(session_maker):
    return UnitOfWorkFactory(session_maker)


@pytest.fixture
async def uow(session_maker):
    session = session_maker()
    yield UnitOfWork(session)
    await session.close()


@pytest.fixture
def seed_session(uow_factory):
    async def _seed(session_id: str = "cs_test_1", **overrides):
        async with uow_factory() as seed_uow:
            await seed_uow.checkout_sessions.create(session_id, **session_document(**overrides))
            await seed_uow.commit()
        return session_id

    return _seed


@pytest.fixture
def accounts():
    return [StripeAccountConfig(**account) for account in TEST_ACCOUNTS]


@pytest.fixture
def gateway():
    gateway = MagicMock()
    gateway.attach_payment_method = AsyncMock(return_value=None)
    gateway.set_default_payment_method = AsyncMock(return_value=None)
    gateway.retrieve_network_transaction_id = AsyncMock(return_value="ntx_123")
    gateway.retrieve_payment_method_customer = AsyncMock(return_value="cus_from_pm")
    gateway.create_off_session_payment_intent = AsyncMock()
    return gateway


@pytest.fixture
def registry(accounts, gateway):
    return AccountRegistry(accounts, gateway_factory=lambda account: gateway)


@pytest.fixture
def fake_shopify():
    return FakeShopify()


@pytest.fixture
def shopify(fake_shopify):
    return ShopifyService(
        shop_domain="test-shop.myshopify.com",
        client_id="shopify-client-id",
        client_secret="shopify-client-secret",
        storefront_token="storefront-token",
        token_cache=MemoryTokenCache(),
        transport=httpx.MockTransport(fake_shopify.handler),
        retry_delay=0,
    )


@pytest.fixture
def statistics(uow_factory):
    return StatisticsService(uow_factory)


@pytest.fixture
def dispatcher():
    return BackgroundDispatcher()


@pytest.fixture
def slack():
    slack = SlackService(slack_url="")
    slack.send_critical_alert = AsyncMock(return_value=None)
    return slack
