"""
Shared fixtures: in-memory SQLite, a fake Shopify client, and a TestClient wired to both.
"""
import base64
import hashlib
import hmac
import json
import os

# Must be set before app modules read settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SHOPIFY_STORE_DOMAIN"] = "test-store.myshopify.com"
os.environ["SHOPIFY_ACCESS_TOKEN"] = "shpat_test"
os.environ["SHOPIFY_WEBHOOK_SECRET"] = "whsec_test"
os.environ["SHOPIFY_REQUEST_DELAY_SEC"] = "0"
os.environ["REFUND_DISCOUNT_MODE"] = "exclude"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from app.database import Base, enable_sqlite_foreign_keys, get_db
from app.http.dependencies import get_optional_shopify_client, get_shopify_client
from app.services.errors import ShopifyAPIError

WEBHOOK_SECRET = "whsec_test"


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def count(db, model) -> int:
    return db.query(func.count(model.id)).scalar()


class FakeShopifyClient:
    """In-memory stand-in for ShopifyClient. Records every call in `calls`."""

    def __init__(self, orders=None, refunds=None, transactions=None):
        self.orders = list(orders or [])
        self.refunds = dict(refunds or {})
        self.transactions = dict(transactions or {})
        self.locations = [{"id": 9001, "name": "Main warehouse"}]
        # method name -> {order id or "*": exception}
        self.failures = {}
        self.calls = []

    def fail(self, method, exc=None, key="*"):
        self.failures.setdefault(method, {})[str(key)] = exc or ShopifyAPIError(
            f"{method}", 500, '{"errors":"boom"}'
        )

    def _maybe_fail(self, method, key=None):
        rules = self.failures.get(method) or {}
        exc = rules.get(str(key)) or rules.get("*")
        if exc:
            raise exc

    def calls_to(self, method):
        return [c for c in self.calls if c[0] == method]

    async def list_orders(self, since_id=None, limit=250):
        self.calls.append(("list_orders", since_id, limit))
        self._maybe_fail("list_orders")
        ordered = sorted(self.orders, key=lambda o: int(o["id"]))
        if since_id:
            ordered = [o for o in ordered if int(o["id"]) > int(since_id)]
        return [json.loads(json.dumps(o)) for o in ordered[:limit]]

    async def get_order_refunds(self, order_id):
        self.calls.append(("get_order_refunds", order_id))
        self._maybe_fail("get_order_refunds", order_id)
        return json.loads(json.dumps(self.refunds.get(str(order_id), [])))

    async def get_order_transactions(self, order_id):
        self.calls.append(("get_order_transactions", order_id))
        self._maybe_fail("get_order_transactions", order_id)
        return json.loads(json.dumps(self.transactions.get(str(order_id), [])))

    async def get_locations(self):
        self.calls.append(("get_locations",))
        self._maybe_fail("get_locations")
        return self.locations

    async def create_fulfillment(self, order_id, tracking_number=None, tracking_company=None):
        self.calls.append(("create_fulfillment", order_id, tracking_number, tracking_company))
        self._maybe_fail("create_fulfillment", order_id)
        return {"fulfillment": {"id": 1, "order_id": int(order_id), "status": "success"}}

    async def cancel_order(self, order_id, reason="customer"):
        self.calls.append(("cancel_order", order_id, reason))
        self._maybe_fail("cancel_order", order_id)
        return {"order": {"id": int(order_id)}}

    async def update_line_item_quantity(self, order_id, line_item_id, quantity):
        self.calls.append(("update_line_item_quantity", order_id, line_item_id, quantity))
        self._maybe_fail("update_line_item_quantity", order_id)
        return {"id": f"gid://shopify/Order/{order_id}"}

    async def create_refund(self, order_id, refund_line_items, refund_shipping=False, location_id=None):
        self.calls.append(("create_refund", order_id, refund_line_items, refund_shipping, location_id))
        self._maybe_fail("create_refund", order_id)
        return {"refund": {"id": 1, "order_id": int(order_id)}}


def make_order_payload(order_id=1001, **overrides):
    """
    Order used across tests: gross 100.00 (2 x 50.00), 10.00 discount on the line, one refund of one
    unit (subtotal 20.00) with a 5.00 refund_discrepancy adjustment. Refund id is order_id * 10 + 1.
    """
    payload = {
        "id": order_id,
        "order_number": 1000 + order_id % 1000,
        "name": f"#{order_id}",
        "email": "buyer@example.com",
        "financial_status": "partially_refunded",
        "fulfillment_status": None,
        "currency": "USD",
        "total_price": "90.00",
        "subtotal_price": "90.00",
        "total_line_items_price": "100.00",
        "total_discounts": "10.00",
        "total_tax": "0.00",
        "processed_at": "2026-03-01T10:00:00-05:00",
        "created_at": "2026-03-01T10:00:00-05:00",
        "customer": {
            "id": 501,
            "email": "buyer@example.com",
            "first_name": "Sam",
            "last_name": "Buyer",
            "verified_email": True,
            "state": "enabled",
            "created_at": "2025-12-01T08:00:00Z",
            "default_address": {"city": "Austin", "country": "US"},
        },
        "line_items": [
            {
                "id": 11,
                "product_id": 301,
                "title": "Ceramic Mug",
                "sku": "MUG-1",
                "vendor": "Clayworks",
                "quantity": 2,
                "price": "50.00",
                "tax_lines": [],
                "discount_allocations": [{"amount": "10.00"}],
            }
        ],
        "fulfillments": [],
        "refunds": [
            {
                "id": order_id * 10 + 1,
                "processed_at": "2026-03-05T12:00:00Z",
                "note": "Chipped",
                "refund_line_items": [
                    {
                        "id": 8001,
                        "line_item_id": 11,
                        "quantity": 1,
                        "subtotal": "20.00",
                        "total_tax": "0.00",
                        "restock_type": "return",
                        "line_item": {
                            "id": 11,
                            "quantity": 2,
                            "discount_allocations": [{"amount": "10.00"}],
                        },
                    }
                ],
                "order_adjustments": [
                    {"id": 9001, "kind": "refund_discrepancy", "reason": "Refund discrepancy", "amount": "5.00", "tax_amount": "0.00"}
                ],
                "transactions": [{"id": 6001, "kind": "refund", "amount": "15.00", "status": "success"}],
            }
        ],
    }
    payload.update(overrides)
    return payload


def make_transactions(gateway="shopify_payments"):
    return [
        {"id": 4001, "kind": "sale", "status": "success", "amount": "90.00", "gateway": gateway, "currency": "USD",
         "processed_at": "2026-03-01T10:00:05-05:00"},
        {"id": 4002, "kind": "sale", "status": "failure", "amount": "90.00", "gateway": gateway},
        {"id": 4003, "kind": "refund", "status": "success", "amount": "15.00", "gateway": gateway},
    ]


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def fake_shopify():
    return FakeShopifyClient()


@pytest.fixture
def client(session_factory, fake_shopify):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_shopify_client] = lambda: fake_shopify
    app.dependency_overrides[get_optional_shopify_client] = lambda: fake_shopify
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
