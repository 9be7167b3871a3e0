"""
HTTP endpoints: sync, order actions, reports, health
"""
import asyncio
import pytest
from decimal import Decimal

from app.config import settings
from app.http.dependencies import get_shopify_client
from app.models import Order, SyncJob
from app.services.order_upsert import OrderUpsertService
from app.services.reconciliation import RefundDiscountMode
from main import app
from tests.conftest import FakeShopifyClient, count, make_order_payload


def _seed(db_session, *payloads):
    service = OrderUpsertService(db_session, FakeShopifyClient(), RefundDiscountMode.EXCLUDE)
    for payload in payloads:
        asyncio.run(service.upsert_order(payload))
    return db_session.query(Order).order_by(Order.shopify_order_id).all()


@pytest.fixture
def seeded_order(db_session):
    return _seed(db_session, make_order_payload(1001))[0]


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["service"] == "api"


class TestSyncEndpoints:
    def test_sync_orders(self, client, fake_shopify, db_session):
        payload = make_order_payload(1, customer=None)
        del payload["refunds"]
        fake_shopify.orders = [payload]

        response = client.post("/api/sync/orders?full_reset=false")

        assert response.status_code == 200
        assert response.json() == {"message": "Orders synced successfully", "ordersSynced": 1}
        assert count(db_session, Order) == 1

    def test_sync_failure_reports_partial_count(self, client, fake_shopify, db_session):
        orders = []
        for order_id in (1, 2):
            payload = make_order_payload(order_id, customer=None)
            del payload["refunds"]
            orders.append(payload)
        fake_shopify.orders = orders
        fake_shopify.fail("get_order_refunds", key="2")

        response = client.post("/api/sync/orders?full_reset=false")

        assert response.status_code == 502
        assert response.json()["ordersSynced"] == 1
        assert count(db_session, Order) == 1

    def test_sync_without_configuration(self, client, monkeypatch):
        app.dependency_overrides.pop(get_shopify_client, None)
        monkeypatch.setattr(settings, "SHOPIFY_ACCESS_TOKEN", "")

        response = client.post("/api/sync/orders")

        assert response.status_code == 400

    def test_status(self, client, fake_shopify):
        assert client.get("/api/sync/status").json() == {"lastSyncAt": None, "lastJob": None}

        client.post("/api/sync/orders?full_reset=true")
        body = client.get("/api/sync/status").json()

        assert body["lastSyncAt"] is not None
        assert body["lastJob"]["status"] == "SUCCESS"
        assert body["lastJob"]["fullReset"] is True

    def test_jobs(self, client, db_session):
        client.post("/api/sync/orders?full_reset=false")
        client.post("/api/sync/orders?full_reset=false")
        assert len(client.get("/api/sync/jobs").json()["jobs"]) == 2
        assert count(db_session, SyncJob) == 2


class TestOrderReads:
    def test_list(self, client, seeded_order):
        orders = client.get("/api/orders").json()["orders"]
        assert [o["shopifyOrderId"] for o in orders] == ["1001"]

    def test_detail(self, client, seeded_order):
        order = client.get(f"/api/orders/{seeded_order.id}").json()["order"]
        assert order["totalRefunds"] == 15.0
        assert order["netRevenue"] == 75.0
        assert order["customer"]["name"] == "Sam Buyer"
        assert len(order["items"]) == 1
        assert order["refunds"][0]["totalAmount"] == 15.0

    def test_detail_not_found(self, client):
        assert client.get("/api/orders/missing").status_code == 404


class TestOrderActions:
    def test_locations(self, client):
        body = client.get("/api/orders/locations").json()
        assert body == {"locations": [{"id": "9001", "name": "Main warehouse"}]}

    def test_fulfill(self, client, fake_shopify, seeded_order):
        response = client.post(
            f"/api/orders/{seeded_order.id}/fulfill",
            json={"tracking_number": "1Z999", "tracking_company": "UPS"},
        )
        assert response.status_code == 200
        assert fake_shopify.calls_to("create_fulfillment") == [("create_fulfillment", "1001", "1Z999", "UPS")]

    def test_fulfill_unknown_order(self, client, fake_shopify):
        assert client.post("/api/orders/nope/fulfill", json={}).status_code == 404
        assert fake_shopify.calls == []

    def test_cancel_upstream_failure(self, client, fake_shopify, seeded_order):
        fake_shopify.fail("cancel_order")
        response = client.post(f"/api/orders/{seeded_order.id}/cancel", json={"reason": "customer"})
        assert response.status_code == 502
        assert "Cancellation failed" in response.json()["detail"]

    def test_cancel_invalid_reason(self, client, fake_shopify, seeded_order):
        response = client.post(f"/api/orders/{seeded_order.id}/cancel", json={"reason": "bored"})
        assert response.status_code == 400
        assert fake_shopify.calls_to("cancel_order") == []

    def test_quantity(self, client, fake_shopify, seeded_order):
        response = client.post(f"/api/orders/{seeded_order.id}/quantity", json={"line_item_id": "11", "quantity": 1})
        assert response.status_code == 200
        assert fake_shopify.calls_to("update_line_item_quantity") == [("update_line_item_quantity", "1001", "11", 1)]

    def test_quantity_accepts_local_item_id(self, client, fake_shopify, seeded_order):
        local_id = seeded_order.items[0].id
        response = client.post(f"/api/orders/{seeded_order.id}/quantity", json={"line_item_id": local_id, "quantity": 3})
        assert response.status_code == 200
        assert fake_shopify.calls_to("update_line_item_quantity") == [("update_line_item_quantity", "1001", "11", 3)]

    def test_quantity_unknown_line_item(self, client, fake_shopify, seeded_order):
        response = client.post(f"/api/orders/{seeded_order.id}/quantity", json={"line_item_id": "999999", "quantity": 1})
        assert response.status_code == 404
        assert fake_shopify.calls_to("update_line_item_quantity") == []

    def test_quantity_negative_rejected(self, client, seeded_order):
        response = client.post(f"/api/orders/{seeded_order.id}/quantity", json={"line_item_id": "11", "quantity": -1})
        assert response.status_code == 400

    def test_refund(self, client, fake_shopify, seeded_order):
        response = client.post(f"/api/orders/{seeded_order.id}/refund", json={
            "refund_items": [{"id": "11", "quantity": 1}, {"id": "12", "quantity": 0}],
            "location_id": "9001",
        })

        assert response.status_code == 200
        (call,) = fake_shopify.calls_to("create_refund")
        assert call == (
            "create_refund", "1001",
            [{"line_item_id": "11", "quantity": 1, "restock_type": "return"}],
            False, "9001",
        )

    def test_refund_maps_local_item_id(self, client, fake_shopify, seeded_order):
        local_id = seeded_order.items[0].id
        response = client.post(f"/api/orders/{seeded_order.id}/refund", json={
            "refund_items": [{"id": local_id, "quantity": 1}],
            "location_id": "9001",
        })

        assert response.status_code == 200
        (call,) = fake_shopify.calls_to("create_refund")
        assert call[2] == [{"line_item_id": "11", "quantity": 1, "restock_type": "return"}]

    def test_refund_of_foreign_line_item_rejected(self, client, fake_shopify, seeded_order):
        response = client.post(f"/api/orders/{seeded_order.id}/refund", json={
            "refund_items": [{"id": "999999", "quantity": 1}],
            "location_id": "9001",
        })
        assert response.status_code == 400
        assert fake_shopify.calls_to("create_refund") == []

    def test_empty_refund_selection_rejected_before_api_call(self, client, fake_shopify, seeded_order):
        response = client.post(f"/api/orders/{seeded_order.id}/refund", json={
            "refund_items": [{"id": "11", "quantity": 0}],
            "location_id": "9001",
        })
        assert response.status_code == 400
        assert response.json()["detail"] == "No items selected for refund."
        assert fake_shopify.calls_to("create_refund") == []

    def test_refund_requires_location(self, client, fake_shopify, seeded_order):
        response = client.post(f"/api/orders/{seeded_order.id}/refund", json={"refund_items": [{"id": "11", "quantity": 1}]})
        assert response.status_code == 400
        assert fake_shopify.calls_to("create_refund") == []


class TestReports:
    def test_summary(self, client, db_session):
        _seed(
            db_session,
            make_order_payload(1001),
            make_order_payload(1002, refunds=[], financial_status="paid"),
            make_order_payload(1003, refunds=[], financial_status="pending"),
            make_order_payload(1004, refunds=[], processed_at="2025-01-01T00:00:00Z"),
        )

        body = client.get("/api/reports/summary?start=2026-03-01&end=2026-03-31").json()

        assert body["totalOrders"] == 2
        assert body["grossSales"] == 200.0
        assert body["discounts"] == 20.0
        assert body["refunds"] == 15.0
        assert body["netRevenue"] == 165.0
        assert body["averageOrderValue"] == 100.0

    def test_summary_service_returns_decimals(self, db_session):
        from datetime import datetime
        from app.services.sales_report import compute_sales_summary

        _seed(db_session, make_order_payload(1001))
        summary = compute_sales_summary(db_session, datetime(2026, 3, 1), datetime(2026, 3, 31, 23, 59, 59))

        assert summary["net_revenue"] == Decimal("75.00")
        assert summary["total_orders"] == 1

    def test_daily(self, client, db_session):
        _seed(
            db_session,
            make_order_payload(1001),
            make_order_payload(1002, refunds=[], processed_at="2026-03-02T12:00:00Z"),
        )
        days = client.get("/api/reports/daily?start=2026-03-01&end=2026-03-31").json()["days"]
        assert days == [
            {"date": "2026-03-01", "orders": 1, "netRevenue": 75.0},
            {"date": "2026-03-02", "orders": 1, "netRevenue": 90.0},
        ]

    def test_inverted_range(self, client):
        assert client.get("/api/reports/summary?start=2026-03-31&end=2026-03-01").status_code == 400
