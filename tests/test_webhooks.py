"""
Shopify webhooks: HMAC verification, payload validation, upsert/delete dispatch
"""
import json
import pytest
from decimal import Decimal

from app.models import Order, Refund, WebhookEvent
from app.services.order_upsert import OrderUpsertService
from app.services.reconciliation import RefundDiscountMode
from app.services.shopify_webhook_handler import ShopifyWebhookReceiver, verify_webhook_hmac
from tests.conftest import FakeShopifyClient, count, make_order_payload, sign


def _body(payload) -> bytes:
    return json.dumps(payload).encode("utf-8")


def _post(client, path, body, signature=None, topic=None):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["X-Shopify-Hmac-Sha256"] = signature
    if topic is not None:
        headers["X-Shopify-Topic"] = topic
    return client.post(path, content=body, headers=headers)


class TestVerifyHmac:
    def test_valid_signature(self):
        body = b'{"id": 1}'
        assert verify_webhook_hmac(body, sign(body), "whsec_test") is True

    def test_wrong_secret(self):
        body = b'{"id": 1}'
        assert verify_webhook_hmac(body, sign(body, "other"), "whsec_test") is False

    def test_tampered_body(self):
        assert verify_webhook_hmac(b'{"id": 2}', sign(b'{"id": 1}'), "whsec_test") is False

    def test_missing_header_or_secret(self):
        body = b'{"id": 1}'
        assert verify_webhook_hmac(body, None, "whsec_test") is False
        assert verify_webhook_hmac(body, sign(body), "") is False

    def test_non_ascii_header(self):
        assert verify_webhook_hmac(b'{"id": 1}', "\xff\xff==", "whsec_test") is False


class TestOrderWebhooks:
    def test_create_persists_order(self, client, db_session):
        body = _body(make_order_payload(1001))
        response = _post(client, "/api/webhooks/orders-create", body, sign(body))

        assert response.status_code == 200
        assert response.text == "OK"
        order = db_session.query(Order).one()
        assert order.shopify_order_id == "1001"
        assert order.total_refunds == Decimal("15.00")

        event = db_session.query(WebhookEvent).one()
        assert event.topic == "orders/create"
        assert event.payload_summary == "id=1001"
        assert event.processed_at is not None
        assert event.error is None

    def test_update_is_idempotent(self, client, db_session):
        body = _body(make_order_payload(1001))
        for _ in range(2):
            assert _post(client, "/api/webhooks/orders-update", body, sign(body)).status_code == 200
        assert count(db_session, Order) == 1
        assert count(db_session, Refund) == 1

    def test_invalid_signature_changes_nothing(self, client, db_session):
        body = _body(make_order_payload(1001))
        response = _post(client, "/api/webhooks/orders-create", body, sign(body, "not-the-secret"))

        assert response.status_code == 401
        assert count(db_session, Order) == 0
        assert count(db_session, WebhookEvent) == 0

    def test_missing_signature(self, client, db_session):
        body = _body(make_order_payload(1001))
        assert _post(client, "/api/webhooks/orders-cancel", body).status_code == 401
        assert count(db_session, Order) == 0

    def test_non_ascii_signature_is_unauthorized(self, client, db_session):
        body = _body(make_order_payload(1001))
        response = _post(client, "/api/webhooks/orders-create", body, "\xff\xff==".encode("latin-1"))

        assert response.status_code == 401
        assert count(db_session, Order) == 0

    def test_malformed_json(self, client, db_session):
        body = b"{not json"
        response = _post(client, "/api/webhooks/orders-create", body, sign(body))
        assert response.status_code == 400
        assert count(db_session, WebhookEvent) == 0

    def test_json_array_rejected(self, client):
        body = b"[1, 2]"
        assert _post(client, "/api/webhooks/orders-update", body, sign(body)).status_code == 400

    def test_payload_without_id(self, client, db_session):
        payload = make_order_payload(1001)
        del payload["id"]
        body = _body(payload)
        assert _post(client, "/api/webhooks/orders-create", body, sign(body)).status_code == 400
        assert count(db_session, Order) == 0

    def test_processing_failure_returns_500(self, client, fake_shopify, db_session):
        payload = make_order_payload(1001)
        del payload["refunds"]
        fake_shopify.fail("get_order_refunds")
        body = _body(payload)

        response = _post(client, "/api/webhooks/orders-create", body, sign(body))

        assert response.status_code == 500
        assert count(db_session, Order) == 0
        assert "HTTP 500" in db_session.query(WebhookEvent).one().error


class TestDeleteWebhook:
    def test_delete_existing(self, client, db_session):
        body = _body(make_order_payload(1001))
        _post(client, "/api/webhooks/orders-create", body, sign(body))

        delete_body = _body({"id": 1001})
        response = _post(client, "/api/webhooks/orders-delete", delete_body, sign(delete_body))

        assert response.status_code == 200
        assert count(db_session, Order) == 0
        assert count(db_session, Refund) == 0

    def test_delete_unknown_is_noop(self, client, db_session):
        body = _body({"id": 123456789})
        response = _post(client, "/api/webhooks/orders-delete", body, sign(body))
        assert response.status_code == 200
        assert count(db_session, Order) == 0

    def test_delete_rejects_bad_signature(self, client, db_session):
        body = _body(make_order_payload(1001))
        _post(client, "/api/webhooks/orders-create", body, sign(body))

        delete_body = _body({"id": 1001})
        response = _post(client, "/api/webhooks/orders-delete", delete_body, "bogus")

        assert response.status_code == 401
        assert count(db_session, Order) == 1


class TestTopicDispatch:
    def test_routes_by_topic(self, client, db_session):
        body = _body(make_order_payload(1001))
        assert _post(client, "/api/webhooks/shopify", body, sign(body), topic="orders/paid").status_code == 200
        assert count(db_session, Order) == 1

        delete_body = _body({"id": 1001})
        assert _post(client, "/api/webhooks/shopify", delete_body, sign(delete_body), topic="orders/delete").status_code == 200
        assert count(db_session, Order) == 0

    def test_unknown_topic_acknowledged(self, client, db_session):
        body = _body({"id": 5})
        response = _post(client, "/api/webhooks/shopify", body, sign(body), topic="products/update")
        assert response.status_code == 200
        assert response.text == "Ignored"
        assert count(db_session, WebhookEvent) == 0

    def test_unknown_topic_still_verified(self, client):
        body = _body({"id": 5})
        assert _post(client, "/api/webhooks/shopify", body, "bogus", topic="products/update").status_code == 401

    def test_events_listing(self, client):
        body = _body(make_order_payload(1001))
        _post(client, "/api/webhooks/orders-create", body, sign(body))

        events = client.get("/api/webhooks/events").json()
        assert [e["topic"] for e in events] == ["orders/create"]


class TestReceiver:
    @pytest.mark.asyncio
    async def test_unconfigured_secret_rejects(self, db_session):
        upsert = OrderUpsertService(db_session, FakeShopifyClient(), RefundDiscountMode.EXCLUDE)
        receiver = ShopifyWebhookReceiver(db_session, upsert, secret="")
        body = _body(make_order_payload(1001))

        result = await receiver.receive(body, sign(body), "orders/create")

        assert (result.accepted, result.status_code) == (False, 401)
        assert count(db_session, Order) == 0
