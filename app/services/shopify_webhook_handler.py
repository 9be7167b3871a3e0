"""
Shopify webhook: HMAC verification and order event processing.
Verify first (nothing is read or written for an unsigned delivery), persist an audit event,
then upsert or delete the order. Processing errors return 500 so Shopify retries delivery.
"""
import base64
import hmac
import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.models import WebhookEvent
from app.services.errors import InvalidPayloadError
from app.services.order_upsert import OrderUpsertService
from app.services.shopify_payload import external_id

logger = logging.getLogger(__name__)

UPSERT_TOPICS = (
    "orders/create",
    "orders/updated",
    "orders/cancelled",
    "orders/paid",
    "orders/fulfilled",
)
DELETE_TOPIC = "orders/delete"


def verify_webhook_hmac(body: bytes, hmac_header: Optional[str], secret: Optional[str]) -> bool:
    """
    Verify X-Shopify-Hmac-Sha256: HMAC-SHA256(raw_body, secret) base64 == header.
    """
    if not secret or not hmac_header:
        return False
    try:
        computed = hmac.new(
            secret.encode("utf-8"),
            body or b"",
            hashlib.sha256,
        ).digest()
        computed_b64 = base64.b64encode(computed).decode("utf-8")
        return hmac.compare_digest(computed_b64, hmac_header.strip())
    except (TypeError, ValueError) as e:
        logger.warning("Webhook HMAC verify error: %s", e)
        return False


@dataclass
class WebhookResult:
    accepted: bool
    status_code: int
    message: str


class ShopifyWebhookReceiver:
    """Receives order webhooks for the configured store."""

    def __init__(
        self,
        db: Session,
        upsert_service: OrderUpsertService,
        secret: Optional[str] = None,
        shop_domain: Optional[str] = None,
    ):
        self.db = db
        self.upsert_service = upsert_service
        self.secret = settings.SHOPIFY_WEBHOOK_SECRET if secret is None else secret
        self.shop_domain = shop_domain

    async def dispatch(self, raw_body: bytes, signature: Optional[str], topic: Optional[str]) -> WebhookResult:
        """Route a delivery by X-Shopify-Topic. Unknown topics are verified and acknowledged."""
        topic = (topic or "").strip().lower()
        if topic == DELETE_TOPIC:
            return await self.receive_delete(raw_body, signature)
        if topic in UPSERT_TOPICS:
            return await self.receive(raw_body, signature, topic)

        rejected = self._verify(raw_body, signature, topic or "unknown")
        if rejected:
            return rejected
        logger.info("Shopify webhook: ignoring topic %s", topic or "(none)")
        return WebhookResult(True, 200, "Ignored")

    async def receive(self, raw_body: bytes, signature: Optional[str], topic: str = "orders/updated") -> WebhookResult:
        rejected = self._verify(raw_body, signature, topic)
        if rejected:
            return rejected
        payload = self._decode(raw_body, topic)
        if payload is None:
            return WebhookResult(False, 400, "Invalid payload")

        event = self._record_event(topic, payload)
        try:
            await self.upsert_service.upsert_order(payload)
        except InvalidPayloadError as e:
            logger.warning("Shopify webhook %s rejected: %s", topic, e)
            self._finish_event(event, error=str(e))
            return WebhookResult(False, 400, "Invalid payload")
        except Exception as e:
            logger.exception("Shopify webhook %s processing failed", topic)
            self._finish_event(event, error=str(e))
            return WebhookResult(False, 500, "Webhook error")

        self._finish_event(event)
        return WebhookResult(True, 200, "OK")

    async def receive_delete(self, raw_body: bytes, signature: Optional[str]) -> WebhookResult:
        topic = DELETE_TOPIC
        rejected = self._verify(raw_body, signature, topic)
        if rejected:
            return rejected
        payload = self._decode(raw_body, topic)
        if payload is None or not external_id(payload.get("id")):
            return WebhookResult(False, 400, "Invalid payload")

        event = self._record_event(topic, payload)
        try:
            deleted = self.upsert_service.delete_order(payload["id"])
        except Exception as e:
            logger.exception("Shopify webhook %s processing failed", topic)
            self._finish_event(event, error=str(e))
            return WebhookResult(False, 500, "Webhook error")

        self._finish_event(event)
        return WebhookResult(True, 200, "Deleted" if deleted else "OK")

    def _verify(self, raw_body: bytes, signature: Optional[str], topic: str) -> Optional[WebhookResult]:
        if not self.secret:
            logger.warning("Shopify webhook %s: SHOPIFY_WEBHOOK_SECRET is not configured", topic)
            return WebhookResult(False, 401, "Webhook secret missing")
        if not verify_webhook_hmac(raw_body, signature, self.secret):
            logger.warning("Shopify webhook %s: HMAC verification failed", topic)
            return WebhookResult(False, 401, "Invalid HMAC")
        return None

    @staticmethod
    def _decode(raw_body: bytes, topic: str) -> Optional[dict]:
        try:
            payload = json.loads(raw_body.decode("utf-8")) if raw_body else None
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Shopify webhook %s: invalid JSON %s", topic, e)
            return None
        if not isinstance(payload, dict):
            logger.warning("Shopify webhook %s: body is not a JSON object", topic)
            return None
        return payload

    def _record_event(self, topic: str, payload: dict) -> WebhookEvent:
        oid = payload.get("id")
        event = WebhookEvent(
            source="shopify",
            shop_domain=self.shop_domain or settings.SHOPIFY_STORE_DOMAIN or None,
            topic=topic,
            payload_summary=f"id={oid}" if oid is not None else None,
        )
        self.db.add(event)
        self.db.commit()
        return event

    def _finish_event(self, event: WebhookEvent, error: Optional[str] = None) -> None:
        try:
            event.processed_at = datetime.now(timezone.utc).replace(tzinfo=None)
            event.error = error[:500] if error else None
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("Failed to update webhook event %s", event.id)
