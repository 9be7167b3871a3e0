"""
Shopify order webhooks. Public (no auth); every delivery is HMAC verified before anything is read.
Responses are plain text; Shopify only looks at the status code.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from app.database import get_db
from app.http.dependencies import get_webhook_receiver
from app.models import WebhookEvent
from app.services.shopify_webhook_handler import ShopifyWebhookReceiver, WebhookResult

logger = logging.getLogger(__name__)
router = APIRouter()

HMAC_HEADER = "X-Shopify-Hmac-Sha256"
TOPIC_HEADER = "X-Shopify-Topic"


def _respond(result: WebhookResult) -> PlainTextResponse:
    return PlainTextResponse(result.message, status_code=result.status_code)


@router.post("/orders-create")
async def orders_create(request: Request, receiver: ShopifyWebhookReceiver = Depends(get_webhook_receiver)):
    raw_body = await request.body()
    return _respond(await receiver.receive(raw_body, request.headers.get(HMAC_HEADER), "orders/create"))


@router.post("/orders-update")
async def orders_update(request: Request, receiver: ShopifyWebhookReceiver = Depends(get_webhook_receiver)):
    raw_body = await request.body()
    return _respond(await receiver.receive(raw_body, request.headers.get(HMAC_HEADER), "orders/updated"))


@router.post("/orders-cancel")
async def orders_cancel(request: Request, receiver: ShopifyWebhookReceiver = Depends(get_webhook_receiver)):
    raw_body = await request.body()
    return _respond(await receiver.receive(raw_body, request.headers.get(HMAC_HEADER), "orders/cancelled"))


@router.post("/orders-delete")
async def orders_delete(request: Request, receiver: ShopifyWebhookReceiver = Depends(get_webhook_receiver)):
    raw_body = await request.body()
    return _respond(await receiver.receive_delete(raw_body, request.headers.get(HMAC_HEADER)))


@router.post("/shopify")
async def shopify_webhook_receive(request: Request, receiver: ShopifyWebhookReceiver = Depends(get_webhook_receiver)):
    """Single endpoint for all order topics; routed by X-Shopify-Topic."""
    raw_body = await request.body()
    result = await receiver.dispatch(raw_body, request.headers.get(HMAC_HEADER), request.headers.get(TOPIC_HEADER))
    return _respond(result)


@router.get("/events")
async def get_webhook_events(
    db: Session = Depends(get_db),
    limit: int = Query(50, le=100),
    topic: Optional[str] = Query(None),
):
    """Recent verified deliveries, newest first."""
    query = db.query(WebhookEvent).order_by(WebhookEvent.created_at.desc())
    if topic:
        query = query.filter(WebhookEvent.topic == topic)
    rows = query.limit(limit).all()
    return [
        {
            "id": r.id,
            "source": r.source,
            "shopDomain": r.shop_domain,
            "topic": r.topic,
            "payloadSummary": r.payload_summary,
            "processedAt": r.processed_at.isoformat() if r.processed_at else None,
            "error": r.error,
            "createdAt": r.created_at.isoformat() if r.created_at else None,
        }
        for r in rows
    ]
