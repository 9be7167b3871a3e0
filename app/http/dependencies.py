"""
FastAPI dependencies: Shopify client and the services built on it, one set per request.
Tests swap these via app.dependency_overrides.
"""
import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.errors import ShopifyConfigError
from app.services.order_sync import OrderSyncPipeline
from app.services.order_upsert import OrderUpsertService
from app.services.shopify_client import ShopifyClient
from app.services.shopify_webhook_handler import ShopifyWebhookReceiver

logger = logging.getLogger(__name__)


def get_shopify_client() -> ShopifyClient:
    """Client for operator actions and sync; missing store configuration is a 400."""
    try:
        return ShopifyClient()
    except ShopifyConfigError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def get_optional_shopify_client() -> Optional[ShopifyClient]:
    """Client for webhook enrichment; webhooks still process without API credentials."""
    try:
        return ShopifyClient()
    except ShopifyConfigError as e:
        logger.warning("Webhook enrichment disabled: %s", e)
        return None


def get_upsert_service(
    db: Session = Depends(get_db),
    client: Optional[ShopifyClient] = Depends(get_optional_shopify_client),
) -> OrderUpsertService:
    return OrderUpsertService(db, client)


def get_webhook_receiver(
    db: Session = Depends(get_db),
    upsert_service: OrderUpsertService = Depends(get_upsert_service),
) -> ShopifyWebhookReceiver:
    return ShopifyWebhookReceiver(db, upsert_service)


def get_sync_pipeline(
    db: Session = Depends(get_db),
    client: ShopifyClient = Depends(get_shopify_client),
) -> OrderSyncPipeline:
    return OrderSyncPipeline(db, client, OrderUpsertService(db, client))
