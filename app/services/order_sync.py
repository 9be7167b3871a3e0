"""
Bulk order sync: optionally wipe order data, then page through every order in the store
(since_id cursor) and upsert each one with its refunds. Each order commits on its own; the
first failure aborts the run and reports how many orders were committed before it.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.models import (
    Customer,
    Fulfillment,
    Order,
    OrderItem,
    Payment,
    Refund,
    RefundAdjustment,
    RefundItem,
    SyncJob,
    SyncJobStatus,
    SyncJobType,
)
from app.services.errors import OrderSyncError
from app.services.order_upsert import OrderUpsertService
from app.services.shopify_client import ShopifyClient
from app.services.shopify_payload import external_id

logger = logging.getLogger(__name__)

# Children first; products are kept
RESET_TABLES = (Payment, Fulfillment, RefundAdjustment, RefundItem, Refund, OrderItem, Order, Customer)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def wipe_order_data(db: Session) -> dict[str, int]:
    """Delete all order-derived rows and customers in one transaction. Returns deleted counts per table."""
    counts: dict[str, int] = {}
    try:
        for model in RESET_TABLES:
            counts[model.__tablename__] = db.query(model).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.expire_all()
    logger.info("Full reset: %s", ", ".join(f"{k}={v}" for k, v in counts.items()))
    return counts


def get_last_sync(db: Session) -> Optional[SyncJob]:
    return (
        db.query(SyncJob)
        .filter(SyncJob.job_type == SyncJobType.PULL_ORDERS)
        .order_by(SyncJob.started_at.desc())
        .first()
    )


def get_last_sync_at(db: Session) -> Optional[datetime]:
    """Finish time of the most recent successful order sync, or None."""
    job = (
        db.query(SyncJob)
        .filter(SyncJob.job_type == SyncJobType.PULL_ORDERS, SyncJob.status == SyncJobStatus.SUCCESS)
        .order_by(SyncJob.finished_at.desc())
        .first()
    )
    return job.finished_at if job else None


class OrderSyncPipeline:
    def __init__(
        self,
        db: Session,
        client: ShopifyClient,
        upsert_service: Optional[OrderUpsertService] = None,
        page_size: Optional[int] = None,
        request_delay: Optional[float] = None,
    ):
        self.db = db
        self.client = client
        self.upsert_service = upsert_service or OrderUpsertService(db, client)
        self.page_size = page_size or settings.SHOPIFY_PAGE_SIZE
        self.request_delay = settings.SHOPIFY_REQUEST_DELAY_SEC if request_delay is None else request_delay

    async def sync_all(self, full_reset: Optional[bool] = None) -> dict:
        """
        Run a full sync. Returns {"ordersSynced": n}. Raises OrderSyncError carrying the number of
        orders committed before the failure.
        """
        if full_reset is None:
            full_reset = settings.SHOPIFY_FULL_SYNC

        job = SyncJob(
            job_type=SyncJobType.PULL_ORDERS,
            status=SyncJobStatus.RUNNING,
            full_reset=bool(full_reset),
            started_at=_utcnow(),
        )
        self.db.add(job)
        self.db.commit()
        logger.info("Order sync started (job=%s, full_reset=%s, page_size=%s)", job.id, full_reset, self.page_size)

        synced = 0
        try:
            if full_reset:
                wipe_order_data(self.db)

            since_id: Optional[str] = None
            while True:
                orders = await self.client.list_orders(since_id=since_id, limit=self.page_size)
                logger.info("Fetched %s order(s) (since_id=%s)", len(orders), since_id)

                for order_data in orders:
                    shopify_order_id = external_id(order_data.get("id"))
                    if shopify_order_id:
                        order_data["refunds"] = await self.client.get_order_refunds(shopify_order_id)
                    await self.upsert_service.upsert_order(order_data)
                    synced += 1
                    await self._pause()

                if len(orders) < self.page_size:
                    break
                next_since_id = external_id(orders[-1].get("id"))
                if not next_since_id or next_since_id == since_id:
                    logger.warning("Pagination cursor did not advance (since_id=%s); stopping", since_id)
                    break
                since_id = next_since_id
                await self._pause()
        except Exception as e:
            self.db.rollback()
            job.status = SyncJobStatus.FAILED
            job.finished_at = _utcnow()
            job.records_processed = synced
            job.error_message = str(e)[:500]
            self.db.commit()
            logger.exception("Order sync failed after %s order(s)", synced)
            raise OrderSyncError(synced, e) from e

        job.status = SyncJobStatus.SUCCESS
        job.finished_at = _utcnow()
        job.records_processed = synced
        self.db.commit()
        logger.info("Order sync finished: %s order(s) synced", synced)
        return {"ordersSynced": synced}

    async def _pause(self) -> None:
        if self.request_delay > 0:
            await asyncio.sleep(self.request_delay)
