#!/usr/bin/env python3
"""
Order sync from the command line (same pipeline as POST /api/sync/orders).

Usage: python scripts/sync_orders.py [command]
  sync [--incremental]  - Pull all orders from Shopify (full reset unless --incremental)
  recalculate           - Re-derive refund totals from stored refund rows
  status                - Show the last sync
"""
import asyncio
import logging
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config import settings
from app.database import Base, SessionLocal, engine
from app.services.errors import OrderSyncError, ShopifyConfigError
from app.services.order_sync import OrderSyncPipeline, get_last_sync
from app.services.order_upsert import OrderUpsertService
from app.services.reconciliation import recalculate_all_refunds
from app.services.shopify_client import ShopifyClient

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def run_sync(full_reset: bool) -> int:
    db = SessionLocal()
    try:
        client = ShopifyClient()
        pipeline = OrderSyncPipeline(db, client, OrderUpsertService(db, client))
        result = asyncio.run(pipeline.sync_all(full_reset=full_reset))
        print(f"Orders synced: {result['ordersSynced']}")
        return 0
    except ShopifyConfigError as e:
        logger.error("%s", e)
        return 2
    except OrderSyncError as e:
        logger.error("Sync failed after %s order(s): %s", e.orders_synced, e.cause)
        print(f"Orders synced before failure: {e.orders_synced}")
        return 1
    finally:
        db.close()


def run_recalculate() -> int:
    db = SessionLocal()
    try:
        result = recalculate_all_refunds(db)
        print(f"Orders checked: {result['orders']}, updated: {result['updated']}")
        return 0
    finally:
        db.close()


def show_status() -> int:
    db = SessionLocal()
    try:
        job = get_last_sync(db)
        if not job:
            print("No sync has run yet")
            return 0
        print(f"Last sync: {job.status.value} started={job.started_at} finished={job.finished_at} "
              f"orders={job.records_processed} full_reset={job.full_reset}")
        if job.error_message:
            print(f"Error: {job.error_message}")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__.strip())
        sys.exit(1)

    Base.metadata.create_all(bind=engine)
    command = sys.argv[1].lower()

    if command == "sync":
        sys.exit(run_sync(full_reset="--incremental" not in sys.argv[2:]))
    elif command == "recalculate":
        sys.exit(run_recalculate())
    elif command == "status":
        sys.exit(show_status())
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)
