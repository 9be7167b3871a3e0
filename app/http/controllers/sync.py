"""
Sync routes: manual full order sync and sync history.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.database import get_db
from app.http.dependencies import get_sync_pipeline
from app.models import SyncJob
from app.services.errors import OrderSyncError
from app.services.order_sync import OrderSyncPipeline, get_last_sync, get_last_sync_at

logger = logging.getLogger(__name__)
router = APIRouter()


def _job_to_dict(job: SyncJob) -> dict:
    return {
        "id": job.id,
        "type": job.job_type.value if job.job_type else None,
        "status": job.status.value if job.status else None,
        "fullReset": job.full_reset,
        "startedAt": job.started_at.isoformat() if job.started_at else None,
        "finishedAt": job.finished_at.isoformat() if job.finished_at else None,
        "recordsProcessed": job.records_processed,
        "error": job.error_message,
    }


@router.post("/orders")
async def sync_orders(
    full_reset: Optional[bool] = Query(None, description="Wipe order data before syncing (default: SHOPIFY_FULL_SYNC)"),
    pipeline: OrderSyncPipeline = Depends(get_sync_pipeline),
):
    """Pull every order from Shopify and upsert it. Runs in the request."""
    try:
        result = await pipeline.sync_all(full_reset=full_reset)
    except OrderSyncError as e:
        return JSONResponse(
            status_code=502,
            content={"message": f"Order sync failed: {e.cause}", "ordersSynced": e.orders_synced},
        )
    return {"message": "Orders synced successfully", "ordersSynced": result["ordersSynced"]}


@router.get("/status")
async def sync_status(db: Session = Depends(get_db)):
    last_sync_at = get_last_sync_at(db)
    job = get_last_sync(db)
    return {
        "lastSyncAt": last_sync_at.isoformat() if last_sync_at else None,
        "lastJob": _job_to_dict(job) if job else None,
    }


@router.get("/jobs")
async def list_sync_jobs(db: Session = Depends(get_db), limit: int = Query(20, le=100)):
    jobs = db.query(SyncJob).order_by(SyncJob.started_at.desc()).limit(limit).all()
    return {"jobs": [_job_to_dict(job) for job in jobs]}
