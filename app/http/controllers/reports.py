"""
Report routes: sales summary and daily net revenue from persisted orders.
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.order_sync import get_last_sync_at
from app.services.sales_report import compute_daily_net_revenue, compute_sales_summary

logger = logging.getLogger(__name__)
router = APIRouter()

DEFAULT_RANGE_DAYS = 30


def _resolve_range(start: Optional[date], end: Optional[date]) -> tuple[datetime, datetime]:
    end = end or date.today()
    start = start or (end - timedelta(days=DEFAULT_RANGE_DAYS))
    if start > end:
        raise HTTPException(status_code=400, detail="start must be on or before end")
    return datetime.combine(start, time.min), datetime.combine(end, time.max)


@router.get("/summary")
async def get_sales_summary(
    start: Optional[date] = Query(None, description="First day (inclusive), default 30 days ago"),
    end: Optional[date] = Query(None, description="Last day (inclusive), default today"),
    db: Session = Depends(get_db),
):
    start_dt, end_dt = _resolve_range(start, end)
    summary = compute_sales_summary(db, start_dt, end_dt)
    last_sync_at = get_last_sync_at(db)
    return {
        "start": start_dt.date().isoformat(),
        "end": end_dt.date().isoformat(),
        "totalOrders": summary["total_orders"],
        "grossSales": float(summary["gross_sales"]),
        "discounts": float(summary["discounts"]),
        "refunds": float(summary["refunds"]),
        "tax": float(summary["tax"]),
        "netRevenue": float(summary["net_revenue"]),
        "averageOrderValue": float(summary["average_order_value"]),
        "lastSyncAt": last_sync_at.isoformat() if last_sync_at else None,
    }


@router.get("/daily")
async def get_daily_revenue(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(get_db),
):
    start_dt, end_dt = _resolve_range(start, end)
    days = compute_daily_net_revenue(db, start_dt, end_dt)
    return {
        "days": [
            {"date": d["date"], "orders": d["orders"], "netRevenue": float(d["net_revenue"])}
            for d in days
        ]
    }
