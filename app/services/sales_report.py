"""
Sales aggregates from persisted orders only (no Shopify calls).
Gross is subtotal_price (before discounts); net = gross - discounts - refunds.
"""
import logging
from collections import OrderedDict
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models import Order, PAID_FINANCIAL_STATUSES
from app.services.shopify_payload import ZERO, round_money, to_decimal

logger = logging.getLogger(__name__)


def _paid_orders_in_range(db: Session, start: datetime, end: datetime):
    return db.query(Order).filter(
        Order.processed_at >= start,
        Order.processed_at <= end,
        Order.financial_status.in_(PAID_FINANCIAL_STATUSES),
    )


def compute_sales_summary(db: Session, start: datetime, end: datetime) -> dict:
    """Totals for paid-like orders processed within [start, end]. Money values are rounded Decimals."""
    row = (
        _paid_orders_in_range(db, start, end)
        .with_entities(
            func.count(Order.id),
            func.coalesce(func.sum(Order.subtotal_price), 0),
            func.coalesce(func.sum(Order.total_discounts), 0),
            func.coalesce(func.sum(Order.total_refunds), 0),
            func.coalesce(func.sum(Order.total_tax), 0),
        )
        .one()
    )
    total_orders = int(row[0] or 0)
    gross = round_money(row[1])
    discounts = round_money(row[2])
    refunds = round_money(row[3])
    tax = round_money(row[4])
    net = round_money(gross - discounts - refunds)
    average = round_money(gross / total_orders) if total_orders else ZERO

    logger.debug("Sales summary %s..%s: orders=%s net=%s", start, end, total_orders, net)
    return {
        "total_orders": total_orders,
        "gross_sales": gross,
        "discounts": discounts,
        "refunds": refunds,
        "tax": tax,
        "net_revenue": net,
        "average_order_value": average,
    }


def compute_daily_net_revenue(db: Session, start: datetime, end: datetime) -> list[dict]:
    """Per-day order count and net revenue, oldest first. Days without orders are omitted."""
    days: "OrderedDict[str, dict]" = OrderedDict()
    orders = _paid_orders_in_range(db, start, end).order_by(Order.processed_at.asc()).all()
    for order in orders:
        key = order.processed_at.date().isoformat()
        day = days.setdefault(key, {"date": key, "orders": 0, "net_revenue": ZERO})
        day["orders"] += 1
        day["net_revenue"] += (
            to_decimal(order.subtotal_price) - to_decimal(order.total_discounts) - to_decimal(order.total_refunds)
        )
    result = []
    for day in days.values():
        day["net_revenue"] = round_money(day["net_revenue"])
        result.append(day)
    return result
