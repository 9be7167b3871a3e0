"""
Refund reconciliation: derive Refund.total_amount and Order.total_refunds from normalized rows.
Rules: refund total = items subtotal - adjustments (signed), rounded to cents, clamped at zero;
order total_refunds = sum of its refund totals. Totals are never taken from the payload.
Net revenue reported upstream = subtotal_price - total_discounts - total_refunds.
"""
import enum
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.models import Order, Refund
from app.services.shopify_payload import ZERO, round_money, to_decimal

logger = logging.getLogger(__name__)


class RefundDiscountMode(str, enum.Enum):
    """How line-item discounts affect a refund total (REFUND_DISCOUNT_MODE)."""

    # Discounts never touch the refund total
    EXCLUDE = "exclude"
    # Also subtract the discount allocated to each refunded line
    SUBTRACT_ITEM_ALLOCATIONS = "subtract_item_allocations"


def resolve_discount_mode(value: Optional[str] = None) -> RefundDiscountMode:
    """Parse the configured mode; unknown values are a configuration error."""
    raw = (value if value is not None else settings.REFUND_DISCOUNT_MODE) or RefundDiscountMode.EXCLUDE.value
    try:
        return RefundDiscountMode(raw.strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in RefundDiscountMode)
        raise ValueError(f"Invalid REFUND_DISCOUNT_MODE '{raw}' (allowed: {allowed})")


def compute_refund_total(refund: Refund, discount_mode: RefundDiscountMode = RefundDiscountMode.EXCLUDE) -> Decimal:
    """max(round(sum(items.subtotal) - sum(adjustments.amount) [- item discounts], 2), 0)"""
    items_subtotal = sum((to_decimal(i.subtotal) for i in refund.items), ZERO)
    adjustments = sum((to_decimal(a.amount) for a in refund.adjustments), ZERO)
    amount = items_subtotal - adjustments
    if discount_mode == RefundDiscountMode.SUBTRACT_ITEM_ALLOCATIONS:
        amount -= sum((to_decimal(i.discount_allocation) for i in refund.items), ZERO)
    return max(round_money(amount), ZERO)


def recompute_refund_totals(
    db: Session,
    order: Order,
    discount_mode: Optional[RefundDiscountMode] = None,
) -> Decimal:
    """
    Stamp total_amount/total_tax on each refund of the order and total_refunds on the order.
    Flushes; the caller owns the transaction. Returns the order's total_refunds.
    """
    mode = discount_mode or resolve_discount_mode()
    total_refunds = ZERO
    for refund in order.refunds:
        refund.total_amount = compute_refund_total(refund, mode)
        refund.total_tax = round_money(sum((to_decimal(i.total_tax) for i in refund.items), ZERO))
        total_refunds += refund.total_amount
    order.total_refunds = round_money(total_refunds)
    db.flush()
    if order.refunds:
        logger.debug(
            "Order %s: %s refund(s), total_refunds=%s (mode=%s)",
            order.shopify_order_id, len(order.refunds), order.total_refunds, mode.value,
        )
    return order.total_refunds


def net_revenue(order: Order) -> Decimal:
    """subtotal_price - total_discounts - total_refunds"""
    return round_money(
        to_decimal(order.subtotal_price) - to_decimal(order.total_discounts) - to_decimal(order.total_refunds)
    )


def recalculate_all_refunds(db: Session, discount_mode: Optional[RefundDiscountMode] = None) -> dict:
    """
    Re-derive refund totals for every order that has refunds, from stored rows only.
    Returns {"orders": checked, "updated": orders whose total_refunds changed}.
    """
    mode = discount_mode or resolve_discount_mode()
    checked = 0
    updated = 0
    orders = db.query(Order).filter(Order.refunds.any()).all()
    try:
        for order in orders:
            before = to_decimal(order.total_refunds)
            after = recompute_refund_totals(db, order, mode)
            checked += 1
            if before != after:
                updated += 1
                logger.info("Order %s total_refunds %s -> %s", order.shopify_order_id, before, after)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Refund recalculation: %s order(s) checked, %s updated", checked, updated)
    return {"orders": checked, "updated": updated}
