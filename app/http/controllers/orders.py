"""
Order routes: read the local ledger and push operator actions (fulfill, cancel, edit quantity,
refund) to Shopify. Local state is not changed here; the resulting webhooks update it.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.http.dependencies import get_shopify_client
from app.http.requests import CancelOrderRequest, CreateRefundRequest, FulfillOrderRequest, UpdateQuantityRequest
from app.models import Order, OrderItem
from app.services.errors import ShopifyAPIError
from app.services.reconciliation import net_revenue
from app.services.shopify_client import ShopifyClient

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_order_or_404(db: Session, order_id: str) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def _shopify_order_id(order: Order) -> str:
    if not order.shopify_order_id:
        raise HTTPException(status_code=400, detail="Order has no Shopify id")
    return order.shopify_order_id


def _find_line_item(order: Order, line_item_id: str) -> Optional[OrderItem]:
    """Match a local item id or a Shopify line item id against this order's items."""
    for item in order.items:
        if line_item_id in (item.id, item.shopify_line_item_id):
            return item
    return None


def _upstream_error(action: str, e: ShopifyAPIError) -> HTTPException:
    logger.warning("%s failed: %s", action, e)
    return HTTPException(status_code=502, detail=f"{action} failed: {e}")


@router.get("", response_model=dict)
async def list_orders(
    financial_status: Optional[str] = Query(None),
    limit: int = Query(50, le=250),
    db: Session = Depends(get_db),
):
    """List orders, newest first"""
    query = db.query(Order)
    if financial_status:
        query = query.filter(Order.financial_status == financial_status)
    orders = query.order_by(Order.processed_at.desc()).limit(limit).all()
    return {
        "orders": [
            {
                "id": o.id,
                "shopifyOrderId": o.shopify_order_id,
                "orderNumber": o.order_number,
                "email": o.email,
                "financialStatus": o.financial_status,
                "fulfillmentStatus": o.fulfillment_status,
                "totalPrice": float(o.total_price or 0),
                "totalRefunds": float(o.total_refunds or 0),
                "currency": o.currency,
                "processedAt": o.processed_at.isoformat() if o.processed_at else None,
            }
            for o in orders
        ]
    }


@router.get("/locations")
async def get_locations(client: ShopifyClient = Depends(get_shopify_client)):
    """Store locations (restock target for refunds)."""
    try:
        locations = await client.get_locations()
    except ShopifyAPIError as e:
        raise _upstream_error("Loading locations", e)
    return {"locations": [{"id": str(loc.get("id")), "name": loc.get("name")} for loc in locations]}


@router.get("/{order_id}")
async def get_order(order_id: str, db: Session = Depends(get_db)):
    """Get order details with items, payments and refunds"""
    order = _get_order_or_404(db, order_id)
    customer = order.customer
    return {
        "order": {
            "id": order.id,
            "shopifyOrderId": order.shopify_order_id,
            "orderNumber": order.order_number,
            "email": order.email,
            "customer": {"id": customer.id, "name": customer.full_name, "email": customer.email} if customer else None,
            "financialStatus": order.financial_status,
            "fulfillmentStatus": order.fulfillment_status,
            "isPaid": order.is_paid,
            "subtotalPrice": float(order.subtotal_price or 0),
            "totalDiscounts": float(order.total_discounts or 0),
            "totalTax": float(order.total_tax or 0),
            "totalPrice": float(order.total_price or 0),
            "totalRefunds": float(order.total_refunds or 0),
            "netRevenue": float(net_revenue(order)),
            "currency": order.currency,
            "processedAt": order.processed_at.isoformat() if order.processed_at else None,
            "cancelledAt": order.cancelled_at.isoformat() if order.cancelled_at else None,
            "items": [
                {
                    "id": item.id,
                    "shopifyLineItemId": item.shopify_line_item_id,
                    "title": item.title,
                    "sku": item.sku,
                    "quantity": item.quantity,
                    "price": float(item.price or 0),
                    "discountAllocation": float(item.discount_allocation or 0),
                    "taxAmount": float(item.tax_amount or 0),
                    "total": float(item.total or 0),
                }
                for item in order.items
            ],
            "payments": [
                {"gateway": p.gateway, "kind": p.kind, "amount": float(p.amount or 0), "status": p.status}
                for p in order.payments
            ],
            "refunds": [
                {
                    "id": r.id,
                    "shopifyRefundId": r.shopify_refund_id,
                    "processedAt": r.processed_at.isoformat() if r.processed_at else None,
                    "totalAmount": float(r.total_amount or 0),
                    "totalTax": float(r.total_tax or 0),
                    "note": r.note,
                }
                for r in order.refunds
            ],
        }
    }


@router.post("/{order_id}/fulfill")
async def fulfill_order(
    order_id: str,
    request: FulfillOrderRequest,
    db: Session = Depends(get_db),
    client: ShopifyClient = Depends(get_shopify_client),
):
    order = _get_order_or_404(db, order_id)
    shopify_order_id = _shopify_order_id(order)
    try:
        result = await client.create_fulfillment(shopify_order_id, request.tracking_number, request.tracking_company)
    except ShopifyAPIError as e:
        raise _upstream_error("Fulfillment", e)
    logger.info("Order %s fulfilled in Shopify", shopify_order_id)
    return {"message": "Order fulfilled successfully in Shopify.", "fulfillment": result.get("fulfillment")}


@router.post("/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    request: Optional[CancelOrderRequest] = None,
    db: Session = Depends(get_db),
    client: ShopifyClient = Depends(get_shopify_client),
):
    order = _get_order_or_404(db, order_id)
    shopify_order_id = _shopify_order_id(order)
    reason = request.reason if request else "customer"
    try:
        await client.cancel_order(shopify_order_id, reason=reason)
    except ShopifyAPIError as e:
        raise _upstream_error("Cancellation", e)
    logger.info("Order %s cancelled in Shopify (reason=%s)", shopify_order_id, reason)
    return {"message": "Order cancelled successfully."}


@router.post("/{order_id}/quantity")
async def update_quantity(
    order_id: str,
    request: UpdateQuantityRequest,
    db: Session = Depends(get_db),
    client: ShopifyClient = Depends(get_shopify_client),
):
    order = _get_order_or_404(db, order_id)
    shopify_order_id = _shopify_order_id(order)
    item = _find_line_item(order, request.line_item_id)
    if not item or not item.shopify_line_item_id:
        raise HTTPException(status_code=404, detail="Line item not found on this order")
    try:
        result = await client.update_line_item_quantity(shopify_order_id, item.shopify_line_item_id, request.quantity)
    except ShopifyAPIError as e:
        raise _upstream_error("Update", e)
    logger.info("Order %s line item %s set to quantity %s", shopify_order_id, item.shopify_line_item_id, request.quantity)
    return {"message": "Order quantity updated successfully.", "order": result}


@router.post("/{order_id}/refund")
async def create_refund(
    order_id: str,
    request: CreateRefundRequest,
    db: Session = Depends(get_db),
    client: ShopifyClient = Depends(get_shopify_client),
):
    order = _get_order_or_404(db, order_id)
    shopify_order_id = _shopify_order_id(order)
    refund_line_items = []
    for selected in request.refund_items:
        if selected.quantity <= 0:
            continue
        item = _find_line_item(order, selected.id)
        if not item or not item.shopify_line_item_id:
            logger.warning("Refund for order %s skips unknown line item %s", shopify_order_id, selected.id)
            continue
        refund_line_items.append({
            "line_item_id": item.shopify_line_item_id,
            "quantity": selected.quantity,
            "restock_type": selected.restock_type,
        })
    if not refund_line_items and not request.refund_shipping:
        raise HTTPException(status_code=400, detail="No items selected for refund.")
    try:
        result = await client.create_refund(
            shopify_order_id,
            refund_line_items,
            refund_shipping=request.refund_shipping,
            location_id=request.location_id,
        )
    except ShopifyAPIError as e:
        raise _upstream_error("Refund", e)
    logger.info("Refund created in Shopify for order %s (%s line item(s))", shopify_order_id, len(refund_line_items))
    return {"message": "Refund created successfully.", "refund": result.get("refund")}
