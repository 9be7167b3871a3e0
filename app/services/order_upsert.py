"""
Per-order upsert: replace an order and everything under it from a Shopify order payload.
Shared by the webhook receiver and the bulk sync so both paths run the same business logic.

Policy is "replace, don't merge": inside one transaction the existing order (items, fulfillments,
payments, refunds, refund items, refund adjustments) is deleted and recreated from the payload,
then refund totals are re-derived by the reconciliation engine.
"""
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.models import (
    Customer,
    Fulfillment,
    Order,
    OrderItem,
    Payment,
    PaymentKind,
    Product,
    Refund,
    RefundAdjustment,
    RefundItem,
    PAID_FINANCIAL_STATUSES,
)
from app.services.errors import InvalidPayloadError, ShopifyAPIError
from app.services.reconciliation import RefundDiscountMode, recompute_refund_totals, resolve_discount_mode
from app.services.shopify_client import ShopifyClient
from app.services.shopify_payload import (
    ZERO,
    clean_str,
    external_id,
    money_field,
    money_set_first,
    parse_shopify_datetime,
    round_money,
    to_decimal,
)

logger = logging.getLogger(__name__)

PAYMENT_KINDS = tuple(k.value for k in PaymentKind)
SUCCESS_STATUS = "success"


def delete_order_rows(db: Session, order_id: str) -> None:
    """Delete an order and all rows under it, children first. Does not commit."""
    refund_ids = [rid for (rid,) in db.query(Refund.id).filter(Refund.order_id == order_id).all()]
    if refund_ids:
        db.query(RefundAdjustment).filter(RefundAdjustment.refund_id.in_(refund_ids)).delete(synchronize_session="fetch")
        db.query(RefundItem).filter(RefundItem.refund_id.in_(refund_ids)).delete(synchronize_session="fetch")
        db.query(Refund).filter(Refund.id.in_(refund_ids)).delete(synchronize_session="fetch")
    db.query(OrderItem).filter(OrderItem.order_id == order_id).delete(synchronize_session="fetch")
    db.query(Fulfillment).filter(Fulfillment.order_id == order_id).delete(synchronize_session="fetch")
    db.query(Payment).filter(Payment.order_id == order_id).delete(synchronize_session="fetch")
    db.query(Order).filter(Order.id == order_id).delete(synchronize_session="fetch")


class OrderUpsertService:
    """Idempotent upsert/delete of one Shopify order, keyed by its external id."""

    def __init__(
        self,
        db: Session,
        client: Optional[ShopifyClient] = None,
        discount_mode: Optional[RefundDiscountMode] = None,
    ):
        self.db = db
        self.client = client
        self.discount_mode = discount_mode or resolve_discount_mode()

    async def upsert_order(self, payload: dict) -> Order:
        """
        Replace the local copy of one order. Transactions are fetched first (failures are logged
        and leave the order without payments); refunds are fetched only when the payload has no
        `refunds` key, and a failure there aborts this order. Rolls back on any error.
        """
        if not isinstance(payload, dict):
            raise InvalidPayloadError("Order payload must be a JSON object")
        shopify_order_id = external_id(payload.get("id"))
        if not shopify_order_id:
            raise InvalidPayloadError("Order payload has no id")

        transactions = await self._fetch_transactions(shopify_order_id)
        refunds = payload.get("refunds")
        if refunds is None:
            refunds = await self._fetch_refunds(shopify_order_id)

        try:
            existing = self.db.query(Order).filter(Order.shopify_order_id == shopify_order_id).first()
            if existing:
                delete_order_rows(self.db, existing.id)
                self.db.flush()

            customer = self._upsert_customer(payload.get("customer"))
            order = self._build_order(payload, shopify_order_id, customer)
            self.db.add(order)
            self.db.flush()

            items_by_line_id = self._add_items(order, payload.get("line_items") or [])
            self.db.flush()
            self._add_fulfillments(order, payload.get("fulfillments") or [])
            self._add_payments(order, transactions)
            self._add_refunds(order, refunds or [], items_by_line_id)
            self.db.flush()

            recompute_refund_totals(self.db, order, self.discount_mode)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("Upsert failed for Shopify order %s; rolled back", shopify_order_id)
            raise

        logger.info(
            "Upserted Shopify order %s (#%s): %s item(s), %s refund(s), total_refunds=%s",
            shopify_order_id, order.order_number, len(order.items), len(order.refunds), order.total_refunds,
        )
        return order

    def delete_order(self, shopify_order_id) -> bool:
        """Cascade-delete the order with this external id. False (no error) when it does not exist."""
        external = external_id(shopify_order_id)
        if not external:
            raise InvalidPayloadError("Delete payload has no order id")
        order = self.db.query(Order).filter(Order.shopify_order_id == external).first()
        if not order:
            logger.info("Order not found for deletion: shopify_order_id=%s", external)
            return False
        try:
            delete_order_rows(self.db, order.id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("Delete failed for Shopify order %s; rolled back", external)
            raise
        logger.info("Order deleted: shopify_order_id=%s", external)
        return True

    # --- Remote enrichment ---

    async def _fetch_transactions(self, shopify_order_id: str) -> list[dict]:
        if self.client is None:
            logger.debug("No Shopify client; skipping transactions for order %s", shopify_order_id)
            return []
        try:
            return await self.client.get_order_transactions(shopify_order_id)
        except ShopifyAPIError as e:
            logger.warning("Failed to fetch payment transactions for order %s: %s", shopify_order_id, e)
            return []

    async def _fetch_refunds(self, shopify_order_id: str) -> list[dict]:
        if self.client is None:
            logger.warning("No Shopify client and no refunds in payload for order %s", shopify_order_id)
            return []
        return await self.client.get_order_refunds(shopify_order_id)

    # --- Rows ---

    def _upsert_customer(self, data: Optional[dict]) -> Optional[Customer]:
        if not data or not isinstance(data, dict):
            return None
        shopify_customer_id = external_id(data.get("id"))
        if not shopify_customer_id:
            return None

        customer = self.db.query(Customer).filter(Customer.shopify_customer_id == shopify_customer_id).first()
        if customer is None:
            customer = Customer(shopify_customer_id=shopify_customer_id)
            self.db.add(customer)

        addresses = data.get("addresses")
        if addresses is None and data.get("default_address"):
            addresses = [data["default_address"]]

        customer.email = clean_str(data.get("email"))
        customer.first_name = clean_str(data.get("first_name"))
        customer.last_name = clean_str(data.get("last_name"))
        customer.phone = clean_str(data.get("phone"), 64)
        customer.addresses = addresses or []
        customer.verified_email = bool(data.get("verified_email"))
        customer.state = clean_str(data.get("state"), 64)
        customer.tags = clean_str(data.get("tags"), 1024)
        customer.note = data.get("note")
        customer.shopify_created_at = parse_shopify_datetime(data.get("created_at"))
        self.db.flush()
        return customer

    def _build_order(self, payload: dict, shopify_order_id: str, customer: Optional[Customer]) -> Order:
        financial_status = clean_str(payload.get("financial_status"), 64)
        fulfillment_status = clean_str(payload.get("fulfillment_status"), 64)
        # Gross before discounts; older payloads only carry subtotal_price
        if payload.get("total_line_items_price") is not None:
            subtotal = money_field(payload, "total_line_items_price")
        else:
            subtotal = money_field(payload, "subtotal_price")
        order_number = payload.get("order_number") or payload.get("name")

        return Order(
            shopify_order_id=shopify_order_id,
            order_number=str(order_number) if order_number is not None else None,
            customer_id=customer.id if customer else None,
            email=clean_str(payload.get("email")) or (customer.email if customer else None),
            financial_status=financial_status,
            fulfillment_status=fulfillment_status,
            shipping_status=fulfillment_status,
            is_paid=(financial_status or "") in PAID_FINANCIAL_STATUSES,
            total_price=round_money(money_field(payload, "total_price")),
            subtotal_price=round_money(subtotal),
            total_discounts=round_money(abs(money_field(payload, "total_discounts"))),
            total_tax=round_money(money_field(payload, "total_tax")),
            total_refunds=ZERO,
            currency=(clean_str(payload.get("currency"), 3) or settings.DEFAULT_CURRENCY).upper(),
            processed_at=parse_shopify_datetime(payload.get("processed_at") or payload.get("created_at")),
            closed_at=parse_shopify_datetime(payload.get("closed_at")),
            cancelled_at=parse_shopify_datetime(payload.get("cancelled_at")),
            cancel_reason=clean_str(payload.get("cancel_reason"), 64),
            shipping_address=payload.get("shipping_address") or None,
            billing_address=payload.get("billing_address") or None,
            note=payload.get("note"),
        )

    def _upsert_product(self, item: dict, cache: dict[str, Product]) -> Optional[Product]:
        shopify_product_id = external_id(item.get("product_id"))
        if not shopify_product_id:
            return None
        product = cache.get(shopify_product_id)
        if product is None:
            product = self.db.query(Product).filter(Product.shopify_product_id == shopify_product_id).first()
        if product is None:
            product = Product(shopify_product_id=shopify_product_id)
            self.db.add(product)
        product.title = clean_str(item.get("title")) or product.title or "Unknown"
        product.vendor = clean_str(item.get("vendor")) or product.vendor
        cache[shopify_product_id] = product
        self.db.flush()
        return product

    def _add_items(self, order: Order, line_items: list[dict]) -> dict[str, OrderItem]:
        products: dict[str, Product] = {}
        by_line_id: dict[str, OrderItem] = {}
        for line in line_items:
            product = self._upsert_product(line, products)
            tax = sum((money_field(t, "price") for t in line.get("tax_lines") or []), ZERO)
            discount = sum((abs(money_field(d, "amount")) for d in line.get("discount_allocations") or []), ZERO)
            quantity = int(line.get("quantity") or 0)
            price = to_decimal(line.get("price"))
            item = OrderItem(
                product_id=product.id if product else None,
                shopify_line_item_id=external_id(line.get("id")),
                title=clean_str(line.get("title")) or clean_str(line.get("name")) or "Item",
                sku=clean_str(line.get("sku"), 128),
                variant_title=clean_str(line.get("variant_title")),
                quantity=quantity,
                price=round_money(price),
                discount_allocation=round_money(discount),
                tax_amount=round_money(tax),
                total=round_money(price * quantity - discount + tax),
                fulfillment_status=clean_str(line.get("fulfillment_status"), 64),
                properties=line.get("properties") or [],
            )
            order.items.append(item)
            if item.shopify_line_item_id:
                by_line_id[item.shopify_line_item_id] = item
        return by_line_id

    def _add_fulfillments(self, order: Order, fulfillments: list[dict]) -> None:
        for f in fulfillments:
            tracking_number = f.get("tracking_number")
            if not tracking_number and f.get("tracking_numbers"):
                tracking_number = f["tracking_numbers"][0]
            order.fulfillments.append(
                Fulfillment(
                    shopify_fulfillment_id=external_id(f.get("id")),
                    status=clean_str(f.get("status"), 64),
                    tracking_company=clean_str(f.get("tracking_company")),
                    tracking_number=clean_str(tracking_number),
                    shopify_created_at=parse_shopify_datetime(f.get("created_at")),
                    shopify_updated_at=parse_shopify_datetime(f.get("updated_at")),
                )
            )

    def _add_payments(self, order: Order, transactions: list[dict]) -> None:
        for t in transactions:
            kind = (t.get("kind") or "").lower()
            status = (t.get("status") or "").lower()
            # Refund-kind transactions are represented by Refund rows
            if kind not in PAYMENT_KINDS or status != SUCCESS_STATUS:
                continue
            order.payments.append(
                Payment(
                    shopify_payment_id=external_id(t.get("id")),
                    gateway=clean_str(t.get("gateway")),
                    kind=kind,
                    amount=round_money(t.get("amount")),
                    status=status,
                    currency=(clean_str(t.get("currency"), 3) or order.currency),
                    processed_at=parse_shopify_datetime(t.get("processed_at") or t.get("created_at")),
                    details=t,
                )
            )

    def _add_refunds(self, order: Order, refunds: list[dict], items_by_line_id: dict[str, OrderItem]) -> None:
        gateway = order.payments[0].gateway if order.payments else None
        for data in refunds:
            shopify_refund_id = external_id(data.get("id"))
            if not shopify_refund_id:
                logger.warning("Order %s: skipping refund without id", order.shopify_order_id)
                continue
            refund = Refund(
                shopify_refund_id=shopify_refund_id,
                processed_at=parse_shopify_datetime(data.get("processed_at") or data.get("created_at")),
                note=data.get("note"),
                gateway=gateway,
                total_amount=ZERO,
                total_tax=ZERO,
                transactions=data.get("transactions") or [],
            )
            order.refunds.append(refund)

            for rli in data.get("refund_line_items") or []:
                line = rli.get("line_item") or {}
                line_item_id = external_id(rli.get("line_item_id")) or external_id(line.get("id"))
                order_item = items_by_line_id.get(line_item_id) if line_item_id else None
                quantity = int(rli.get("quantity") or 0)
                refund.items.append(
                    RefundItem(
                        order_item_id=order_item.id if order_item else None,
                        product_id=order_item.product_id if order_item else None,
                        shopify_refund_line_item_id=external_id(rli.get("id")),
                        shopify_line_item_id=line_item_id,
                        quantity=quantity,
                        subtotal=round_money(money_field(rli, "subtotal")),
                        discount_allocation=self._refunded_discount(line, order_item, quantity),
                        total_tax=round_money(money_field(rli, "total_tax")),
                        restock_type=clean_str(rli.get("restock_type"), 32),
                    )
                )

            for adj in data.get("order_adjustments") or []:
                refund.adjustments.append(
                    RefundAdjustment(
                        shopify_adjustment_id=external_id(adj.get("id")),
                        kind=clean_str(adj.get("kind"), 64),
                        reason=clean_str(adj.get("reason")),
                        amount=round_money(money_set_first(adj, "amount")),
                        tax_amount=round_money(money_set_first(adj, "tax_amount")),
                    )
                )

    @staticmethod
    def _refunded_discount(line: dict, order_item: Optional[OrderItem], quantity: int) -> Decimal:
        """Discount allocated to the refunded units, prorated by quantity."""
        allocations = line.get("discount_allocations")
        if allocations:
            line_discount = sum((abs(money_field(d, "amount")) for d in allocations), ZERO)
            line_quantity = int(line.get("quantity") or 0)
        elif order_item is not None:
            line_discount = to_decimal(order_item.discount_allocation)
            line_quantity = int(order_item.quantity or 0)
        else:
            return ZERO
        if quantity <= 0 or line_quantity <= 0:
            return ZERO
        return round_money(line_discount * quantity / line_quantity)
