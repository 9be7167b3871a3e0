"""
SQLAlchemy models for the Shopify order ledger.
All model and enum definitions live here for simplicity and to avoid circular imports.
External (Shopify) ids are stored as opaque strings and are the idempotency key for upsert.
"""
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Numeric, Text, Enum as SQLEnum, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum
import uuid


def _uuid() -> str:
    return str(uuid.uuid4())


# Enums
class FinancialStatus(str, enum.Enum):
    PENDING = "pending"
    AUTHORIZED = "authorized"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"
    VOIDED = "voided"


# Financial statuses that count as revenue (is_paid, reporting)
PAID_FINANCIAL_STATUSES = (
    FinancialStatus.PAID.value,
    FinancialStatus.PARTIALLY_REFUNDED.value,
    FinancialStatus.REFUNDED.value,
)


class PaymentKind(str, enum.Enum):
    SALE = "sale"
    CAPTURE = "capture"
    AUTHORIZATION = "authorization"


class SyncJobType(str, enum.Enum):
    PULL_ORDERS = "PULL_ORDERS"


class SyncJobStatus(str, enum.Enum):
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


# Models
class Customer(Base):
    __tablename__ = "customers"

    id = Column(String, primary_key=True, default=_uuid)
    shopify_customer_id = Column("shopify_customer_id", String, unique=True, nullable=True, index=True)
    email = Column(String, nullable=True, index=True)
    first_name = Column("first_name", String, nullable=True)
    last_name = Column("last_name", String, nullable=True)
    phone = Column(String, nullable=True)
    addresses = Column(JSON, nullable=True)
    verified_email = Column("verified_email", Boolean, default=False, nullable=False)
    state = Column(String, nullable=True)
    tags = Column(String, nullable=True)
    note = Column(Text, nullable=True)
    shopify_created_at = Column("shopify_created_at", DateTime, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    orders = relationship("Order", back_populates="customer")

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p).strip()


class Product(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True, default=_uuid)
    shopify_product_id = Column("shopify_product_id", String, unique=True, nullable=False, index=True)
    title = Column(String, nullable=False)
    vendor = Column(String, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=_uuid)
    shopify_order_id = Column("shopify_order_id", String, unique=True, nullable=False, index=True)
    order_number = Column("order_number", String, nullable=True, index=True)
    customer_id = Column("customer_id", String, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    email = Column(String, nullable=True, index=True)
    financial_status = Column("financial_status", String, nullable=True, index=True)
    # NULL means unfulfilled
    fulfillment_status = Column("fulfillment_status", String, nullable=True, index=True)
    shipping_status = Column("shipping_status", String, nullable=True, index=True)
    is_paid = Column("is_paid", Boolean, default=False, nullable=False, index=True)
    total_price = Column("total_price", Numeric(15, 2), default=0, nullable=False)
    subtotal_price = Column("subtotal_price", Numeric(15, 2), default=0, nullable=False)
    total_discounts = Column("total_discounts", Numeric(15, 2), default=0, nullable=False)
    total_tax = Column("total_tax", Numeric(15, 2), default=0, nullable=False)
    total_refunds = Column("total_refunds", Numeric(15, 2), default=0, nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    processed_at = Column("processed_at", DateTime, nullable=True, index=True)
    closed_at = Column("closed_at", DateTime, nullable=True)
    cancelled_at = Column("cancelled_at", DateTime, nullable=True)
    cancel_reason = Column("cancel_reason", String, nullable=True)
    shipping_address = Column("shipping_address", JSON, nullable=True)
    billing_address = Column("billing_address", JSON, nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", passive_deletes=True)
    fulfillments = relationship("Fulfillment", back_populates="order", cascade="all, delete-orphan", passive_deletes=True)
    payments = relationship(
        "Payment",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Payment.processed_at",
    )
    refunds = relationship("Refund", back_populates="order", cascade="all, delete-orphan", passive_deletes=True)


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(String, primary_key=True, default=_uuid)
    order_id = Column("order_id", String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column("product_id", String, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    shopify_line_item_id = Column("shopify_line_item_id", String, nullable=True, index=True)
    title = Column(String, nullable=False)
    sku = Column(String, nullable=True)
    variant_title = Column("variant_title", String, nullable=True)
    quantity = Column(Integer, default=1, nullable=False)
    price = Column("price", Numeric(15, 2), default=0, nullable=False)
    discount_allocation = Column("discount_allocation", Numeric(15, 2), default=0, nullable=False)
    tax_amount = Column("tax_amount", Numeric(15, 2), default=0, nullable=False)
    # price * quantity - discount_allocation + tax_amount
    total = Column("total", Numeric(15, 2), default=0, nullable=False)
    fulfillment_status = Column("fulfillment_status", String, nullable=True)
    properties = Column(JSON, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())

    order = relationship("Order", back_populates="items")
    product = relationship("Product")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=_uuid)
    order_id = Column("order_id", String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    shopify_payment_id = Column("shopify_payment_id", String, nullable=True, index=True)
    gateway = Column(String, nullable=True)
    kind = Column(String, nullable=True)
    amount = Column("amount", Numeric(15, 2), default=0, nullable=False)
    status = Column(String, nullable=True)
    currency = Column(String(3), nullable=True)
    processed_at = Column("processed_at", DateTime, nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())

    order = relationship("Order", back_populates="payments")


class Fulfillment(Base):
    __tablename__ = "fulfillments"

    id = Column(String, primary_key=True, default=_uuid)
    order_id = Column("order_id", String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    shopify_fulfillment_id = Column("shopify_fulfillment_id", String, nullable=True, index=True)
    status = Column(String, nullable=True, index=True)
    tracking_company = Column("tracking_company", String, nullable=True)
    tracking_number = Column("tracking_number", String, nullable=True)
    shopify_created_at = Column("shopify_created_at", DateTime, nullable=True)
    shopify_updated_at = Column("shopify_updated_at", DateTime, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())

    order = relationship("Order", back_populates="fulfillments")


class Refund(Base):
    __tablename__ = "refunds"

    id = Column(String, primary_key=True, default=_uuid)
    order_id = Column("order_id", String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    shopify_refund_id = Column("shopify_refund_id", String, unique=True, nullable=False, index=True)
    processed_at = Column("processed_at", DateTime, nullable=True, index=True)
    note = Column(Text, nullable=True)
    gateway = Column(String, nullable=True)
    # Derived by the reconciliation engine, never taken from the payload
    total_amount = Column("total_amount", Numeric(15, 2), default=0, nullable=False)
    total_tax = Column("total_tax", Numeric(15, 2), default=0, nullable=False)
    transactions = Column(JSON, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())

    order = relationship("Order", back_populates="refunds")
    items = relationship("RefundItem", back_populates="refund", cascade="all, delete-orphan", passive_deletes=True)
    adjustments = relationship(
        "RefundAdjustment", back_populates="refund", cascade="all, delete-orphan", passive_deletes=True
    )


class RefundItem(Base):
    __tablename__ = "refund_items"

    id = Column(String, primary_key=True, default=_uuid)
    refund_id = Column("refund_id", String, ForeignKey("refunds.id", ondelete="CASCADE"), nullable=False, index=True)
    order_item_id = Column("order_item_id", String, ForeignKey("order_items.id", ondelete="SET NULL"), nullable=True)
    product_id = Column("product_id", String, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    shopify_refund_line_item_id = Column("shopify_refund_line_item_id", String, nullable=True, index=True)
    shopify_line_item_id = Column("shopify_line_item_id", String, nullable=True, index=True)
    quantity = Column(Integer, default=0, nullable=False)
    subtotal = Column("subtotal", Numeric(15, 2), default=0, nullable=False)
    discount_allocation = Column("discount_allocation", Numeric(15, 2), default=0, nullable=False)
    total_tax = Column("total_tax", Numeric(15, 2), default=0, nullable=False)
    restock_type = Column("restock_type", String, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())

    refund = relationship("Refund", back_populates="items")
    order_item = relationship("OrderItem")
    product = relationship("Product")


class RefundAdjustment(Base):
    __tablename__ = "refund_adjustments"

    id = Column(String, primary_key=True, default=_uuid)
    refund_id = Column("refund_id", String, ForeignKey("refunds.id", ondelete="CASCADE"), nullable=False, index=True)
    shopify_adjustment_id = Column("shopify_adjustment_id", String, nullable=True, index=True)
    kind = Column(String, nullable=True)
    reason = Column(String, nullable=True)
    # Signed: positive reduces the refund total, negative increases it
    amount = Column("amount", Numeric(15, 2), default=0, nullable=False)
    tax_amount = Column("tax_amount", Numeric(15, 2), default=0, nullable=False)
    created_at = Column("created_at", DateTime, server_default=func.now())

    refund = relationship("Refund", back_populates="adjustments")


class SyncJob(Base):
    __tablename__ = "sync_jobs"

    id = Column(String, primary_key=True, default=_uuid)
    job_type = Column("job_type", SQLEnum(SyncJobType), nullable=False, default=SyncJobType.PULL_ORDERS)
    status = Column(SQLEnum(SyncJobStatus), default=SyncJobStatus.RUNNING, nullable=False)
    full_reset = Column("full_reset", Boolean, default=False, nullable=False)
    started_at = Column("started_at", DateTime, nullable=True)
    finished_at = Column("finished_at", DateTime, nullable=True, index=True)
    records_processed = Column("records_processed", Integer, default=0, nullable=False)
    error_message = Column("error_message", String, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(String, primary_key=True, default=_uuid)
    source = Column("source", String, nullable=False, default="shopify", index=True)
    shop_domain = Column("shop_domain", String, nullable=True, index=True)
    topic = Column("topic", String, nullable=False, index=True)
    payload_summary = Column("payload_summary", String, nullable=True)
    processed_at = Column("processed_at", DateTime, nullable=True)
    error = Column("error", String, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())
