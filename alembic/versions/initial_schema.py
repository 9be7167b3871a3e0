"""Initial schema: order ledger tables (customers, products, orders and children, sync jobs, webhook events).

Revision ID: initial_schema
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


revision = "initial_schema"
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(15, 2)


def _timestamps():
    return [sa.Column("created_at", sa.DateTime(), server_default=sa.func.now())]


def upgrade() -> None:
    op.create_table(
        "customers",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("shopify_customer_id", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("addresses", sa.JSON(), nullable=True),
        sa.Column("verified_email", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("state", sa.String(), nullable=True),
        sa.Column("tags", sa.String(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("shopify_created_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_customers_shopify_customer_id", "customers", ["shopify_customer_id"], unique=True)
    op.create_index("ix_customers_email", "customers", ["email"])

    op.create_table(
        "products",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("shopify_product_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("vendor", sa.String(), nullable=True),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_products_shopify_product_id", "products", ["shopify_product_id"], unique=True)

    op.create_table(
        "orders",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("shopify_order_id", sa.String(), nullable=False),
        sa.Column("order_number", sa.String(), nullable=True),
        sa.Column("customer_id", sa.String(), sa.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("financial_status", sa.String(), nullable=True),
        sa.Column("fulfillment_status", sa.String(), nullable=True),
        sa.Column("shipping_status", sa.String(), nullable=True),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("total_price", MONEY, nullable=False, server_default="0"),
        sa.Column("subtotal_price", MONEY, nullable=False, server_default="0"),
        sa.Column("total_discounts", MONEY, nullable=False, server_default="0"),
        sa.Column("total_tax", MONEY, nullable=False, server_default="0"),
        sa.Column("total_refunds", MONEY, nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancel_reason", sa.String(), nullable=True),
        sa.Column("shipping_address", sa.JSON(), nullable=True),
        sa.Column("billing_address", sa.JSON(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_orders_shopify_order_id", "orders", ["shopify_order_id"], unique=True)
    for column in ("order_number", "email", "financial_status", "fulfillment_status", "shipping_status", "is_paid", "processed_at"):
        op.create_index(f"ix_orders_{column}", "orders", [column])

    op.create_table(
        "order_items",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("order_id", sa.String(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.String(), sa.ForeignKey("products.id", ondelete="SET NULL"), nullable=True),
        sa.Column("shopify_line_item_id", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("sku", sa.String(), nullable=True),
        sa.Column("variant_title", sa.String(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("price", MONEY, nullable=False, server_default="0"),
        sa.Column("discount_allocation", MONEY, nullable=False, server_default="0"),
        sa.Column("tax_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("total", MONEY, nullable=False, server_default="0"),
        sa.Column("fulfillment_status", sa.String(), nullable=True),
        sa.Column("properties", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])
    op.create_index("ix_order_items_shopify_line_item_id", "order_items", ["shopify_line_item_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("order_id", sa.String(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("shopify_payment_id", sa.String(), nullable=True),
        sa.Column("gateway", sa.String(), nullable=True),
        sa.Column("kind", sa.String(), nullable=True),
        sa.Column("amount", MONEY, nullable=False, server_default="0"),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_payments_order_id", "payments", ["order_id"])
    op.create_index("ix_payments_shopify_payment_id", "payments", ["shopify_payment_id"])

    op.create_table(
        "fulfillments",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("order_id", sa.String(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("shopify_fulfillment_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("tracking_company", sa.String(), nullable=True),
        sa.Column("tracking_number", sa.String(), nullable=True),
        sa.Column("shopify_created_at", sa.DateTime(), nullable=True),
        sa.Column("shopify_updated_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_fulfillments_order_id", "fulfillments", ["order_id"])
    op.create_index("ix_fulfillments_shopify_fulfillment_id", "fulfillments", ["shopify_fulfillment_id"])
    op.create_index("ix_fulfillments_status", "fulfillments", ["status"])

    op.create_table(
        "refunds",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("order_id", sa.String(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("shopify_refund_id", sa.String(), nullable=False),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("gateway", sa.String(), nullable=True),
        sa.Column("total_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("total_tax", MONEY, nullable=False, server_default="0"),
        sa.Column("transactions", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_refunds_order_id", "refunds", ["order_id"])
    op.create_index("ix_refunds_shopify_refund_id", "refunds", ["shopify_refund_id"], unique=True)
    op.create_index("ix_refunds_processed_at", "refunds", ["processed_at"])

    op.create_table(
        "refund_items",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("refund_id", sa.String(), sa.ForeignKey("refunds.id", ondelete="CASCADE"), nullable=False),
        sa.Column("order_item_id", sa.String(), sa.ForeignKey("order_items.id", ondelete="SET NULL"), nullable=True),
        sa.Column("product_id", sa.String(), sa.ForeignKey("products.id", ondelete="SET NULL"), nullable=True),
        sa.Column("shopify_refund_line_item_id", sa.String(), nullable=True),
        sa.Column("shopify_line_item_id", sa.String(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("subtotal", MONEY, nullable=False, server_default="0"),
        sa.Column("discount_allocation", MONEY, nullable=False, server_default="0"),
        sa.Column("total_tax", MONEY, nullable=False, server_default="0"),
        sa.Column("restock_type", sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_refund_items_refund_id", "refund_items", ["refund_id"])
    op.create_index("ix_refund_items_shopify_refund_line_item_id", "refund_items", ["shopify_refund_line_item_id"])
    op.create_index("ix_refund_items_shopify_line_item_id", "refund_items", ["shopify_line_item_id"])

    op.create_table(
        "refund_adjustments",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("refund_id", sa.String(), sa.ForeignKey("refunds.id", ondelete="CASCADE"), nullable=False),
        sa.Column("shopify_adjustment_id", sa.String(), nullable=True),
        sa.Column("kind", sa.String(), nullable=True),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("amount", MONEY, nullable=False, server_default="0"),
        sa.Column("tax_amount", MONEY, nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_refund_adjustments_refund_id", "refund_adjustments", ["refund_id"])
    op.create_index("ix_refund_adjustments_shopify_adjustment_id", "refund_adjustments", ["shopify_adjustment_id"])

    op.create_table(
        "sync_jobs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("job_type", sa.Enum("PULL_ORDERS", name="syncjobtype"), nullable=False),
        sa.Column("status", sa.Enum("RUNNING", "SUCCESS", "FAILED", name="syncjobstatus"), nullable=False),
        sa.Column("full_reset", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        sa.Column("records_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_sync_jobs_finished_at", "sync_jobs", ["finished_at"])

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("shop_domain", sa.String(), nullable=True),
        sa.Column("topic", sa.String(), nullable=False),
        sa.Column("payload_summary", sa.String(), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("error", sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_webhook_events_source", "webhook_events", ["source"])
    op.create_index("ix_webhook_events_shop_domain", "webhook_events", ["shop_domain"])
    op.create_index("ix_webhook_events_topic", "webhook_events", ["topic"])


def downgrade() -> None:
    for table in (
        "webhook_events",
        "sync_jobs",
        "refund_adjustments",
        "refund_items",
        "refunds",
        "fulfillments",
        "payments",
        "order_items",
        "orders",
        "products",
        "customers",
    ):
        op.drop_table(table)
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute("DROP TYPE IF EXISTS syncjobstatus")
        op.execute("DROP TYPE IF EXISTS syncjobtype")
