"""
Refund reconciliation: refund totals, order total_refunds and net revenue
"""
import pytest
from decimal import Decimal

from app.models import Order, Refund, RefundAdjustment, RefundItem
from app.services.order_upsert import OrderUpsertService
from app.services.reconciliation import (
    RefundDiscountMode,
    compute_refund_total,
    net_revenue,
    recalculate_all_refunds,
    recompute_refund_totals,
    resolve_discount_mode,
)
from tests.conftest import FakeShopifyClient, make_order_payload


def _refund(subtotals=(), adjustments=(), discounts=None):
    discounts = discounts or [Decimal("0")] * len(subtotals)
    return Refund(
        shopify_refund_id="r1",
        items=[
            RefundItem(subtotal=Decimal(s), discount_allocation=Decimal(d), total_tax=Decimal("0"))
            for s, d in zip(subtotals, discounts)
        ],
        adjustments=[RefundAdjustment(amount=Decimal(a)) for a in adjustments],
    )


class TestComputeRefundTotal:
    def test_items_minus_adjustments(self):
        assert compute_refund_total(_refund(["20.00"], ["5.00"])) == Decimal("15.00")

    def test_multiple_items_and_adjustments(self):
        refund = _refund(["10.10", "5.05"], ["1.00", "0.15"])
        assert compute_refund_total(refund) == Decimal("14.00")

    def test_negative_adjustment_increases_total(self):
        assert compute_refund_total(_refund(["20.00"], ["-2.50"])) == Decimal("22.50")

    def test_clamped_at_zero(self):
        assert compute_refund_total(_refund(["3.00"], ["10.00"])) == Decimal("0.00")

    def test_adjustment_only_refund(self):
        # Shipping-only refund is represented as a negative adjustment
        assert compute_refund_total(_refund([], ["-7.99"])) == Decimal("7.99")

    def test_rounds_half_up_to_cents(self):
        assert compute_refund_total(_refund(["10.005"], [])) == Decimal("10.01")

    def test_exclude_mode_ignores_item_discounts(self):
        refund = _refund(["20.00"], ["5.00"], discounts=["5.00"])
        assert compute_refund_total(refund, RefundDiscountMode.EXCLUDE) == Decimal("15.00")

    def test_subtract_mode_removes_item_discounts(self):
        refund = _refund(["20.00"], ["5.00"], discounts=["5.00"])
        assert compute_refund_total(refund, RefundDiscountMode.SUBTRACT_ITEM_ALLOCATIONS) == Decimal("10.00")


class TestDiscountMode:
    def test_default_from_settings(self):
        assert resolve_discount_mode() == RefundDiscountMode.EXCLUDE

    def test_parses_case_insensitive(self):
        assert resolve_discount_mode(" Subtract_Item_Allocations ") == RefundDiscountMode.SUBTRACT_ITEM_ALLOCATIONS

    def test_unknown_value_rejected(self):
        with pytest.raises(ValueError):
            resolve_discount_mode("net_of_everything")


class TestOrderTotals:
    def test_recompute_stamps_refunds_and_order(self, db_session):
        order = Order(shopify_order_id="1", subtotal_price=Decimal("100.00"), total_discounts=Decimal("10.00"))
        order.refunds.append(_refund(["20.00"], ["5.00"]))
        second = _refund(["4.00"], [])
        second.shopify_refund_id = "r2"
        order.refunds.append(second)
        db_session.add(order)
        db_session.flush()

        total = recompute_refund_totals(db_session, order, RefundDiscountMode.EXCLUDE)

        assert total == Decimal("19.00")
        assert order.total_refunds == Decimal("19.00")
        assert [r.total_amount for r in order.refunds] == [Decimal("15.00"), Decimal("4.00")]
        assert net_revenue(order) == Decimal("71.00")

    def test_order_without_refunds_has_zero_total(self, db_session):
        order = Order(shopify_order_id="2", subtotal_price=Decimal("40.00"), total_discounts=Decimal("0"))
        db_session.add(order)
        db_session.flush()
        assert recompute_refund_totals(db_session, order) == Decimal("0.00")
        assert net_revenue(order) == Decimal("40.00")

    @pytest.mark.asyncio
    async def test_recalculate_all_repairs_drift(self, db_session):
        service = OrderUpsertService(db_session, FakeShopifyClient())
        await service.upsert_order(make_order_payload(1001))
        await service.upsert_order(make_order_payload(1002, refunds=[]))

        order = db_session.query(Order).filter(Order.shopify_order_id == "1001").one()
        order.total_refunds = Decimal("99.00")
        db_session.commit()

        result = recalculate_all_refunds(db_session, RefundDiscountMode.EXCLUDE)

        assert result == {"orders": 1, "updated": 1}
        db_session.refresh(order)
        assert order.total_refunds == Decimal("15.00")
