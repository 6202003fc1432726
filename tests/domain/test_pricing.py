"""Tests for order pricing math."""

from decimal import Decimal

from settlement.order.order import OrderItem
from settlement.order.pricing import compute_totals, line_totals


def _item(quantity, price, sale_price=None, position=0):
    return OrderItem(
        position=position,
        quantity=quantity,
        product_id="prod-x",
        product_name="Product",
        product_price=Decimal(price),
        product_sale_price=Decimal(sale_price) if sale_price is not None else None,
    )


def _cart():
    # Two tees at 100, one mug at 50 on sale for 40
    return [_item(2, "100.00"), _item(1, "50.00", sale_price="40.00", position=1)]


class TestOrderItemPricing:
    def test_line_total_uses_list_price(self):
        assert _item(3, "20.00", sale_price="15.00").line_total == Decimal("60.00")

    def test_line_discount(self):
        assert _item(3, "20.00", sale_price="15.00").line_discount == Decimal("15.00")

    def test_no_sale_price_means_no_discount(self):
        assert _item(2, "20.00").line_discount == Decimal("0.00")

    def test_sale_price_above_list_price_is_ignored(self):
        assert _item(1, "20.00", sale_price="25.00").line_discount == Decimal("0.00")


class TestComputeTotals:
    def test_line_totals(self):
        assert line_totals(_cart()) == (Decimal("250.00"), Decimal("10.00"))

    def test_without_coupon(self):
        totals = compute_totals(_cart(), delivery_charge=Decimal("30"))

        assert totals.total == Decimal("250.00")
        assert totals.items_total_discount == Decimal("10.00")
        assert totals.coupon_applied_discount == Decimal("0.00")
        assert totals.total_with_discount == Decimal("240.00")
        assert totals.delivery_charge == Decimal("30.00")
        assert totals.net_total == Decimal("270.00")

    def test_with_coupon(self):
        totals = compute_totals(_cart(), coupon_discount=Decimal("15"), delivery_charge=Decimal("30"))

        assert totals.total_with_discount == Decimal("225.00")
        assert totals.net_total == Decimal("255.00")

    def test_identities_hold(self):
        totals = compute_totals(_cart(), coupon_discount="7.35", delivery_charge="12.5")

        assert totals.total_with_discount == (
            totals.total - totals.items_total_discount - totals.coupon_applied_discount
        )
        assert totals.net_total == totals.total_with_discount + totals.delivery_charge

    def test_empty_cart_prices_to_delivery(self):
        totals = compute_totals([], delivery_charge="30")
        assert totals.total == Decimal("0.00")
        assert totals.net_total == Decimal("30.00")
