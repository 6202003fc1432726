"""Order pricing math.

Kept outside both order stores so that the figures are computed, and tested,
once. All arithmetic is ``Decimal``.

    total                = Σ price × quantity
    items_total_discount = Σ (price − sale_price) × quantity
    total_with_discount  = total − items_total_discount − coupon_applied_discount
    net_total            = total_with_discount + delivery_charge
"""

from protean.fields import Decimal

from settlement.domain import settlement
from settlement.money import ZERO, to_money


@settlement.value_object
class OrderTotals:
    total = Decimal(min_value=0, default=ZERO)
    items_total_discount = Decimal(min_value=0, default=ZERO)
    coupon_applied_discount = Decimal(min_value=0, default=ZERO)
    total_with_discount = Decimal(default=ZERO)
    delivery_charge = Decimal(min_value=0, default=ZERO)
    net_total = Decimal(default=ZERO)


def line_totals(items):
    """Return ``(total, items_total_discount)`` for priced order *items*."""
    total = sum((item.line_total for item in items), ZERO)
    discount = sum((item.line_discount for item in items), ZERO)
    return to_money(total), to_money(discount)


def compute_totals(items, coupon_discount=ZERO, delivery_charge=ZERO) -> OrderTotals:
    total, items_total_discount = line_totals(items)
    coupon_discount = to_money(coupon_discount)
    delivery_charge = to_money(delivery_charge)

    total_with_discount = total - items_total_discount - coupon_discount
    return OrderTotals(
        total=total,
        items_total_discount=items_total_discount,
        coupon_applied_discount=coupon_discount,
        total_with_discount=total_with_discount,
        delivery_charge=delivery_charge,
        net_total=total_with_discount + delivery_charge,
    )
