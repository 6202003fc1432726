"""Address resolution for display.

Orders placed with billing equal to shipping, and orders placed before
billing addresses were recorded, have no billing address of their own. They
are read back with billing equal to shipping; the stored record itself is
never rewritten.
"""

from settlement.order.order import Address, Order


def resolve_billing(order: Order) -> Address | None:
    if order.billing_address is None:
        return order.shipping_address
    return order.billing_address


def billing_is_shipping(order: Order) -> bool:
    billing = resolve_billing(order)
    return billing is not None and billing.address_id == order.shipping_address.address_id


def with_billing_fallback(order: Order) -> Order:
    """Fill in billing from shipping on a copy that was read for display."""
    if order.billing_address is None and order.shipping_address is not None:
        order.billing_address = order.shipping_address
    return order
