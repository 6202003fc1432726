"""Order assembly: a checkout command in, a priced ``Order`` out.

    1. resolve every line through the catalog (fail fast on unknown ids)
    2. price the lines
    3. validate the coupon, if any, against the priced cart
    4. place the order with item and address snapshots

Nothing is written here. The caller hands the order to the store, which
writes it and redeems the coupon in one atomic unit, so every rejection
leaves the store untouched.
"""

from datetime import datetime

import structlog

from settlement.catalog.port import Catalog
from settlement.coupon.coupon import normalize_code
from settlement.coupon.validation import validate_coupon
from settlement.exceptions import CouponRejected, EmptyCart, LineItemNotFound
from settlement.money import ZERO
from settlement.order.order import DeliveryOption, Order, OrderItem
from settlement.order.pricing import compute_totals
from settlement.store.port import OrderStore

logger = structlog.get_logger(__name__)


class OrderAssembler:
    def __init__(self, store: OrderStore, catalog: Catalog):
        self.store = store
        self.catalog = catalog

    def assemble(self, command, now: datetime) -> Order:
        if not command.lines:
            raise EmptyCart("Cart has no line items")

        items = [self._resolve(line, position, now) for position, line in enumerate(command.lines)]
        delivery_charge = command.delivery_charge if command.delivery_charge is not None else ZERO
        totals = compute_totals(items, delivery_charge=delivery_charge)

        coupon = None
        if command.coupon_code:
            code = normalize_code(command.coupon_code)
            coupon = self.store.find_active_coupon(code)
            try:
                discount = validate_coupon(
                    coupon,
                    totals.total,
                    customer_id=command.customer_id,
                    ceiling=totals.total - totals.items_total_discount,
                    now=now,
                    code=code,
                )
            except CouponRejected as exc:
                logger.info("coupon.rejected", code=code, reason=exc.reason, customer_id=command.customer_id)
                raise
            totals = compute_totals(items, coupon_discount=discount, delivery_charge=delivery_charge)

        return Order.place(
            customer_id=command.customer_id,
            items=items,
            totals=totals,
            shipping_address=command.shipping_address,
            billing_address=command.billing_address,
            delivery_option=command.delivery_option or DeliveryOption.STANDARD,
            payment_method=command.payment_method,
            coupon=coupon,
            customer_name=command.customer_name,
            customer_email=command.customer_email,
            placed_at=now,
        )

    def _resolve(self, line, position: int, now: datetime) -> OrderItem:
        if line.product_id:
            entry = self.catalog.find_product(line.product_id)
            missing = {"product_id": line.product_id}
        else:
            entry = self.catalog.find_variant(line.variant_id)
            missing = {"variant_id": line.variant_id}
        if entry is None:
            raise LineItemNotFound("Line item not found in catalog", **missing)

        return OrderItem(
            position=position,
            quantity=line.quantity,
            product_name=entry.name,
            product_price=entry.price,
            product_id=line.product_id or None,
            variant_id=line.variant_id or None,
            product_sale_price=entry.sale_price,
            product_image_url=entry.image_url,
            created_at=now,
        )
