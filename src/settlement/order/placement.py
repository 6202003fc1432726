"""Checkout: PlaceOrder command and handler."""

import structlog
from protean import handle, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Decimal, Float, Identifier, Integer, List, String, ValueObject

from settlement.catalog import get_catalog
from settlement.domain import settlement
from settlement.money import ZERO
from settlement.order.assembler import OrderAssembler
from settlement.order.order import Address, DeliveryOption, Order, PaymentMethod
from settlement.store import deadline_for, get_store
from settlement.utils.clock import as_utc, utc_now

logger = structlog.get_logger(__name__)


@settlement.value_object(part_of="Order")
class CartLine:
    """One cart line; references exactly one of a product or a variant."""

    quantity = Integer(required=True, min_value=1)
    product_id = Identifier()
    variant_id = Identifier()

    @invariant.post
    def references_exactly_one_catalog_entry(self):
        if bool(self.product_id) == bool(self.variant_id):
            raise ValidationError({"product_id": ["Exactly one of product_id or variant_id is required"]})


@settlement.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier(required=True)
    lines = List(content_type=ValueObject(CartLine))
    shipping_address = ValueObject(Address, required=True)
    billing_address = ValueObject(Address)
    coupon_code = String(max_length=64)
    delivery_charge = Decimal(min_value=0, default=ZERO)
    delivery_option = String(choices=DeliveryOption, default=DeliveryOption.STANDARD.value)
    payment_method = String(choices=PaymentMethod)
    customer_name = String(max_length=255)
    customer_email = String(max_length=255)
    placed_at = DateTime()
    timeout = Float(min_value=0)


@settlement.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        store = get_store()
        now = as_utc(command.placed_at) or utc_now()

        order = OrderAssembler(store, get_catalog()).assemble(command, now)
        store.create_order(order, deadline_for(command.timeout))

        logger.info(
            "order.created",
            order_id=order.id,
            customer_id=order.customer_id,
            items=len(order.items),
            coupon_code=order.coupon_code,
            net_total=str(order.net_total),
        )
        return str(order.id)
