"""Order aggregate root with OrderItem entity, Address and OrderTransaction value objects.

An ``Order`` exclusively owns its ``OrderItem``s and ``Address`` snapshots.
Items carry a denormalized copy of the catalog entry (name, price, sale
price, image) as it was when the order was placed, so later catalog edits
never change historical orders.

Status machine:
    PENDING → PROCESSING → DISPATCHED → DELIVERED
    PENDING → CANCELLED
DELIVERED and CANCELLED are terminal.
"""

from enum import Enum
from uuid import uuid4

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Decimal, HasMany, Identifier, Integer, List, String, ValueObject

from settlement.domain import settlement
from settlement.exceptions import BusinessRuleViolation, IllegalStatusTransition
from settlement.money import ZERO
from settlement.utils.clock import utc_now


class OrderStatus(Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    DISPATCHED = "DISPATCHED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class DeliveryOption(Enum):
    STANDARD = "STANDARD"
    EXPRESS = "EXPRESS"


class PaymentMethod(Enum):
    COD = "COD"
    BKASH = "BKASH"
    SSLCOMMERZ = "SSLCOMMERZ"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.DISPATCHED},
    OrderStatus.DISPATCHED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

TERMINAL_STATUSES = frozenset(status for status, targets in _VALID_TRANSITIONS.items() if not targets)

# Addresses can be corrected until the parcel leaves the warehouse
_ADDRESS_EDITABLE = {OrderStatus.PENDING, OrderStatus.PROCESSING}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@settlement.value_object(part_of="Order")
class Address:
    """A delivery or billing address captured at checkout time.

    ``address_id`` names the stored address record; it is assigned when the
    order is placed and kept across corrections, so a corrected address
    replaces the record in place.
    """

    address_id = Identifier()
    name = String(required=True, max_length=255)
    line = String(required=True, max_length=500)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    country = String(required=True, max_length=100)
    zip = String(max_length=20)
    phone = String(max_length=32)

    def same_place(self, other: "Address | None") -> bool:
        """True when *other* describes the same address, whatever its identity."""
        if other is None:
            return False
        return self.replace(address_id=None) == other.replace(address_id=None)

    def with_id(self, address_id: str | None = None) -> "Address":
        return self.replace(address_id=address_id or str(uuid4()))


@settlement.value_object(part_of="Order")
class OrderTransaction:
    """The payment the customer declared at checkout. Nothing is charged here."""

    payment_method = String(choices=PaymentMethod, required=True)
    amount = Decimal(required=True, min_value=0)
    status = String(max_length=32, default="PENDING")


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@settlement.entity(part_of="Order")
class OrderItem:
    """One priced line of an order; references exactly one of a product or a variant."""

    position = Integer(required=True, min_value=0)
    quantity = Integer(required=True, min_value=1)
    product_id = Identifier()
    variant_id = Identifier()
    product_name = String(required=True, max_length=255)
    product_price = Decimal(required=True, min_value=0)
    product_sale_price = Decimal(min_value=0)
    product_image_url = String(max_length=1000, sanitize=False)
    created_at = DateTime()

    @invariant.post
    def references_exactly_one_catalog_entry(self):
        if bool(self.product_id) == bool(self.variant_id):
            raise ValidationError({"product_id": ["Exactly one of product_id or variant_id is required"]})

    @property
    def catalog_ref(self) -> str:
        return self.product_id or self.variant_id

    @property
    def line_total(self):
        return self.product_price * self.quantity

    @property
    def line_discount(self):
        # No sale price, or a "sale" above list price, means no discount.
        if self.product_sale_price is None or self.product_sale_price >= self.product_price:
            return ZERO
        return (self.product_price - self.product_sale_price) * self.quantity


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@settlement.aggregate
class Order:
    """A placed, priced order.

    Every monetary figure is fixed when the order is placed and never
    recomputed. ``billing_address`` is empty when billing equals shipping;
    readers fall back to the shipping address in that case.
    """

    customer_id = Identifier(required=True)
    customer_name = String(max_length=255)
    customer_email = String(max_length=255)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    delivery_option = String(choices=DeliveryOption, default=DeliveryOption.STANDARD.value)
    delivery_charge = Decimal(min_value=0, default=ZERO)
    total = Decimal(min_value=0, default=ZERO)
    items_total_discount = Decimal(min_value=0, default=ZERO)
    coupon_applied_discount = Decimal(min_value=0, default=ZERO)
    total_with_discount = Decimal(min_value=0, default=ZERO)
    net_total = Decimal(min_value=0, default=ZERO)
    coupon_id = Identifier()
    coupon_code = String(max_length=64)
    shipping_address = ValueObject(Address, required=True)
    billing_address = ValueObject(Address)
    transaction = ValueObject(OrderTransaction)
    # Denormalized for listing filters
    payment_method = String(choices=PaymentMethod)
    product_refs = List(content_type=String)
    items = HasMany(OrderItem)
    created_at = DateTime(required=True)
    updated_at = DateTime()

    @invariant.post
    def net_total_adds_up(self):
        expected = self.total - self.items_total_discount - self.coupon_applied_discount
        if self.total_with_discount != expected:
            raise ValidationError({"total_with_discount": ["Discounted total does not match the order lines"]})
        if self.net_total != self.total_with_discount + self.delivery_charge:
            raise ValidationError({"net_total": ["Net total must be the discounted total plus delivery"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        customer_id,
        items,
        totals,
        shipping_address,
        billing_address=None,
        delivery_option=DeliveryOption.STANDARD,
        payment_method=None,
        coupon=None,
        customer_name=None,
        customer_email=None,
        placed_at=None,
    ):
        """Build a new PENDING order from priced *items* and their *totals*.

        A billing address describing the same place as the shipping address
        is not kept separately.
        """
        placed_at = placed_at or utc_now()
        shipping = shipping_address.with_id(shipping_address.address_id)
        billing = None
        if billing_address is not None and not billing_address.same_place(shipping):
            billing = billing_address.with_id(billing_address.address_id)

        transaction = None
        if payment_method is not None:
            transaction = OrderTransaction(payment_method=PaymentMethod(payment_method).value, amount=totals.net_total)

        return cls(
            customer_id=customer_id,
            customer_name=customer_name,
            customer_email=customer_email,
            delivery_option=DeliveryOption(delivery_option).value,
            delivery_charge=totals.delivery_charge,
            total=totals.total,
            items_total_discount=totals.items_total_discount,
            coupon_applied_discount=totals.coupon_applied_discount,
            total_with_discount=totals.total_with_discount,
            net_total=totals.net_total,
            coupon_id=coupon.id if coupon is not None else None,
            coupon_code=coupon.code if coupon is not None else None,
            shipping_address=shipping,
            billing_address=billing,
            transaction=transaction,
            payment_method=transaction.payment_method if transaction is not None else None,
            product_refs=[item.catalog_ref for item in items],
            items=list(items),
            created_at=placed_at,
            updated_at=placed_at,
        )

    # -------------------------------------------------------------------
    # State transition helper
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        """Validate that the current state allows transition to target."""
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise IllegalStatusTransition(
                f"Cannot transition from {current.value} to {target_status.value}",
                current=current.value,
                target=target_status.value,
            )

    def change_status(self, target_status, now=None):
        target_status = OrderStatus(target_status)
        self._assert_can_transition(target_status)
        self.status = target_status.value
        self.updated_at = now or utc_now()

    def correct_addresses(self, shipping=None, billing=None, now=None):
        """Replace the shipping and/or billing snapshot while the order is still editable.

        A corrected address keeps the identity of the one it replaces. When
        billing currently follows shipping, a new billing address gets an
        identity of its own and a shipping correction moves both.
        """
        if OrderStatus(self.status) not in _ADDRESS_EDITABLE:
            raise BusinessRuleViolation(
                f"Addresses cannot be changed once an order is {self.status}",
                order_id=self.id,
                status=self.status,
            )

        if shipping is not None:
            self.shipping_address = shipping.with_id(self.shipping_address.address_id)
        if billing is not None:
            current = self.billing_address
            self.billing_address = billing.with_id(current.address_id if current is not None else None)
        self.updated_at = now or utc_now()

    @property
    def ordered_items(self) -> list:
        """Items in cart order."""
        return sorted(self.items, key=lambda item: item.position)

    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in TERMINAL_STATUSES

    @property
    def pricing(self) -> dict:
        """The monetary fields, for comparison and serialization."""
        return {
            "total": self.total,
            "items_total_discount": self.items_total_discount,
            "coupon_applied_discount": self.coupon_applied_discount,
            "total_with_discount": self.total_with_discount,
            "delivery_charge": self.delivery_charge,
            "net_total": self.net_total,
        }
