"""Order management: status changes, address correction, deletion, and reads.

Every read goes through the billing fallback, so orders stored without a
billing address show their shipping address as billing.
"""

from dataclasses import replace

import structlog
from protean import handle
from protean.fields import Float, Identifier, String, ValueObject

from settlement.domain import settlement
from settlement.exceptions import ValidationError
from settlement.order.addresses import with_billing_fallback
from settlement.order.order import Address, Order, OrderStatus, PaymentMethod
from settlement.store import deadline_for, get_store
from settlement.store.port import SORTABLE_FIELDS, OrderFilters, OrderStore, Page, PageRequest
from settlement.utils.clock import as_utc

logger = structlog.get_logger(__name__)

MAX_PAGE_SIZE = 100


@settlement.command(part_of="Order")
class ChangeOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, choices=OrderStatus)
    timeout = Float(min_value=0)


@settlement.command(part_of="Order")
class CorrectOrderAddresses:
    order_id = Identifier(required=True)
    shipping_address = ValueObject(Address)
    billing_address = ValueObject(Address)
    timeout = Float(min_value=0)


@settlement.command(part_of="Order")
class DeleteOrder:
    order_id = Identifier(required=True)
    timeout = Float(min_value=0)


@settlement.command_handler(part_of=Order)
class OrderManagementHandler:
    @handle(ChangeOrderStatus)
    def change_status(self, command):
        """Move an order along the status machine.

        The store only applies the change if the order is still in the status
        it was read in; otherwise ``ConcurrencyConflict`` is raised.
        """
        store = get_store()
        order = store.get_order(command.order_id)
        previous = order.status

        order.change_status(command.status)
        store.update_order_status(order, previous, deadline_for(command.timeout))

        logger.info("order.status_changed", order_id=order.id, previous=previous, status=order.status)
        return str(order.id)

    @handle(CorrectOrderAddresses)
    def correct_addresses(self, command):
        if command.shipping_address is None and command.billing_address is None:
            raise ValidationError("Nothing to update", fields="shipping_address, billing_address")

        store = get_store()
        order = store.get_order(command.order_id)
        order.correct_addresses(shipping=command.shipping_address, billing=command.billing_address)
        store.update_order_addresses(order, deadline_for(command.timeout))

        logger.info(
            "order.addresses_updated",
            order_id=order.id,
            shipping=command.shipping_address is not None,
            billing=command.billing_address is not None,
        )
        return str(order.id)

    @handle(DeleteOrder)
    def delete_order(self, command):
        get_store().delete_order(command.order_id, deadline_for(command.timeout))
        logger.info("order.deleted", order_id=command.order_id)
        return command.order_id


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_order_by_id(store: OrderStore, order_id: str) -> Order:
    return with_billing_fallback(store.get_order(order_id))


def list_orders(store: OrderStore, filters: OrderFilters | None = None, page: PageRequest | None = None) -> Page:
    filters = filters or OrderFilters()
    page = page or PageRequest()

    errors = {}
    if page.page < 1:
        errors["page"] = "Page must be 1 or greater"
    if not 1 <= page.limit <= MAX_PAGE_SIZE:
        errors["limit"] = f"Limit must be between 1 and {MAX_PAGE_SIZE}"
    if page.sort not in SORTABLE_FIELDS:
        errors["sort"] = f"Sort must be one of {', '.join(SORTABLE_FIELDS)}"
    if page.direction.lower() not in ("asc", "desc"):
        errors["direction"] = "Direction must be asc or desc"
    if filters.status is not None and filters.status not in {status.value for status in OrderStatus}:
        errors["status"] = f"Unknown order status: {filters.status}"
    if filters.payment_method is not None and filters.payment_method not in {method.value for method in PaymentMethod}:
        errors["payment_method"] = f"Unknown payment method: {filters.payment_method}"

    created_from, created_to = as_utc(filters.created_from), as_utc(filters.created_to)
    if created_from and created_to and created_from > created_to:
        errors["created_from"] = "created_from must not be after created_to"
    if errors:
        raise ValidationError("Invalid order listing request", **errors)

    filters = replace(filters, created_from=created_from, created_to=created_to)
    result = store.list_orders(filters, page)
    return replace(result, items=tuple(with_billing_fallback(order) for order in result.items))
