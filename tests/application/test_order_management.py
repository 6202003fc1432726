"""Application tests for order reads, listing, status changes, address correction and deletion."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from protean import current_domain
from protean.core.queryset import QuerySet
from protean.exceptions import DatabaseError
from protean.exceptions import ValidationError as DomainValidationError
from settlement.dispatch import dispatch
from settlement.exceptions import (
    BusinessRuleViolation,
    ConcurrencyConflict,
    IllegalStatusTransition,
    OrderNotFound,
    ValidationError,
)
from settlement.invoice.generation import PrintInvoice
from settlement.order import management
from settlement.order.management import ChangeOrderStatus, CorrectOrderAddresses, DeleteOrder
from settlement.order.order import Address, Order, OrderItem, OrderStatus, PaymentMethod
from settlement.order.placement import CartLine
from settlement.store import set_store
from settlement.store.document import DocumentOrderStore
from settlement.store.port import OrderFilters, PageRequest
from settlement.store.tables import AddressRow, OrderItemRow, OrderRow
from sqlalchemy import func, select, update

BASE = datetime(2024, 5, 1, 8, 0, tzinfo=UTC)

NEW_ADDRESS = Address(name="Jane Doe", line="7 River View", city="Sylhet", country="Bangladesh", zip="3100")


@pytest.fixture()
def placed_orders(checkout):
    """Three orders an hour apart: a cheap cap by cust-002 paid with bKash, then two default carts."""
    cap = checkout(
        customer_id="cust-002",
        lines=[CartLine(quantity=1, product_id="prod-cap")],
        payment_method="BKASH",
        delivery_charge=Decimal("0"),
        placed_at=BASE,
    )
    first = checkout(placed_at=BASE + timedelta(hours=1))
    second = checkout(lines=[CartLine(quantity=1, variant_id="var-tee-xl")], placed_at=BASE + timedelta(hours=2))
    return cap, first, second


def _ids(page):
    return [order.id for order in page.items]


def _change_status(store, order_id, status):
    dispatch(ChangeOrderStatus(order_id=order_id, status=status))
    return management.get_order_by_id(store, order_id)


def _correct(store, order_id, shipping=None, billing=None):
    dispatch(CorrectOrderAddresses(order_id=order_id, shipping_address=shipping, billing_address=billing))
    return management.get_order_by_id(store, order_id)


# ---------------------------------------------------------------
# Reads
# ---------------------------------------------------------------
class TestGetOrder:
    def test_returns_order_with_items(self, store, checkout):
        order = checkout()

        fetched = management.get_order_by_id(store, order.id)

        assert fetched.id == order.id
        assert [item.product_id for item in fetched.ordered_items] == ["prod-tee", "prod-mug"]
        assert fetched.pricing == order.pricing

    def test_unknown_order(self, store):
        with pytest.raises(OrderNotFound):
            management.get_order_by_id(store, "ord-missing")


class TestBillingFallback:
    def test_read_shows_shipping_as_billing(self, store, checkout):
        order = checkout()

        assert store.get_order(order.id).billing_address is None
        shown = management.get_order_by_id(store, order.id)
        assert shown.billing_address == shown.shipping_address

    def test_listing_applies_fallback(self, store, checkout):
        checkout()

        (listed,) = management.list_orders(store).items
        assert listed.billing_address == listed.shipping_address

    def test_fallback_never_rewrites_stored_record(self, store, checkout):
        order = checkout()

        management.get_order_by_id(store, order.id)
        management.list_orders(store)

        assert store.get_order(order.id).billing_address is None

    def test_billing_can_be_added_later(self, store, checkout, billing_address):
        order = checkout()

        updated = _correct(store, order.id, billing=billing_address)

        assert updated.billing_address.city == "Chattogram"
        assert updated.shipping_address.city == "Dhaka"

    def test_row_without_billing_reference(self, relational_store, checkout, billing_address):
        set_store(relational_store)
        order = checkout()
        with relational_store.session_factory.begin() as session:
            session.execute(update(OrderRow).where(OrderRow.id == order.id).values(billing_address_id=None))

        shown = management.get_order_by_id(relational_store, order.id)
        assert shown.billing_address == shown.shipping_address

        updated = _correct(relational_store, order.id, billing=billing_address)
        assert updated.billing_address.city == "Chattogram"


# ---------------------------------------------------------------
# Listing
# ---------------------------------------------------------------
class TestListOrders:
    def test_newest_first_by_default(self, store, placed_orders):
        cap, first, second = placed_orders

        page = management.list_orders(store)

        assert _ids(page) == [second.id, first.id, cap.id]
        assert page.total == 3

    def test_pagination(self, store, placed_orders):
        cap, first, second = placed_orders

        page_one = management.list_orders(store, page=PageRequest(page=1, limit=2))
        page_two = management.list_orders(store, page=PageRequest(page=2, limit=2))

        assert _ids(page_one) == [second.id, first.id]
        assert page_one.has_next_page and not page_one.has_prev_page
        assert page_one.total_pages == 2
        assert _ids(page_two) == [cap.id]
        assert page_two.has_prev_page and not page_two.has_next_page

    def test_page_past_the_end_is_empty(self, store, placed_orders):
        page = management.list_orders(store, page=PageRequest(page=5, limit=2))
        assert page.items == ()
        assert page.total == 3

    def test_sort_by_net_total_ascending(self, store, placed_orders):
        cap, first, second = placed_orders

        page = management.list_orders(store, page=PageRequest(sort="net_total", direction="asc"))

        # second: 100 + 30, first: 240 + 30, cap: 300
        assert _ids(page) == [second.id, first.id, cap.id]
        assert [order.net_total for order in page.items] == [Decimal("130.00"), Decimal("270.00"), Decimal("300.00")]

    def test_filter_by_customer(self, store, placed_orders):
        cap, _, _ = placed_orders
        assert _ids(management.list_orders(store, OrderFilters(customer_id="cust-002"))) == [cap.id]

    def test_filter_by_payment_method(self, store, placed_orders):
        cap, _, _ = placed_orders
        page = management.list_orders(store, OrderFilters(payment_method=PaymentMethod.BKASH.value))
        assert _ids(page) == [cap.id]

    def test_filter_by_status(self, store, placed_orders):
        _, first, _ = placed_orders
        dispatch(ChangeOrderStatus(order_id=first.id, status="PROCESSING"))

        page = management.list_orders(store, OrderFilters(status=OrderStatus.PROCESSING.value))

        assert _ids(page) == [first.id]
        assert page.items[0].status == OrderStatus.PROCESSING.value

    def test_filter_by_product_or_variant(self, store, placed_orders):
        cap, first, second = placed_orders

        assert _ids(management.list_orders(store, OrderFilters(product_id="prod-mug"))) == [first.id]
        assert _ids(management.list_orders(store, OrderFilters(product_id="var-tee-xl"))) == [second.id]

    def test_filter_by_creation_window(self, store, placed_orders):
        _, first, _ = placed_orders
        filters = OrderFilters(
            created_from=BASE + timedelta(minutes=30),
            created_to=BASE + timedelta(minutes=90),
        )

        page = management.list_orders(store, filters)

        assert _ids(page) == [first.id]
        assert page.total == 1

    def test_creation_window_without_offset_is_utc(self, store, placed_orders):
        _, first, _ = placed_orders
        filters = OrderFilters(created_from=datetime(2024, 5, 1, 8, 30), created_to=datetime(2024, 5, 1, 9, 30))

        assert _ids(management.list_orders(store, filters)) == [first.id]

    def test_filters_combine(self, store, placed_orders):
        filters = OrderFilters(customer_id="cust-001", product_id="prod-cap")
        assert management.list_orders(store, filters).total == 0

    @pytest.mark.parametrize(
        "page, field",
        [
            (PageRequest(page=0), "page"),
            (PageRequest(limit=0), "limit"),
            (PageRequest(limit=101), "limit"),
            (PageRequest(sort="customer_id"), "sort"),
            (PageRequest(direction="sideways"), "direction"),
        ],
    )
    def test_invalid_page_request(self, store, page, field):
        with pytest.raises(ValidationError) as exc_info:
            management.list_orders(store, page=page)
        assert field in exc_info.value.details

    @pytest.mark.parametrize(
        "filters, field",
        [(OrderFilters(status="SHIPPED"), "status"), (OrderFilters(payment_method="CHEQUE"), "payment_method")],
    )
    def test_unknown_filter_values(self, store, filters, field):
        with pytest.raises(ValidationError) as exc_info:
            management.list_orders(store, filters)
        assert field in exc_info.value.details

    def test_inverted_creation_window(self, store):
        filters = OrderFilters(created_from=BASE, created_to=BASE - timedelta(days=1))
        with pytest.raises(ValidationError):
            management.list_orders(store, filters)


class TestDocumentListing:
    def test_total_counts_every_match_beyond_scan_limit(self, catalog, checkout):
        store = DocumentOrderStore(scan_limit=2)
        set_store(store)
        for hour in range(3):
            checkout(customer_id=f"c{hour}", placed_at=BASE + timedelta(hours=hour))

        page = management.list_orders(store, OrderFilters(created_from=BASE - timedelta(hours=1)))

        assert page.total == 3
        assert [order.customer_id for order in page.items] == ["c2", "c1", "c0"]

    def test_sorts_in_memory_when_provider_cannot_order(self, document_store, checkout, monkeypatch):
        set_store(document_store)
        for hour in range(3):
            checkout(customer_id=f"c{hour}", placed_at=BASE + timedelta(hours=hour))

        order_by = QuerySet.order_by

        def unsupported_order_by(self, fields):
            if self._entity_cls is Order:
                raise DatabaseError("sort index unavailable")
            return order_by(self, fields)

        monkeypatch.setattr(QuerySet, "order_by", unsupported_order_by)

        page = management.list_orders(document_store)

        assert [order.customer_id for order in page.items] == ["c2", "c1", "c0"]
        assert page.total == 3

    def test_fallback_applies_filters_and_paging(self, document_store, checkout, monkeypatch):
        set_store(document_store)
        for hour in range(4):
            checkout(customer_id=f"c{hour}", placed_at=BASE + timedelta(hours=hour))

        def unsupported_order_by(self, fields):
            raise DatabaseError("sort index unavailable")

        monkeypatch.setattr(QuerySet, "order_by", unsupported_order_by)

        filters = OrderFilters(created_from=BASE + timedelta(minutes=30))
        page = management.list_orders(document_store, filters, PageRequest(page=2, limit=2, direction="asc"))

        assert [order.customer_id for order in page.items] == ["c3"]
        assert page.total == 3


# ---------------------------------------------------------------
# Status changes
# ---------------------------------------------------------------
class TestStatusChanges:
    def test_full_lifecycle(self, store, checkout):
        order = checkout()

        for status in ("PROCESSING", "DISPATCHED", "DELIVERED"):
            assert _change_status(store, order.id, status).status == status

        assert store.get_order(order.id).status == OrderStatus.DELIVERED.value

    def test_cancel_pending_order(self, store, checkout):
        order = checkout()
        assert _change_status(store, order.id, OrderStatus.CANCELLED.value).status == OrderStatus.CANCELLED.value

    def test_status_change_touches_updated_at(self, store, checkout):
        order = checkout(placed_at=BASE)
        updated = _change_status(store, order.id, "PROCESSING")
        assert updated.updated_at > updated.created_at

    def test_illegal_transition(self, store, checkout):
        order = checkout()

        with pytest.raises(IllegalStatusTransition):
            dispatch(ChangeOrderStatus(order_id=order.id, status="DELIVERED"))

        assert store.get_order(order.id).status == OrderStatus.PENDING.value

    def test_terminal_order_cannot_move(self, store, checkout):
        order = checkout()
        dispatch(ChangeOrderStatus(order_id=order.id, status="CANCELLED"))

        with pytest.raises(IllegalStatusTransition):
            dispatch(ChangeOrderStatus(order_id=order.id, status="PROCESSING"))

    def test_unknown_status(self):
        with pytest.raises(DomainValidationError) as exc_info:
            ChangeOrderStatus(order_id="ord-1", status="SHIPPED")
        assert "status" in exc_info.value.messages

    def test_unknown_order(self, store):
        with pytest.raises(OrderNotFound):
            dispatch(ChangeOrderStatus(order_id="ord-missing", status="PROCESSING"))

    def test_stale_expected_status_conflicts(self, store, checkout):
        order = checkout()
        stale = store.get_order(order.id)
        dispatch(ChangeOrderStatus(order_id=order.id, status="PROCESSING"))

        stale.change_status(OrderStatus.CANCELLED)
        with pytest.raises(ConcurrencyConflict):
            store.update_order_status(stale, OrderStatus.PENDING.value)

        assert store.get_order(order.id).status == OrderStatus.PROCESSING.value


# ---------------------------------------------------------------
# Address correction
# ---------------------------------------------------------------
class TestAddressCorrection:
    def test_shipping_change_on_shared_order_moves_billing_too(self, store, checkout):
        order = checkout()

        updated = _correct(store, order.id, shipping=NEW_ADDRESS)

        assert updated.shipping_address.city == "Sylhet"
        assert updated.billing_address.city == "Sylhet"
        assert updated.shipping_address.address_id == order.shipping_address.address_id

    def test_billing_change_on_shared_order_splits_addresses(self, store, checkout):
        order = checkout()

        updated = _correct(store, order.id, billing=NEW_ADDRESS)

        assert updated.billing_address.city == "Sylhet"
        assert updated.shipping_address.city == "Dhaka"
        assert updated.billing_address.address_id != updated.shipping_address.address_id

    def test_distinct_billing_updated_in_place(self, store, checkout, billing_address):
        order = checkout(billing_address=billing_address)

        updated = _correct(store, order.id, billing=NEW_ADDRESS)

        assert updated.billing_address.city == "Sylhet"
        assert updated.billing_address.address_id == order.billing_address.address_id
        assert updated.shipping_address.city == "Dhaka"

    def test_both_addresses_at_once(self, store, checkout, billing_address):
        order = checkout()

        updated = _correct(store, order.id, shipping=NEW_ADDRESS, billing=billing_address)

        assert updated.shipping_address.city == "Sylhet"
        assert updated.billing_address.city == "Chattogram"

    def test_allowed_while_processing(self, store, checkout):
        order = checkout()
        dispatch(ChangeOrderStatus(order_id=order.id, status="PROCESSING"))

        assert _correct(store, order.id, shipping=NEW_ADDRESS).shipping_address.city == "Sylhet"

    def test_refused_once_dispatched(self, store, checkout):
        order = checkout()
        dispatch(ChangeOrderStatus(order_id=order.id, status="PROCESSING"))
        dispatch(ChangeOrderStatus(order_id=order.id, status="DISPATCHED"))

        with pytest.raises(BusinessRuleViolation):
            _correct(store, order.id, shipping=NEW_ADDRESS)

    def test_nothing_to_update(self, store, checkout):
        order = checkout()
        with pytest.raises(ValidationError):
            dispatch(CorrectOrderAddresses(order_id=order.id))

    def test_unknown_order(self, store):
        with pytest.raises(OrderNotFound):
            _correct(store, "ord-missing", shipping=NEW_ADDRESS)


# ---------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------
class TestDeleteOrder:
    def test_delete_removes_order(self, store, checkout):
        order = checkout()

        dispatch(DeleteOrder(order_id=order.id))

        with pytest.raises(OrderNotFound):
            management.get_order_by_id(store, order.id)
        assert management.list_orders(store).total == 0

    def test_delete_cascades_to_items_and_addresses(self, relational_store, checkout, billing_address):
        set_store(relational_store)
        order = checkout(billing_address=billing_address)

        dispatch(DeleteOrder(order_id=order.id))

        with relational_store.session_factory() as session:
            assert session.scalar(select(func.count()).select_from(OrderItemRow)) == 0
            assert session.scalar(select(func.count()).select_from(AddressRow)) == 0

    def test_delete_removes_document_items(self, document_store, checkout):
        set_store(document_store)
        order = checkout()

        dispatch(DeleteOrder(order_id=order.id))

        assert current_domain.repository_for(OrderItem)._dao.query.all().total == 0

    def test_invoiced_order_cannot_be_deleted(self, store, checkout):
        order = checkout()
        dispatch(PrintInvoice(order_id=order.id))

        with pytest.raises(BusinessRuleViolation):
            dispatch(DeleteOrder(order_id=order.id))

        assert store.get_order(order.id).id == order.id

    def test_unknown_order(self, store):
        with pytest.raises(OrderNotFound):
            dispatch(DeleteOrder(order_id="ord-missing"))
