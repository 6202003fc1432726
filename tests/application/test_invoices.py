"""Application tests for invoice generation and lookup."""

from datetime import UTC, datetime, timedelta

import pytest
from protean.exceptions import ValidationError as DomainValidationError
from settlement.dispatch import dispatch
from settlement.exceptions import InvoiceNotFound, OrderNotFound
from settlement.invoice import generation
from settlement.invoice.generation import PrintInvoice
from settlement.invoice.invoice import InvoiceType

NOW = datetime(2024, 3, 7, 10, 0, tzinfo=UTC)


@pytest.fixture()
def order(checkout):
    return checkout()


def _print(store, order_id, **attributes):
    attributes.setdefault("printed_at", NOW)
    return generation.get_invoice(store, dispatch(PrintInvoice(order_id=order_id, **attributes)))


class TestPrintInvoice:
    def test_first_invoice_of_the_day(self, store, order):
        invoice = _print(store, order.id, printed_by="clerk-1")

        assert invoice.invoice_number == "INV-20240307-0001"
        assert invoice.order_id == order.id
        assert invoice.type == InvoiceType.CUSTOMER.value
        assert invoice.printed_by == "clerk-1"
        assert invoice.printed_at == NOW

    def test_numbers_advance_across_orders(self, store, order, checkout):
        other = checkout(customer_id="cust-002")

        numbers = [
            _print(store, order.id).invoice_number,
            _print(store, other.id).invoice_number,
            _print(store, order.id, type="ADMIN").invoice_number,
        ]

        assert numbers == ["INV-20240307-0001", "INV-20240307-0002", "INV-20240307-0003"]

    def test_sequence_restarts_next_day(self, store, order):
        _print(store, order.id)
        invoice = _print(store, order.id, printed_at=NOW + timedelta(days=1))
        assert invoice.invoice_number == "INV-20240308-0001"

    def test_print_time_without_offset_is_utc(self, store, order):
        invoice = _print(store, order.id, printed_at=datetime(2024, 3, 7, 23, 30))

        assert invoice.invoice_number == "INV-20240307-0001"
        assert invoice.printed_at == datetime(2024, 3, 7, 23, 30, tzinfo=UTC)

    def test_admin_copy(self, store, order):
        invoice = _print(store, order.id, type=InvoiceType.ADMIN.value)
        assert invoice.type == InvoiceType.ADMIN.value

    def test_unknown_type(self, order):
        with pytest.raises(DomainValidationError) as exc_info:
            PrintInvoice(order_id=order.id, type="DRAFT")
        assert "type" in exc_info.value.messages

    def test_unknown_order_consumes_no_number(self, store, order):
        with pytest.raises(OrderNotFound):
            dispatch(PrintInvoice(order_id="ord-missing", printed_at=NOW))

        assert _print(store, order.id).invoice_number == "INV-20240307-0001"


class TestInvoiceLookup:
    def test_get_invoice(self, store, order):
        invoice = _print(store, order.id)
        assert generation.get_invoice(store, invoice.id).invoice_number == invoice.invoice_number

    def test_unknown_invoice(self, store):
        with pytest.raises(InvoiceNotFound):
            generation.get_invoice(store, "inv-missing")

    def test_list_newest_first(self, store, order):
        first = _print(store, order.id)
        second = _print(store, order.id, type="ADMIN", printed_at=NOW + timedelta(minutes=5))

        assert [invoice.id for invoice in generation.list_invoices(store, order.id)] == [second.id, first.id]

    def test_list_for_order_without_invoices(self, store, order):
        assert generation.list_invoices(store, order.id) == []

    def test_list_for_unknown_order(self, store):
        with pytest.raises(OrderNotFound):
            generation.list_invoices(store, "ord-missing")
