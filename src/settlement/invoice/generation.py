"""Invoice printing: PrintInvoice command and handler, and invoice reads."""

import structlog
from protean import handle
from protean.fields import DateTime, Float, Identifier, String

from settlement.domain import settlement
from settlement.invoice.invoice import Invoice, InvoiceType
from settlement.invoice.numbering import next_invoice_number
from settlement.store import deadline_for, get_store
from settlement.store.port import OrderStore
from settlement.utils.clock import as_utc, utc_now

logger = structlog.get_logger(__name__)


@settlement.command(part_of="Invoice")
class PrintInvoice:
    order_id = Identifier(required=True)
    type = String(choices=InvoiceType, default=InvoiceType.CUSTOMER.value)
    printed_by = String(max_length=255)
    printed_at = DateTime()
    timeout = Float(min_value=0)


@settlement.command_handler(part_of=Invoice)
class PrintInvoiceHandler:
    @handle(PrintInvoice)
    def print_invoice(self, command):
        """Mint a new invoice for an existing order.

        The order is looked up first, so a missing order never consumes a
        number from the day's sequence.
        """
        store = get_store()
        store.get_order(command.order_id)

        now = as_utc(command.printed_at) or utc_now()
        deadline = deadline_for(command.timeout)
        invoice = Invoice(
            order_id=command.order_id,
            invoice_number=next_invoice_number(store, now=now, deadline=deadline),
            type=command.type or InvoiceType.CUSTOMER.value,
            printed_at=now,
            printed_by=command.printed_by,
            created_at=now,
        )
        store.add_invoice(invoice, deadline)

        logger.info(
            "invoice.created",
            invoice_id=invoice.id,
            order_id=invoice.order_id,
            invoice_number=invoice.invoice_number,
            type=invoice.type,
        )
        return str(invoice.id)


def get_invoice(store: OrderStore, invoice_id: str) -> Invoice:
    return store.get_invoice(invoice_id)


def list_invoices(store: OrderStore, order_id: str) -> list[Invoice]:
    """Invoices printed for *order_id*, newest first. Raises ``OrderNotFound`` for unknown orders."""
    store.get_order(order_id)
    return store.list_invoices(order_id)
