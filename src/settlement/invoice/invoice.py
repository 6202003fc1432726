"""Invoice aggregate: a printed copy of an order, plus the per-day number sequence.

An order may have several invoices (an ADMIN and a CUSTOMER copy, reprints).
Invoices are created on demand and never mutated or deleted.
"""

from enum import Enum

from protean.fields import DateTime, Identifier, Integer, String

from settlement.domain import settlement


class InvoiceType(Enum):
    ADMIN = "ADMIN"
    CUSTOMER = "CUSTOMER"


@settlement.aggregate
class Invoice:
    order_id = Identifier(required=True)
    invoice_number = String(required=True, max_length=32)
    type = String(choices=InvoiceType, required=True)
    printed_by = String(max_length=255)
    printed_at = DateTime(required=True)
    created_at = DateTime()


@settlement.aggregate
class InvoiceSequence:
    """Last invoice sequence number handed out on one UTC calendar day (``YYYYMMDD``)."""

    day = String(identifier=True, max_length=8)
    value = Integer(min_value=0, default=0)

    def advance(self) -> int:
        self.value = (self.value or 0) + 1
        return self.value
