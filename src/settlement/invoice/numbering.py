"""Invoice numbers: ``INV-YYYYMMDD-NNNN``, sequenced per UTC calendar day."""

from datetime import date, datetime

from settlement.store.port import NO_DEADLINE, Deadline, OrderStore
from settlement.utils.clock import as_utc, utc_now

PREFIX = "INV"


def format_invoice_number(day: date, sequence: int) -> str:
    # Past 9999 the sequence widens instead of wrapping
    return f"{PREFIX}-{day:%Y%m%d}-{sequence:04d}"


def next_invoice_number(store: OrderStore, now: datetime | None = None, deadline: Deadline = NO_DEADLINE) -> str:
    day = (as_utc(now) or utc_now()).date()
    return format_invoice_number(day, store.allocate_invoice_sequence(day, deadline))
