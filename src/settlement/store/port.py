"""Order store port (abstract interface).

Defines the contract both persistence backends implement:

- ``RelationalOrderStore``: every write is one database transaction.
- ``DocumentOrderStore``: every write is one Protean Unit of Work over the
  domain's aggregates.

Pricing is never computed here. Stores persist the aggregates they are
given, and own only the two shared counters that must be advanced
atomically: coupon redemptions and the per-day invoice sequence.
"""

import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime

from settlement.exceptions import StoreTimeout


@dataclass(frozen=True)
class Deadline:
    """A caller-supplied time budget for one store operation.

    ``check()`` is called between the steps of an atomic unit; once the
    budget is spent it raises ``StoreTimeout`` inside the unit, which is then
    rolled back.
    """

    expires_at: float | None = None

    @classmethod
    def after(cls, seconds: float | None) -> "Deadline":
        if seconds is None:
            return cls()
        return cls(expires_at=time.monotonic() + seconds)

    def remaining(self) -> float | None:
        if self.expires_at is None:
            return None
        return max(self.expires_at - time.monotonic(), 0.0)

    def check(self, operation: str) -> None:
        if self.expires_at is not None and time.monotonic() >= self.expires_at:
            raise StoreTimeout(f"Timed out during {operation}", operation=operation)


NO_DEADLINE = Deadline()


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------
SORTABLE_FIELDS = ("created_at", "updated_at", "net_total", "total", "status")


@dataclass(frozen=True)
class OrderFilters:
    status: str | None = None
    customer_id: str | None = None
    payment_method: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    product_id: str | None = None  # matches either a product or a variant reference


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    limit: int = 10
    sort: str = "created_at"
    direction: str = "desc"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def descending(self) -> bool:
        return self.direction.lower() == "desc"


@dataclass(frozen=True)
class Page:
    items: tuple
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0

    @property
    def has_next_page(self) -> bool:
        return self.page * self.limit < self.total

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1


class OrderStore(ABC):
    """Abstract order store interface."""

    @contextmanager
    def exclusive(self, operation: str, deadline: Deadline = NO_DEADLINE):
        """Serialize a whole command against other writers of this store.

        Stores whose database already serializes conflicting writes need
        nothing here.
        """
        yield

    # -------------------------------------------------------------------
    # Coupons
    # -------------------------------------------------------------------
    @abstractmethod
    def add_coupon(self, coupon) -> None:
        """Persist a new coupon. Codes are unique."""
        ...

    @abstractmethod
    def update_coupon(self, coupon) -> None:
        """Persist administrative changes. Never changes ``used``."""
        ...

    @abstractmethod
    def delete_coupon(self, coupon_id: str, deadline: Deadline = NO_DEADLINE) -> None:
        """Delete a coupon no order refers to; raises ``BusinessRuleViolation`` otherwise."""
        ...

    @abstractmethod
    def get_coupon(self, coupon_id: str):
        """Return the coupon or raise ``CouponNotFound``."""
        ...

    @abstractmethod
    def list_coupons(self, page: PageRequest) -> Page:
        """Coupons, newest first."""
        ...

    @abstractmethod
    def find_active_coupon(self, code: str):
        """Return the ACTIVE coupon with this (normalized) code, or None."""
        ...

    # -------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------
    @abstractmethod
    def create_order(self, order, deadline: Deadline = NO_DEADLINE) -> None:
        """Persist order, items and addresses, and redeem the order's coupon, atomically.

        Raises ``CouponLimitReached`` (or ``ConcurrencyConflict``) when the
        coupon was used up by a concurrent checkout; nothing is written then.
        """
        ...

    @abstractmethod
    def get_order(self, order_id: str):
        """Return the stored order with its items, or raise ``OrderNotFound``.

        Addresses are returned as stored; no billing fallback is applied.
        """
        ...

    @abstractmethod
    def list_orders(self, filters: OrderFilters, page: PageRequest) -> Page:
        ...

    @abstractmethod
    def update_order_status(self, order, expected: str, deadline: Deadline = NO_DEADLINE) -> None:
        """Persist ``order.status`` only if the stored order is still in *expected*.

        Raises ``ConcurrencyConflict`` when another update got there first.
        """
        ...

    @abstractmethod
    def update_order_addresses(self, order, deadline: Deadline = NO_DEADLINE) -> None:
        """Persist the order's corrected shipping and billing snapshots."""
        ...

    @abstractmethod
    def delete_order(self, order_id: str, deadline: Deadline = NO_DEADLINE) -> None:
        """Delete an order together with its items and addresses."""
        ...

    # -------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------
    @abstractmethod
    def allocate_invoice_sequence(self, day: date, deadline: Deadline = NO_DEADLINE) -> int:
        """Atomically advance and return the invoice counter for *day* (1, 2, ...)."""
        ...

    @abstractmethod
    def add_invoice(self, invoice, deadline: Deadline = NO_DEADLINE) -> None:
        ...

    @abstractmethod
    def get_invoice(self, invoice_id: str):
        """Return the invoice or raise ``InvoiceNotFound``."""
        ...

    @abstractmethod
    def list_invoices(self, order_id: str) -> list:
        """Invoices printed for an order, newest first."""
        ...
