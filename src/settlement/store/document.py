"""Document order store: Protean repositories and Units of Work.

The domain's aggregates are persisted as they are. Each write runs inside
one ``UnitOfWork``: the coupon redemption, the order and its items are
committed together or not at all. When a command handler is already running
a Unit of Work, the store's writes join it and commit with the handler.

Writers are serialized by a lock so that the coupon and invoice counters
advance one at a time. The lock lives in this process: the counters are only
guaranteed for a single process writing to the document database. Deployments
with several workers use the relational store, whose conditional updates
hold across processes. A version conflict raised by the provider surfaces as
``ConcurrencyConflict``.
"""

import threading
from contextlib import contextmanager
from datetime import date

import structlog
from protean.core.unit_of_work import UnitOfWork
from protean.exceptions import DatabaseError, ExpectedVersionError, NotSupportedError, ObjectNotFoundError
from protean.exceptions import ValidationError as DomainValidationError

from settlement.coupon.coupon import Coupon, CouponStatus
from settlement.domain import settlement
from settlement.exceptions import (
    BusinessRuleViolation,
    ConcurrencyConflict,
    CouponNotFound,
    InvoiceNotFound,
    OrderNotFound,
    StoreTimeout,
    ValidationError,
)
from settlement.invoice.invoice import Invoice, InvoiceSequence
from settlement.order.order import Order, OrderItem
from settlement.store.port import NO_DEADLINE, Deadline, OrderFilters, OrderStore, Page, PageRequest
from settlement.utils.clock import as_utc

logger = structlog.get_logger(__name__)

# Fields an administrator may change; ``used`` only moves through redemption.
_COUPON_ADMIN_FIELDS = (
    "code",
    "description",
    "type",
    "amount",
    "minimum",
    "maximum",
    "limit",
    "start",
    "end",
    "expiry",
    "status",
    "creator_id",
    "eligible_customer_ids",
    "updated_at",
)


class DocumentOrderStore(OrderStore):
    def __init__(self, domain=settlement, scan_limit: int = 10_000):
        self.domain = domain
        # Upper bound on orders sorted in memory when the provider cannot sort
        self.scan_limit = scan_limit
        self._lock = threading.RLock()

    # -------------------------------------------------------------------
    # Units of work
    # -------------------------------------------------------------------
    @contextmanager
    def _context(self, operation: str):
        with self.domain.domain_context():
            try:
                yield
            except ExpectedVersionError as exc:
                logger.warning("store.version_conflict", operation=operation, error=str(exc))
                raise ConcurrencyConflict(f"{operation} lost a concurrent update", operation=operation) from exc
            except DomainValidationError as exc:
                raise ValidationError.from_messages(f"{operation} was given an invalid record", exc.messages) from exc

    @contextmanager
    def exclusive(self, operation: str, deadline: Deadline = NO_DEADLINE):
        remaining = deadline.remaining()
        if not self._lock.acquire(timeout=-1 if remaining is None else remaining):
            logger.warning("store.lock_timeout", operation=operation)
            raise StoreTimeout(f"Timed out waiting for the store during {operation}", operation=operation)
        try:
            yield
        finally:
            self._lock.release()

    @contextmanager
    def _atomic(self, operation: str, deadline: Deadline = NO_DEADLINE):
        with self._context(operation), self.exclusive(operation, deadline):
            with UnitOfWork():
                yield
                deadline.check(operation)

    def _repository(self, aggregate_cls):
        return self.domain.repository_for(aggregate_cls)

    # -------------------------------------------------------------------
    # Coupons
    # -------------------------------------------------------------------
    def add_coupon(self, coupon: Coupon) -> None:
        with self._atomic("add_coupon"):
            if self._coupons_by_code(coupon.code):
                raise ValidationError("Coupon code already exists", code=coupon.code)
            self._repository(Coupon).add(coupon)

    def update_coupon(self, coupon: Coupon) -> None:
        with self._atomic("update_coupon"):
            stored = self._get_coupon(coupon.id)
            if any(other.id != coupon.id for other in self._coupons_by_code(coupon.code)):
                raise ValidationError("Coupon code already exists", code=coupon.code)
            for field_name in _COUPON_ADMIN_FIELDS:
                setattr(stored, field_name, getattr(coupon, field_name))
            self._repository(Coupon).add(stored)

    def delete_coupon(self, coupon_id: str, deadline: Deadline = NO_DEADLINE) -> None:
        with self._atomic("delete_coupon", deadline):
            coupon = self._get_coupon(coupon_id)
            if self._repository(Order)._dao.query.filter(coupon_id=coupon_id).limit(1).all().total:
                raise BusinessRuleViolation("Coupons used by orders cannot be deleted", coupon_id=coupon_id)
            self._repository(Coupon)._dao.delete(coupon)

    def get_coupon(self, coupon_id: str) -> Coupon:
        with self._context("get_coupon"):
            return self._get_coupon(coupon_id)

    def list_coupons(self, page: PageRequest) -> Page:
        with self._context("list_coupons"):
            result = (
                self._repository(Coupon)
                ._dao.query.order_by(["-created_at", "id"])
                .offset(page.offset)
                .limit(page.limit)
                .all()
            )
        return Page(items=tuple(result.items), total=result.total, page=page.page, limit=page.limit)

    def find_active_coupon(self, code: str) -> Coupon | None:
        with self._context("find_active_coupon"):
            for coupon in self._coupons_by_code(code):
                if coupon.status == CouponStatus.ACTIVE.value:
                    return coupon
            return None

    def _coupons_by_code(self, code: str) -> list:
        return self._repository(Coupon)._dao.query.filter(code=code).limit(None).all().items

    def _get_coupon(self, coupon_id: str) -> Coupon:
        try:
            return self._repository(Coupon).get(coupon_id)
        except ObjectNotFoundError as exc:
            raise CouponNotFound("Coupon not found", coupon_id=coupon_id) from exc

    def _redeem_coupon(self, coupon_id: str, now) -> None:
        coupon = self._get_coupon(coupon_id)
        coupon.redeem(now)
        self._repository(Coupon).add(coupon)

    # -------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------
    def create_order(self, order: Order, deadline: Deadline = NO_DEADLINE) -> None:
        with self._atomic("create_order", deadline):
            if order.coupon_id:
                self._redeem_coupon(order.coupon_id, order.created_at)
                deadline.check("create_order")
            self._repository(Order).add(order)
        logger.info("order.persisted", order_id=order.id, items=len(order.items), coupon_id=order.coupon_id)

    def get_order(self, order_id: str) -> Order:
        with self._context("get_order"):
            return self._loaded(self._get_order(order_id))

    def list_orders(self, filters: OrderFilters, page: PageRequest) -> Page:
        criteria = self._criteria(filters)
        ordering = f"-{page.sort}" if page.descending else page.sort

        with self._context("list_orders"):
            query = self._repository(Order)._dao.query
            if criteria:
                query = query.filter(**criteria)

            try:
                result = query.order_by([ordering, "id"]).offset(page.offset).limit(page.limit).all()
                orders = result.items
            except (DatabaseError, NotSupportedError) as exc:
                logger.warning("orders.index_unavailable", sort=ordering, criteria=sorted(criteria), error=str(exc))
                result = query.limit(self.scan_limit).all()
                orders = sorted(result.items, key=lambda order: order.id)
                orders.sort(key=lambda order: getattr(order, page.sort), reverse=page.descending)
                orders = orders[page.offset : page.offset + page.limit]

            items = tuple(self._loaded(order) for order in orders)
        return Page(items=items, total=result.total, page=page.page, limit=page.limit)

    @staticmethod
    def _criteria(filters: OrderFilters) -> dict:
        criteria = {}
        if filters.status is not None:
            criteria["status"] = filters.status
        if filters.customer_id:
            criteria["customer_id"] = filters.customer_id
        if filters.payment_method is not None:
            criteria["payment_method"] = filters.payment_method
        if filters.created_from is not None:
            criteria["created_at__gte"] = as_utc(filters.created_from)
        if filters.created_to is not None:
            criteria["created_at__lte"] = as_utc(filters.created_to)
        if filters.product_id:
            criteria["product_refs__any"] = [filters.product_id]
        return criteria

    def update_order_status(self, order: Order, expected: str, deadline: Deadline = NO_DEADLINE) -> None:
        with self._atomic("update_order_status", deadline):
            stored = self._get_order(order.id)
            if stored.status != expected:
                raise ConcurrencyConflict(
                    "Order status changed concurrently",
                    order_id=order.id,
                    expected=expected,
                )
            self._repository(Order).add(order)

    def update_order_addresses(self, order: Order, deadline: Deadline = NO_DEADLINE) -> None:
        with self._atomic("update_order_addresses", deadline):
            self._get_order(order.id)
            self._repository(Order).add(order)

    def delete_order(self, order_id: str, deadline: Deadline = NO_DEADLINE) -> None:
        with self._atomic("delete_order", deadline):
            order = self._get_order(order_id)
            if self._repository(Invoice)._dao.query.filter(order_id=order_id).limit(1).all().total:
                raise BusinessRuleViolation("Invoiced orders cannot be deleted", order_id=order_id)

            items = list(order.items)
            self._repository(Order)._dao.delete(order)
            for item in items:
                self._repository(OrderItem)._dao.delete(item)

    def _get_order(self, order_id: str) -> Order:
        try:
            return self._repository(Order).get(order_id)
        except ObjectNotFoundError as exc:
            raise OrderNotFound("Order not found", order_id=order_id) from exc

    @staticmethod
    def _loaded(order: Order) -> Order:
        # Items load lazily; fetch them while the domain context is active
        order.items
        return order

    # -------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------
    def allocate_invoice_sequence(self, day: date, deadline: Deadline = NO_DEADLINE) -> int:
        key = day.strftime("%Y%m%d")
        with self._atomic("allocate_invoice_sequence", deadline):
            repo = self._repository(InvoiceSequence)
            try:
                sequence = repo.get(key)
            except ObjectNotFoundError:
                sequence = InvoiceSequence(day=key, value=0)
            value = sequence.advance()
            repo.add(sequence)
        return value

    def add_invoice(self, invoice: Invoice, deadline: Deadline = NO_DEADLINE) -> None:
        with self._atomic("add_invoice", deadline):
            self._repository(Invoice).add(invoice)

    def get_invoice(self, invoice_id: str) -> Invoice:
        with self._context("get_invoice"):
            try:
                return self._repository(Invoice).get(invoice_id)
            except ObjectNotFoundError as exc:
                raise InvoiceNotFound("Invoice not found", invoice_id=invoice_id) from exc

    def list_invoices(self, order_id: str) -> list[Invoice]:
        with self._context("list_invoices"):
            return (
                self._repository(Invoice)
                ._dao.query.filter(order_id=order_id)
                .order_by(["-created_at", "-invoice_number"])
                .limit(None)
                .all()
                .items
            )
