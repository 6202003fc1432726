"""Relational order store: SQLAlchemy over SQLite or PostgreSQL.

Every write runs in one database transaction. Coupon redemption is a single
conditional ``UPDATE`` that only succeeds while the coupon is active and its
usage cap has room, and the daily invoice counter is advanced with an upsert,
so neither needs an explicit lock. Both hold across processes sharing the
database.

Rows are mapped to and from the domain aggregates at this boundary.
"""

from contextlib import contextmanager
from datetime import date, datetime

import structlog
from sqlalchemy import create_engine, func, or_, select, text, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload, sessionmaker
from sqlalchemy.pool import StaticPool

from settlement.coupon.coupon import Coupon, CouponStatus
from settlement.exceptions import (
    BusinessRuleViolation,
    ConcurrencyConflict,
    CouponLimitReached,
    CouponNotFound,
    InvoiceNotFound,
    OrderNotFound,
    PersistenceFailure,
    SettlementError,
    ValidationError,
)
from settlement.invoice.invoice import Invoice
from settlement.order.order import Address, Order, OrderItem, OrderTransaction
from settlement.store.port import NO_DEADLINE, Deadline, OrderFilters, OrderStore, Page, PageRequest
from settlement.store.tables import (
    AddressRow,
    Base,
    CouponRow,
    InvoiceRow,
    InvoiceSequenceRow,
    OrderItemRow,
    OrderRow,
)
from settlement.utils.clock import as_utc, utc_now

logger = structlog.get_logger(__name__)


class RelationalOrderStore(OrderStore):
    def __init__(self, engine):
        self.engine = engine
        self.session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str, **engine_kwargs) -> "RelationalOrderStore":
        if url.startswith("sqlite"):
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
            if url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs.setdefault("poolclass", StaticPool)
        return cls(create_engine(url, **engine_kwargs))

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def drop_schema(self) -> None:
        Base.metadata.drop_all(self.engine)

    # -------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------
    @contextmanager
    def _transaction(self, operation: str, deadline: Deadline = NO_DEADLINE):
        session = self.session_factory()
        try:
            with session.begin():
                self._apply_statement_timeout(session, deadline)
                yield session
                deadline.check(operation)
        except SettlementError:
            raise
        except SQLAlchemyError as exc:
            logger.error("store.transaction_failed", operation=operation, error=str(exc))
            raise PersistenceFailure(f"{operation} failed", operation=operation) from exc
        finally:
            session.close()

    @contextmanager
    def _reading(self, operation: str):
        session = self.session_factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            logger.error("store.read_failed", operation=operation, error=str(exc))
            raise PersistenceFailure(f"{operation} failed", operation=operation) from exc
        finally:
            session.close()

    def _apply_statement_timeout(self, session, deadline: Deadline) -> None:
        remaining = deadline.remaining()
        if remaining is None or self.engine.dialect.name != "postgresql":
            return
        session.execute(text(f"SET LOCAL statement_timeout = {max(int(remaining * 1000), 1)}"))

    # -------------------------------------------------------------------
    # Coupons
    # -------------------------------------------------------------------
    def add_coupon(self, coupon: Coupon) -> None:
        with self._transaction("add_coupon") as session:
            if session.scalar(select(CouponRow.id).where(CouponRow.code == coupon.code)) is not None:
                raise ValidationError("Coupon code already exists", code=coupon.code)
            session.add(self._coupon_row(CouponRow(), coupon, include_usage=True))

    def update_coupon(self, coupon: Coupon) -> None:
        with self._transaction("update_coupon") as session:
            row = session.get(CouponRow, coupon.id)
            if row is None:
                raise CouponNotFound("Coupon not found", coupon_id=coupon.id)
            clash = session.scalar(select(CouponRow.id).where(CouponRow.code == coupon.code, CouponRow.id != coupon.id))
            if clash is not None:
                raise ValidationError("Coupon code already exists", code=coupon.code)
            self._coupon_row(row, coupon, include_usage=False)

    def delete_coupon(self, coupon_id: str, deadline: Deadline = NO_DEADLINE) -> None:
        with self._transaction("delete_coupon", deadline) as session:
            row = session.get(CouponRow, coupon_id)
            if row is None:
                raise CouponNotFound("Coupon not found", coupon_id=coupon_id)
            if session.scalar(select(OrderRow.id).where(OrderRow.coupon_id == coupon_id).limit(1)) is not None:
                raise BusinessRuleViolation("Coupons used by orders cannot be deleted", coupon_id=coupon_id)
            session.delete(row)

    def get_coupon(self, coupon_id: str) -> Coupon:
        with self._reading("get_coupon") as session:
            row = session.get(CouponRow, coupon_id)
            if row is None:
                raise CouponNotFound("Coupon not found", coupon_id=coupon_id)
            return self._to_coupon(row)

    def list_coupons(self, page: PageRequest) -> Page:
        with self._reading("list_coupons") as session:
            total = session.scalar(select(func.count()).select_from(CouponRow))
            rows = session.scalars(
                select(CouponRow)
                .order_by(CouponRow.created_at.desc(), CouponRow.id)
                .offset(page.offset)
                .limit(page.limit)
            ).all()
            items = tuple(self._to_coupon(row) for row in rows)
        return Page(items=items, total=total or 0, page=page.page, limit=page.limit)

    def find_active_coupon(self, code: str) -> Coupon | None:
        with self._reading("find_active_coupon") as session:
            row = session.scalar(
                select(CouponRow).where(CouponRow.code == code, CouponRow.status == CouponStatus.ACTIVE.value)
            )
            return self._to_coupon(row) if row is not None else None

    def _redeem_coupon(self, session, coupon_id: str, now: datetime) -> None:
        result = session.execute(
            update(CouponRow)
            .where(
                CouponRow.id == coupon_id,
                CouponRow.status == CouponStatus.ACTIVE.value,
                or_(CouponRow.limit == 0, CouponRow.used < CouponRow.limit),
            )
            .values(used=CouponRow.used + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return

        # Nothing matched: the coupon is gone, no longer active, or used up
        status = session.scalar(select(CouponRow.status).where(CouponRow.id == coupon_id))
        if status != CouponStatus.ACTIVE.value:
            raise CouponNotFound("Coupon not found or inactive", coupon_id=coupon_id)
        raise CouponLimitReached("Coupon usage limit reached", coupon_id=coupon_id)

    # -------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------
    def create_order(self, order: Order, deadline: Deadline = NO_DEADLINE) -> None:
        with self._transaction("create_order", deadline) as session:
            if order.coupon_id:
                self._redeem_coupon(session, order.coupon_id, order.created_at)
                deadline.check("create_order")

            shipping = self._address_row(AddressRow(), order.shipping_address, order.customer_id)
            session.add(shipping)
            billing = shipping
            if order.billing_address is not None:
                billing = self._address_row(AddressRow(), order.billing_address, order.customer_id)
                session.add(billing)
            session.flush()
            deadline.check("create_order")

            session.add(self._order_row(order, shipping_id=shipping.id, billing_id=billing.id))
            session.flush()

        logger.info("order.persisted", order_id=order.id, items=len(order.items), coupon_id=order.coupon_id)

    def get_order(self, order_id: str) -> Order:
        with self._reading("get_order") as session:
            row = session.scalar(self._order_query().where(OrderRow.id == order_id))
            if row is None:
                raise OrderNotFound("Order not found", order_id=order_id)
            return self._to_order(row)

    def list_orders(self, filters: OrderFilters, page: PageRequest) -> Page:
        conditions = self._filter_conditions(filters)
        sort_column = getattr(OrderRow, page.sort)
        ordering = sort_column.desc() if page.descending else sort_column.asc()

        with self._reading("list_orders") as session:
            total = session.scalar(select(func.count()).select_from(OrderRow).where(*conditions))
            rows = session.scalars(
                self._order_query().where(*conditions).order_by(ordering, OrderRow.id).offset(page.offset).limit(page.limit)
            ).all()
            items = tuple(self._to_order(row) for row in rows)
        return Page(items=items, total=total or 0, page=page.page, limit=page.limit)

    def update_order_status(self, order: Order, expected: str, deadline: Deadline = NO_DEADLINE) -> None:
        with self._transaction("update_order_status", deadline) as session:
            result = session.execute(
                update(OrderRow)
                .where(OrderRow.id == order.id, OrderRow.status == expected)
                .values(status=order.status, updated_at=order.updated_at or utc_now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                if session.scalar(select(OrderRow.id).where(OrderRow.id == order.id)) is None:
                    raise OrderNotFound("Order not found", order_id=order.id)
                raise ConcurrencyConflict(
                    "Order status changed concurrently",
                    order_id=order.id,
                    expected=expected,
                )

    def update_order_addresses(self, order: Order, deadline: Deadline = NO_DEADLINE) -> None:
        with self._transaction("update_order_addresses", deadline) as session:
            row = session.get(OrderRow, order.id)
            if row is None:
                raise OrderNotFound("Order not found", order_id=order.id)

            shipping = self._upsert_address(session, order.shipping_address, row.customer_id)
            row.shipping_address_id = shipping.id
            if order.billing_address is None:
                row.billing_address_id = shipping.id
            else:
                row.billing_address_id = self._upsert_address(session, order.billing_address, row.customer_id).id

            row.updated_at = order.updated_at or utc_now()
            deadline.check("update_order_addresses")

    def delete_order(self, order_id: str, deadline: Deadline = NO_DEADLINE) -> None:
        with self._transaction("delete_order", deadline) as session:
            row = session.get(OrderRow, order_id)
            if row is None:
                raise OrderNotFound("Order not found", order_id=order_id)
            if session.scalar(select(InvoiceRow.id).where(InvoiceRow.order_id == order_id).limit(1)) is not None:
                raise BusinessRuleViolation("Invoiced orders cannot be deleted", order_id=order_id)

            address_ids = {row.shipping_address_id, row.billing_address_id} - {None}
            session.delete(row)
            session.flush()
            for address_id in address_ids:
                address = session.get(AddressRow, address_id)
                if address is not None:
                    session.delete(address)

    def _order_query(self):
        return select(OrderRow).options(
            selectinload(OrderRow.items),
            selectinload(OrderRow.shipping_address),
            selectinload(OrderRow.billing_address),
        )

    def _filter_conditions(self, filters: OrderFilters) -> list:
        conditions = []
        if filters.status is not None:
            conditions.append(OrderRow.status == filters.status)
        if filters.customer_id:
            conditions.append(OrderRow.customer_id == filters.customer_id)
        if filters.payment_method is not None:
            conditions.append(OrderRow.payment_method == filters.payment_method)
        if filters.created_from is not None:
            conditions.append(OrderRow.created_at >= as_utc(filters.created_from))
        if filters.created_to is not None:
            conditions.append(OrderRow.created_at <= as_utc(filters.created_to))
        if filters.product_id:
            conditions.append(
                select(OrderItemRow.id)
                .where(
                    OrderItemRow.order_id == OrderRow.id,
                    or_(OrderItemRow.product_id == filters.product_id, OrderItemRow.variant_id == filters.product_id),
                )
                .exists()
            )
        return conditions

    # -------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------
    def allocate_invoice_sequence(self, day: date, deadline: Deadline = NO_DEADLINE) -> int:
        key = day.strftime("%Y%m%d")
        with self._transaction("allocate_invoice_sequence", deadline) as session:
            dialect = self.engine.dialect.name
            if dialect in ("sqlite", "postgresql"):
                insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
                session.execute(
                    insert(InvoiceSequenceRow)
                    .values(day=key, value=1)
                    .on_conflict_do_update(index_elements=["day"], set_={"value": InvoiceSequenceRow.value + 1})
                )
            else:
                advanced = session.execute(
                    update(InvoiceSequenceRow)
                    .where(InvoiceSequenceRow.day == key)
                    .values(value=InvoiceSequenceRow.value + 1)
                    .execution_options(synchronize_session=False)
                ).rowcount
                if not advanced:
                    session.add(InvoiceSequenceRow(day=key, value=1))
                    session.flush()
            return session.scalar(select(InvoiceSequenceRow.value).where(InvoiceSequenceRow.day == key))

    def add_invoice(self, invoice: Invoice, deadline: Deadline = NO_DEADLINE) -> None:
        with self._transaction("add_invoice", deadline) as session:
            session.add(
                InvoiceRow(
                    id=invoice.id,
                    order_id=invoice.order_id,
                    invoice_number=invoice.invoice_number,
                    type=invoice.type,
                    printed_by=invoice.printed_by,
                    printed_at=invoice.printed_at,
                    created_at=invoice.created_at or invoice.printed_at,
                )
            )

    def get_invoice(self, invoice_id: str) -> Invoice:
        with self._reading("get_invoice") as session:
            row = session.get(InvoiceRow, invoice_id)
            if row is None:
                raise InvoiceNotFound("Invoice not found", invoice_id=invoice_id)
            return self._to_invoice(row)

    def list_invoices(self, order_id: str) -> list[Invoice]:
        with self._reading("list_invoices") as session:
            rows = session.scalars(
                select(InvoiceRow)
                .where(InvoiceRow.order_id == order_id)
                .order_by(InvoiceRow.created_at.desc(), InvoiceRow.invoice_number.desc())
            ).all()
            return [self._to_invoice(row) for row in rows]

    # -------------------------------------------------------------------
    # Row mapping
    # -------------------------------------------------------------------
    @staticmethod
    def _coupon_row(row: CouponRow, coupon: Coupon, include_usage: bool) -> CouponRow:
        row.id = coupon.id
        row.code = coupon.code
        row.description = coupon.description
        row.type = coupon.type
        row.amount = coupon.amount
        row.minimum = coupon.minimum
        row.maximum = coupon.maximum
        row.limit = coupon.limit
        row.start = coupon.start
        row.end = coupon.end
        row.expiry = coupon.expiry
        row.status = coupon.status
        row.creator_id = coupon.creator_id
        row.eligible_customer_ids = list(coupon.eligible_customer_ids or [])
        row.updated_at = coupon.updated_at or utc_now()
        if include_usage:
            row.used = coupon.used
            row.created_at = coupon.created_at or row.updated_at
        return row

    @staticmethod
    def _to_coupon(row: CouponRow) -> Coupon:
        return Coupon(
            id=row.id,
            code=row.code,
            type=row.type,
            amount=row.amount,
            start=as_utc(row.start),
            end=as_utc(row.end),
            expiry=as_utc(row.expiry),
            minimum=row.minimum,
            maximum=row.maximum,
            limit=row.limit,
            used=row.used,
            status=row.status,
            description=row.description,
            creator_id=row.creator_id,
            eligible_customer_ids=list(row.eligible_customer_ids or []),
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
        )

    def _upsert_address(self, session, address: Address, customer_id: str) -> AddressRow:
        row = session.get(AddressRow, address.address_id) if address.address_id else None
        if row is None:
            row = AddressRow()
            session.add(row)
        self._address_row(row, address, customer_id)
        session.flush()
        return row

    @staticmethod
    def _address_row(row: AddressRow, address: Address, customer_id: str) -> AddressRow:
        if row.id is None:
            row.id = address.address_id
        row.customer_id = customer_id
        row.name = address.name
        row.line = address.line
        row.city = address.city
        row.state = address.state
        row.country = address.country
        row.zip = address.zip
        row.phone = address.phone
        return row

    @staticmethod
    def _to_address(row: AddressRow | None) -> Address | None:
        if row is None:
            return None
        return Address(
            address_id=row.id,
            name=row.name,
            line=row.line,
            city=row.city,
            country=row.country,
            state=row.state,
            zip=row.zip,
            phone=row.phone,
        )

    @staticmethod
    def _order_row(order: Order, shipping_id: str, billing_id: str) -> OrderRow:
        transaction = order.transaction
        row = OrderRow(
            id=order.id,
            customer_id=order.customer_id,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            status=order.status,
            delivery_charge=order.delivery_charge,
            delivery_option=order.delivery_option,
            total=order.total,
            items_total_discount=order.items_total_discount,
            coupon_applied_discount=order.coupon_applied_discount,
            total_with_discount=order.total_with_discount,
            net_total=order.net_total,
            coupon_id=order.coupon_id,
            coupon_code=order.coupon_code,
            shipping_address_id=shipping_id,
            billing_address_id=billing_id,
            payment_method=transaction.payment_method if transaction else None,
            payment_amount=transaction.amount if transaction else None,
            payment_status=transaction.status if transaction else None,
            created_at=order.created_at,
            updated_at=order.updated_at or order.created_at,
        )
        row.items = [
            OrderItemRow(
                id=item.id,
                position=item.position,
                quantity=item.quantity,
                product_id=item.product_id,
                variant_id=item.variant_id,
                product_name=item.product_name,
                product_price=item.product_price,
                product_sale_price=item.product_sale_price,
                product_image_url=item.product_image_url,
                created_at=item.created_at or order.created_at,
            )
            for item in order.items
        ]
        return row

    def _to_order(self, row: OrderRow) -> Order:
        shipping = self._to_address(row.shipping_address)
        # A billing row shared with shipping means "same as shipping"
        billing = None
        if row.billing_address_id is not None and row.billing_address_id != row.shipping_address_id:
            billing = self._to_address(row.billing_address)

        transaction = None
        if row.payment_method is not None:
            transaction = OrderTransaction(
                payment_method=row.payment_method,
                amount=row.payment_amount,
                status=row.payment_status or "PENDING",
            )

        items = [
            OrderItem(
                id=item.id,
                position=item.position,
                quantity=item.quantity,
                product_name=item.product_name,
                product_price=item.product_price,
                product_id=item.product_id,
                variant_id=item.variant_id,
                product_sale_price=item.product_sale_price,
                product_image_url=item.product_image_url,
                created_at=as_utc(item.created_at),
            )
            for item in row.items
        ]

        return Order(
            id=row.id,
            customer_id=row.customer_id,
            customer_name=row.customer_name,
            customer_email=row.customer_email,
            status=row.status,
            delivery_charge=row.delivery_charge,
            delivery_option=row.delivery_option,
            total=row.total,
            items_total_discount=row.items_total_discount,
            coupon_applied_discount=row.coupon_applied_discount,
            total_with_discount=row.total_with_discount,
            net_total=row.net_total,
            coupon_id=row.coupon_id,
            coupon_code=row.coupon_code,
            shipping_address=shipping,
            billing_address=billing,
            transaction=transaction,
            payment_method=row.payment_method,
            product_refs=[item.catalog_ref for item in items],
            items=items,
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
        )

    @staticmethod
    def _to_invoice(row: InvoiceRow) -> Invoice:
        return Invoice(
            id=row.id,
            order_id=row.order_id,
            invoice_number=row.invoice_number,
            type=row.type,
            printed_at=as_utc(row.printed_at),
            printed_by=row.printed_by,
            created_at=as_utc(row.created_at),
        )
