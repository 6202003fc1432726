"""Relational schema for the order store: SQLAlchemy declarative models.

Monetary columns are ``Numeric(12, 2)``. Timestamps are stored in UTC.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


Money = Numeric(12, 2)


class CouponRow(Base):
    __tablename__ = "coupons"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    minimum: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    maximum: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    limit: Mapped[int] = mapped_column("usage_limit", Integer, nullable=False, default=0)
    used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start: Mapped[datetime] = mapped_column("starts_at", DateTime(timezone=True), nullable=False)
    end: Mapped[datetime] = mapped_column("ends_at", DateTime(timezone=True), nullable=False)
    expiry: Mapped[datetime] = mapped_column("expires_at", DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    creator_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    eligible_customer_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AddressRow(Base):
    __tablename__ = "addresses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    line: Mapped[str] = mapped_column(String(500), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    zip: Mapped[str | None] = mapped_column(String(20), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)


class OrderRow(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    delivery_charge: Mapped[Decimal] = mapped_column(Money, nullable=False)
    delivery_option: Mapped[str] = mapped_column(String(16), nullable=False)
    total: Mapped[Decimal] = mapped_column(Money, nullable=False)
    items_total_discount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    coupon_applied_discount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_with_discount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    net_total: Mapped[Decimal] = mapped_column(Money, nullable=False)
    coupon_id: Mapped[str | None] = mapped_column(ForeignKey("coupons.id"), nullable=True)
    coupon_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    billing_address_id: Mapped[str | None] = mapped_column(ForeignKey("addresses.id"), nullable=True)
    shipping_address_id: Mapped[str | None] = mapped_column(ForeignKey("addresses.id"), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    payment_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    payment_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    items: Mapped[list["OrderItemRow"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemRow.position",
    )
    billing_address: Mapped[AddressRow | None] = relationship(foreign_keys=[billing_address_id])
    shipping_address: Mapped[AddressRow | None] = relationship(foreign_keys=[shipping_address_id])


class OrderItemRow(Base):
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    variant_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    product_sale_price: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    product_image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    order: Mapped[OrderRow] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint(
            "(product_id IS NULL) <> (variant_id IS NULL)",
            name="ck_order_items_one_catalog_ref",
        ),
    )


class InvoiceRow(Base):
    __tablename__ = "invoices"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    invoice_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    printed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    printed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class InvoiceSequenceRow(Base):
    """One row per calendar day; ``value`` is the last sequence handed out."""

    __tablename__ = "invoice_sequences"

    day: Mapped[str] = mapped_column(String(8), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
