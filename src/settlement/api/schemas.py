"""Pydantic request/response schemas for the Settlement API.

These are external contracts, separate from the internal Protean commands
the routes build from them. Monetary amounts are ``Decimal`` and serialize
as decimal strings.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from settlement.coupon.coupon import Coupon, CouponPreview
from settlement.invoice.invoice import Invoice
from settlement.order.order import Address, Order, OrderItem
from settlement.store.port import Page


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    name: str = Field(..., max_length=255)
    line: str = Field(..., max_length=500)
    city: str = Field(..., max_length=100)
    country: str = Field(..., max_length=100)
    state: str | None = Field(None, max_length=100)
    zip: str | None = Field(None, max_length=20)
    phone: str | None = Field(None, max_length=32)


class CartLineSchema(BaseModel):
    quantity: int
    product_id: str | None = None
    variant_id: str | None = None


# ---------------------------------------------------------------------------
# Order requests
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer_id": "cust-001",
                    "customer_name": "Jane Doe",
                    "customer_email": "jane@example.com",
                    "lines": [{"product_id": "prod-001", "quantity": 2}, {"variant_id": "var-001", "quantity": 1}],
                    "shipping_address": {
                        "name": "Jane Doe",
                        "line": "12 Lake Road",
                        "city": "Dhaka",
                        "country": "Bangladesh",
                        "zip": "1207",
                        "phone": "+8801700000000",
                    },
                    "coupon_code": "WELCOME10",
                    "delivery_charge": "60.00",
                    "delivery_option": "STANDARD",
                    "payment_method": "COD",
                }
            ]
        }
    }

    customer_id: str
    lines: list[CartLineSchema] = Field(default_factory=list)
    shipping_address: AddressSchema | None = None
    billing_address: AddressSchema | None = None
    coupon_code: str | None = Field(None, max_length=64)
    delivery_charge: Decimal = Decimal("0")
    delivery_option: str = "STANDARD"
    payment_method: str | None = None
    customer_name: str | None = Field(None, max_length=255)
    customer_email: str | None = Field(None, max_length=255)


class UpdateOrderStatusRequest(BaseModel):
    status: str


class UpdateOrderAddressesRequest(BaseModel):
    shipping_address: AddressSchema | None = None
    billing_address: AddressSchema | None = None


# ---------------------------------------------------------------------------
# Order responses
# ---------------------------------------------------------------------------
class AddressResponse(BaseModel):
    id: str | None = None
    name: str
    line: str
    city: str
    country: str
    state: str | None = None
    zip: str | None = None
    phone: str | None = None

    @classmethod
    def from_address(cls, address: Address | None) -> AddressResponse | None:
        if address is None:
            return None
        return cls(
            id=address.address_id,
            name=address.name,
            line=address.line,
            city=address.city,
            country=address.country,
            state=address.state,
            zip=address.zip,
            phone=address.phone,
        )


class OrderItemResponse(BaseModel):
    id: str
    quantity: int
    product_id: str | None = None
    variant_id: str | None = None
    product_name: str
    product_price: Decimal
    product_sale_price: Decimal | None = None
    product_image_url: str | None = None

    @classmethod
    def from_item(cls, item: OrderItem) -> OrderItemResponse:
        return cls(
            id=str(item.id),
            quantity=item.quantity,
            product_id=item.product_id,
            variant_id=item.variant_id,
            product_name=item.product_name,
            product_price=item.product_price,
            product_sale_price=item.product_sale_price,
            product_image_url=item.product_image_url,
        )


class TransactionResponse(BaseModel):
    payment_method: str
    amount: Decimal
    status: str


class OrderResponse(BaseModel):
    id: str
    customer_id: str
    customer_name: str | None = None
    customer_email: str | None = None
    status: str
    delivery_option: str
    delivery_charge: Decimal
    total: Decimal
    items_total_discount: Decimal
    coupon_applied_discount: Decimal
    total_with_discount: Decimal
    net_total: Decimal
    coupon_id: str | None = None
    coupon_code: str | None = None
    shipping_address: AddressResponse | None = None
    billing_address: AddressResponse | None = None
    transaction: TransactionResponse | None = None
    items: list[OrderItemResponse] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_order(cls, order: Order) -> OrderResponse:
        transaction = None
        if order.transaction is not None:
            transaction = TransactionResponse(
                payment_method=order.transaction.payment_method,
                amount=order.transaction.amount,
                status=order.transaction.status,
            )
        return cls(
            id=str(order.id),
            customer_id=order.customer_id,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            status=order.status,
            delivery_option=order.delivery_option,
            coupon_id=order.coupon_id,
            coupon_code=order.coupon_code,
            shipping_address=AddressResponse.from_address(order.shipping_address),
            billing_address=AddressResponse.from_address(order.billing_address),
            transaction=transaction,
            items=[OrderItemResponse.from_item(item) for item in order.ordered_items],
            created_at=order.created_at,
            updated_at=order.updated_at,
            **order.pricing,
        )


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool

    @staticmethod
    def fields_of(page: Page) -> dict:
        return {
            "total": page.total,
            "page": page.page,
            "limit": page.limit,
            "total_pages": page.total_pages,
            "has_next_page": page.has_next_page,
            "has_prev_page": page.has_prev_page,
        }


class OrderPageResponse(PageMeta):
    items: list[OrderResponse]

    @classmethod
    def from_page(cls, page: Page) -> OrderPageResponse:
        return cls(items=[OrderResponse.from_order(order) for order in page.items], **cls.fields_of(page))


# ---------------------------------------------------------------------------
# Coupons
# ---------------------------------------------------------------------------
class CreateCouponRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "code": "welcome10",
                    "type": "PERCENTAGE",
                    "amount": "10",
                    "maximum": "150.00",
                    "minimum": "500.00",
                    "limit": 1000,
                    "description": "10% off the first order",
                }
            ]
        }
    }

    code: str = Field(..., max_length=64)
    type: str
    amount: Decimal
    start: datetime | None = None
    end: datetime | None = None
    expiry: datetime | None = None
    minimum: Decimal | None = None
    maximum: Decimal | None = None
    limit: int = 0
    status: str = "ACTIVE"
    description: str | None = None
    creator_id: str | None = None
    eligible_customer_ids: list[str] = Field(default_factory=list)


class UpdateCouponRequest(BaseModel):
    code: str | None = Field(None, max_length=64)
    type: str | None = None
    amount: Decimal | None = None
    start: datetime | None = None
    end: datetime | None = None
    expiry: datetime | None = None
    minimum: Decimal | None = None
    maximum: Decimal | None = None
    limit: int | None = None
    status: str | None = None
    description: str | None = None
    eligible_customer_ids: list[str] | None = None


class ValidateCouponRequest(BaseModel):
    code: str
    subtotal: Decimal
    customer_id: str | None = None


class CouponResponse(BaseModel):
    id: str
    code: str
    type: str
    amount: Decimal
    minimum: Decimal
    maximum: Decimal
    limit: int
    used: int
    start: datetime
    end: datetime
    expiry: datetime
    status: str
    description: str | None = None
    creator_id: str | None = None
    eligible_customer_ids: list[str] = Field(default_factory=list)
    created_at: datetime | None = None

    @classmethod
    def from_coupon(cls, coupon: Coupon) -> CouponResponse:
        return cls(
            id=str(coupon.id),
            code=coupon.code,
            type=coupon.type,
            amount=coupon.amount,
            minimum=coupon.minimum,
            maximum=coupon.maximum,
            limit=coupon.limit,
            used=coupon.used,
            start=coupon.start,
            end=coupon.end,
            expiry=coupon.expiry,
            status=coupon.status,
            description=coupon.description,
            creator_id=coupon.creator_id,
            eligible_customer_ids=list(coupon.eligible_customer_ids or []),
            created_at=coupon.created_at,
        )


class CouponPageResponse(PageMeta):
    items: list[CouponResponse]

    @classmethod
    def from_page(cls, page: Page) -> CouponPageResponse:
        return cls(items=[CouponResponse.from_coupon(coupon) for coupon in page.items], **cls.fields_of(page))


class CouponPreviewResponse(BaseModel):
    coupon_id: str
    code: str
    subtotal: Decimal
    discount: Decimal

    @classmethod
    def from_preview(cls, preview: CouponPreview) -> CouponPreviewResponse:
        return cls(
            coupon_id=preview.coupon_id,
            code=preview.code,
            subtotal=preview.subtotal,
            discount=preview.discount,
        )


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------
class CreateInvoiceRequest(BaseModel):
    order_id: str
    type: str = "CUSTOMER"
    printed_by: str | None = Field(None, max_length=255)


class InvoiceResponse(BaseModel):
    id: str
    order_id: str
    invoice_number: str
    type: str
    printed_by: str | None = None
    printed_at: datetime

    @classmethod
    def from_invoice(cls, invoice: Invoice) -> InvoiceResponse:
        return cls(
            id=str(invoice.id),
            order_id=invoice.order_id,
            invoice_number=invoice.invoice_number,
            type=invoice.type,
            printed_by=invoice.printed_by,
            printed_at=invoice.printed_at,
        )
