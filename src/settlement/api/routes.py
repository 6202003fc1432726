"""FastAPI routes for the Settlement domain: orders, coupons and invoices.

Writes build a command and dispatch it; the response reads the written
record back from the order store.
"""

from datetime import datetime

from fastapi import APIRouter, Response

from settlement.api.schemas import (
    AddressSchema,
    CouponPageResponse,
    CouponPreviewResponse,
    CouponResponse,
    CreateCouponRequest,
    CreateInvoiceRequest,
    CreateOrderRequest,
    InvoiceResponse,
    OrderPageResponse,
    OrderResponse,
    UpdateCouponRequest,
    UpdateOrderAddressesRequest,
    UpdateOrderStatusRequest,
    ValidateCouponRequest,
)
from settlement.coupon import management as coupons
from settlement.coupon.management import CreateCoupon, DeleteCoupon, UpdateCoupon
from settlement.dispatch import dispatch
from settlement.invoice import generation as invoices
from settlement.invoice.generation import PrintInvoice
from settlement.order import management as orders
from settlement.order.management import ChangeOrderStatus, CorrectOrderAddresses, DeleteOrder
from settlement.order.order import Address
from settlement.order.placement import CartLine, PlaceOrder
from settlement.store import get_store
from settlement.store.port import OrderFilters, PageRequest


def _upper(value: str | None) -> str | None:
    return value.upper() if value else value


def _address(schema: AddressSchema | None) -> Address | None:
    if schema is None:
        return None
    return Address(**schema.model_dump())


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def create_order(body: CreateOrderRequest) -> OrderResponse:
    command = PlaceOrder(
        customer_id=body.customer_id,
        lines=[CartLine(**line.model_dump()) for line in body.lines],
        shipping_address=_address(body.shipping_address),
        billing_address=_address(body.billing_address),
        coupon_code=body.coupon_code,
        delivery_charge=body.delivery_charge,
        delivery_option=_upper(body.delivery_option),
        payment_method=_upper(body.payment_method),
        customer_name=body.customer_name,
        customer_email=body.customer_email,
    )
    order_id = dispatch(command)
    return OrderResponse.from_order(orders.get_order_by_id(get_store(), order_id))


@order_router.get("", response_model=OrderPageResponse)
async def list_orders(
    status: str | None = None,
    customer_id: str | None = None,
    payment_method: str | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    product_id: str | None = None,
    page: int = 1,
    limit: int = 10,
    sort: str = "created_at",
    direction: str = "desc",
) -> OrderPageResponse:
    filters = OrderFilters(
        status=_upper(status),
        customer_id=customer_id,
        payment_method=_upper(payment_method),
        created_from=created_from,
        created_to=created_to,
        product_id=product_id,
    )
    result = orders.list_orders(get_store(), filters, PageRequest(page=page, limit=limit, sort=sort, direction=direction))
    return OrderPageResponse.from_page(result)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    return OrderResponse.from_order(orders.get_order_by_id(get_store(), order_id))


@order_router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(order_id: str, body: UpdateOrderStatusRequest) -> OrderResponse:
    dispatch(ChangeOrderStatus(order_id=order_id, status=_upper(body.status)))
    return OrderResponse.from_order(orders.get_order_by_id(get_store(), order_id))


@order_router.put("/{order_id}/addresses", response_model=OrderResponse)
async def update_order_addresses(order_id: str, body: UpdateOrderAddressesRequest) -> OrderResponse:
    command = CorrectOrderAddresses(
        order_id=order_id,
        shipping_address=_address(body.shipping_address),
        billing_address=_address(body.billing_address),
    )
    dispatch(command)
    return OrderResponse.from_order(orders.get_order_by_id(get_store(), order_id))


@order_router.delete("/{order_id}", status_code=204)
async def delete_order(order_id: str) -> Response:
    dispatch(DeleteOrder(order_id=order_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Coupon Router
# ---------------------------------------------------------------------------
coupon_router = APIRouter(prefix="/coupons", tags=["coupons"])


@coupon_router.post("", status_code=201, response_model=CouponResponse)
async def create_coupon(body: CreateCouponRequest) -> CouponResponse:
    attributes = body.model_dump(exclude_none=True)
    attributes["type"] = _upper(body.type)
    attributes["status"] = _upper(body.status)
    coupon_id = dispatch(CreateCoupon(**attributes))
    return CouponResponse.from_coupon(coupons.get_coupon(get_store(), coupon_id))


@coupon_router.get("", response_model=CouponPageResponse)
async def list_coupons(page: int = 1, limit: int = 10) -> CouponPageResponse:
    return CouponPageResponse.from_page(coupons.list_coupons(get_store(), PageRequest(page=page, limit=limit)))


@coupon_router.post("/validate", response_model=CouponPreviewResponse)
async def validate_coupon(body: ValidateCouponRequest) -> CouponPreviewResponse:
    preview = coupons.preview_coupon(get_store(), body.code, body.subtotal, customer_id=body.customer_id)
    return CouponPreviewResponse.from_preview(preview)


@coupon_router.get("/{coupon_id}", response_model=CouponResponse)
async def get_coupon(coupon_id: str) -> CouponResponse:
    return CouponResponse.from_coupon(coupons.get_coupon(get_store(), coupon_id))


@coupon_router.put("/{coupon_id}", response_model=CouponResponse)
async def update_coupon(coupon_id: str, body: UpdateCouponRequest) -> CouponResponse:
    changes = body.model_dump(exclude_unset=True)
    for field in ("type", "status"):
        if changes.get(field):
            changes[field] = changes[field].upper()
    dispatch(UpdateCoupon(coupon_id=coupon_id, **changes))
    return CouponResponse.from_coupon(coupons.get_coupon(get_store(), coupon_id))


@coupon_router.delete("/{coupon_id}", status_code=204)
async def delete_coupon(coupon_id: str) -> Response:
    dispatch(DeleteCoupon(coupon_id=coupon_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Invoice Router
# ---------------------------------------------------------------------------
invoice_router = APIRouter(prefix="/invoices", tags=["invoices"])


@invoice_router.post("", status_code=201, response_model=InvoiceResponse)
async def create_invoice(body: CreateInvoiceRequest) -> InvoiceResponse:
    command = PrintInvoice(order_id=body.order_id, type=_upper(body.type), printed_by=body.printed_by)
    invoice_id = dispatch(command)
    return InvoiceResponse.from_invoice(invoices.get_invoice(get_store(), invoice_id))


@invoice_router.get("", response_model=list[InvoiceResponse])
async def list_invoices(order_id: str) -> list[InvoiceResponse]:
    return [InvoiceResponse.from_invoice(invoice) for invoice in invoices.list_invoices(get_store(), order_id)]


@invoice_router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(invoice_id: str) -> InvoiceResponse:
    return InvoiceResponse.from_invoice(invoices.get_invoice(get_store(), invoice_id))
