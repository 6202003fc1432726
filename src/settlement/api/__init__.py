"""Settlement domain API package."""

from settlement.api.errors import register_exception_handlers
from settlement.api.routes import coupon_router, invoice_router, order_router

__all__ = ["coupon_router", "invoice_router", "order_router", "register_exception_handlers"]
