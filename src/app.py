"""Order Settlement FastAPI application.

Serves checkout, order management, coupon administration and invoicing over
HTTP. Requests under the settlement routes run inside the settlement domain
context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# ORDER_STORE_ADAPTER picks the persistence backend (see settlement.store).
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from settlement.domain import settlement
from settlement.utils.logging import add_context, clear_context, configure_logging, get_logger

configure_logging()
settlement.init()

logger = get_logger(__name__)
logger.info("settlement.initialized", domain=settlement.name)

# ---------------------------------------------------------------------------
# Route-to-domain mapping
# ---------------------------------------------------------------------------
_ROUTE_DOMAIN_MAP = {
    "/orders": settlement,
    "/coupons": settlement,
    "/invoices": settlement,
}


def _resolve_domain(path: str):
    """Return the domain for the given request path, or None."""
    for prefix, domain in _ROUTE_DOMAIN_MAP.items():
        if path.startswith(prefix):
            return domain
    return None


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Order Settlement API",
    description="Checkout pricing, coupons, order persistence and invoicing",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the settlement domain context and bind request logging context."""
    domain = _resolve_domain(request.url.path)
    if domain is None:
        # Health check, docs, etc.
        return await call_next(request)

    add_context(method=request.method, path=request.url.path)
    try:
        with domain.domain_context():
            return await call_next(request)
    finally:
        clear_context()


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from settlement.api import (  # noqa: E402
    coupon_router,
    invoice_router,
    order_router,
    register_exception_handlers,
)

app.include_router(order_router)
app.include_router(coupon_router)
app.include_router(invoice_router)
register_exception_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    from settlement.store import get_store

    return JSONResponse(
        content={
            "status": "ok",
            "domains": {"settlement": {"name": settlement.name}},
            "store": type(get_store()).__name__,
        }
    )
