"""Settlement bounded context: Order Settlement Engine.

Turns a cart of line items plus an optional coupon into a persisted, priced
order, and mints invoices against persisted orders. Orders can live in a
relational store (SQLAlchemy) or in the document store backed by this
domain's Protean repositories.
"""

import structlog
from protean.domain import Domain

settlement = Domain(name="settlement")

logger = structlog.get_logger(__name__)
