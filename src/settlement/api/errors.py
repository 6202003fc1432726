"""Translate settlement errors into JSON responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ValidationError as DomainValidationError

from settlement.exceptions import (
    BusinessRuleViolation,
    ConcurrencyConflict,
    NotFoundError,
    PersistenceFailure,
    SettlementError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

# Checked in order: CouponNotFound is both a NotFoundError and a BusinessRuleViolation
ERROR_STATUS_CODES = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (BusinessRuleViolation, 409),
    (ConcurrencyConflict, 409),
    (PersistenceFailure, 503),
)


def status_code_for(exc: SettlementError) -> int:
    for error_cls, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_cls):
            return status_code
    return 500


async def settlement_error_handler(request: Request, exc: SettlementError) -> JSONResponse:
    status_code = status_code_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log("request.failed", path=request.url.path, category=exc.category, reason=exc.reason, message=exc.message)
    return JSONResponse(status_code=status_code, content=exc.as_dict())


async def domain_validation_error_handler(request: Request, exc: DomainValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "category": ValidationError.category,
            "reason": ValidationError.reason,
            "message": "Invalid input",
            "details": exc.messages,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SettlementError, settlement_error_handler)
    app.add_exception_handler(DomainValidationError, domain_validation_error_handler)
