"""Error taxonomy of the settlement engine.

Every error carries a ``category`` (one of the five top-level kinds below),
a specific ``reason`` code and a human-readable ``message``, so that callers
can report both a machine-readable code and the message the engine produced.

    ValidationError        malformed or missing input (caller's fault)
    NotFoundError          coupon / order / line item / invoice absent
    BusinessRuleViolation  coupon rejected, illegal status transition
    ConcurrencyConflict    lost an optimistic-concurrency race
    PersistenceFailure     store unavailable, timed out or aborted (retryable)
"""


class SettlementError(Exception):
    category = "SETTLEMENT_ERROR"
    reason = "SETTLEMENT_ERROR"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def as_dict(self) -> dict:
        payload = {
            "category": self.category,
            "reason": self.reason,
            "message": self.message,
        }
        if self.details:
            payload["details"] = {key: str(value) for key, value in self.details.items()}
        return payload


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
class ValidationError(SettlementError):
    category = "VALIDATION_ERROR"
    reason = "INVALID_INPUT"

    @classmethod
    def from_messages(cls, message: str, messages) -> "ValidationError":
        """Build from a ``{field: [message, ...]}`` mapping, one detail per field."""
        if not isinstance(messages, dict):
            return cls(message, error=str(messages))
        details = {
            field: "; ".join(str(item) for item in errors) if isinstance(errors, list | tuple) else str(errors)
            for field, errors in messages.items()
        }
        return cls(message, **details)


class EmptyCart(ValidationError):
    reason = "EMPTY_CART"


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------
class NotFoundError(SettlementError):
    category = "NOT_FOUND"
    reason = "NOT_FOUND"


class OrderNotFound(NotFoundError):
    reason = "ORDER_NOT_FOUND"


class LineItemNotFound(NotFoundError):
    reason = "LINE_ITEM_NOT_FOUND"


class InvoiceNotFound(NotFoundError):
    reason = "INVOICE_NOT_FOUND"


# ---------------------------------------------------------------------------
# Business rules
# ---------------------------------------------------------------------------
class BusinessRuleViolation(SettlementError):
    category = "BUSINESS_RULE_VIOLATION"
    reason = "BUSINESS_RULE_VIOLATION"


class CouponRejected(BusinessRuleViolation):
    reason = "COUPON_REJECTED"


class CouponNotFound(NotFoundError, CouponRejected):
    reason = "COUPON_NOT_FOUND"


class CouponExpired(CouponRejected):
    reason = "COUPON_EXPIRED"


class CouponNotStarted(CouponRejected):
    reason = "COUPON_NOT_STARTED"


class CouponLimitReached(CouponRejected):
    reason = "COUPON_LIMIT_REACHED"


class CouponNotEligible(CouponRejected):
    reason = "COUPON_NOT_ELIGIBLE"


class MinimumNotMet(CouponRejected):
    reason = "MINIMUM_NOT_MET"


class IllegalStatusTransition(BusinessRuleViolation):
    reason = "ILLEGAL_STATUS_TRANSITION"


# ---------------------------------------------------------------------------
# Concurrency and persistence
# ---------------------------------------------------------------------------
class ConcurrencyConflict(SettlementError):
    category = "CONCURRENCY_CONFLICT"
    reason = "CONCURRENCY_CONFLICT"


class PersistenceFailure(SettlementError):
    category = "PERSISTENCE_FAILURE"
    reason = "PERSISTENCE_FAILURE"


class StoreTimeout(PersistenceFailure):
    reason = "STORE_TIMEOUT"
