"""Coupon validation and discount calculation.

Pure functions over a coupon and the cart state: nothing here reads from or
writes to a store, and the coupon's ``used`` counter is never touched.
Redemption happens in the order store, atomically with order creation.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from settlement.coupon.coupon import Coupon, CouponStatus, CouponType
from settlement.exceptions import (
    CouponExpired,
    CouponLimitReached,
    CouponNotEligible,
    CouponNotFound,
    CouponNotStarted,
    MinimumNotMet,
)
from settlement.money import CENT, HUNDRED, ZERO, to_money
from settlement.utils.clock import as_utc, utc_now


def calculate_discount(coupon: Coupon, subtotal, ceiling=None) -> Decimal:
    """Discount *coupon* grants on *subtotal*, without any eligibility checks.

    PERCENTAGE: ``subtotal * amount / 100``, capped at ``maximum`` when set.
    FIXED: ``amount``, capped at ``maximum`` when set and never above the
    subtotal. Either result is further capped at *ceiling* when given.
    """
    subtotal = to_money(subtotal)

    if coupon.type == CouponType.PERCENTAGE.value:
        discount = (subtotal * coupon.amount / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
        if coupon.maximum > ZERO:
            discount = min(discount, coupon.maximum)
    else:
        cap = coupon.maximum if coupon.maximum > ZERO else coupon.amount
        discount = min(coupon.amount, cap, subtotal)

    if ceiling is not None:
        discount = min(discount, max(to_money(ceiling), ZERO))
    return max(discount, ZERO)


def check_eligibility(coupon: Coupon, subtotal, customer_id: str | None = None, now: datetime | None = None) -> None:
    """Raise the matching ``CouponRejected`` if *coupon* cannot be applied."""
    now = as_utc(now) or utc_now()
    subtotal = to_money(subtotal)
    start = as_utc(coupon.start)

    if coupon.status != CouponStatus.ACTIVE.value:
        raise CouponNotFound("Coupon not found or inactive", code=coupon.code)
    if now < start:
        raise CouponNotStarted("Coupon is not active yet", code=coupon.code, start=start.isoformat())
    if now > coupon.ends_at:
        raise CouponExpired("Coupon has expired", code=coupon.code, expiry=coupon.ends_at.isoformat())
    if coupon.is_exhausted:
        raise CouponLimitReached("Coupon usage limit reached", code=coupon.code, limit=coupon.limit)
    if not coupon.is_eligible(customer_id):
        raise CouponNotEligible("Coupon is not available for this customer", code=coupon.code)
    if subtotal < coupon.minimum:
        raise MinimumNotMet(
            f"Coupon minimum purchase amount is {coupon.minimum}",
            code=coupon.code,
            minimum=coupon.minimum,
        )


def validate_coupon(
    coupon: Coupon | None,
    subtotal,
    *,
    customer_id: str | None = None,
    ceiling=None,
    now: datetime | None = None,
    code: str | None = None,
) -> Decimal:
    """Return the discount *coupon* grants on *subtotal*, or raise why it cannot.

    *coupon* is the result of an active-coupon lookup; ``None`` means the code
    matched nothing and is reported as ``CouponNotFound``.
    """
    if coupon is None:
        raise CouponNotFound("Coupon not found or inactive", code=code)
    check_eligibility(coupon, subtotal, customer_id=customer_id, now=now)
    return calculate_discount(coupon, subtotal, ceiling=ceiling)
