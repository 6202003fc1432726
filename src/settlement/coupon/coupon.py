"""Coupon aggregate: a discount code with eligibility rules and a usage cap.

Coupons are referenced by orders, never owned by them. The ``used`` counter
is only ever advanced through ``redeem``, by an order store, atomically with
the creation of the order that redeems the coupon.
"""

from datetime import timedelta
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Decimal, Identifier, Integer, List, String, Text
from protean.utils.reflection import declared_fields

from settlement.domain import settlement
from settlement.exceptions import CouponLimitReached, CouponNotFound
from settlement.money import HUNDRED, ZERO, to_money
from settlement.utils.clock import as_utc, utc_now

DEFAULT_VALIDITY = timedelta(days=365)

# Administrative edits never touch these
_PROTECTED_FIELDS = frozenset({"id", "used", "created_at", "updated_at"})


class CouponType(Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class CouponStatus(Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    BLOCKED = "BLOCKED"
    INACTIVE = "INACTIVE"


def normalize_code(code: str | None) -> str:
    """Coupon codes are case-insensitive and stored upper-cased."""
    if not code or not code.strip():
        raise ValidationError({"code": ["Coupon code is required"]})
    return code.strip().upper()


def _choice(enum_cls, value, field: str) -> str:
    try:
        return enum_cls(value).value
    except ValueError as exc:
        raise ValidationError({field: [f"Unknown {field}: {value}"]}) from exc


def _money(value, field: str):
    try:
        return to_money(value)
    except ValueError as exc:
        raise ValidationError({field: ["Must be a monetary amount"]}) from exc


@settlement.aggregate
class Coupon:
    """A discount code customers enter at checkout.

    PERCENTAGE coupons take ``amount`` percent of the subtotal, capped at
    ``maximum`` when it is set; FIXED coupons take ``amount`` off. A coupon
    is usable from ``start`` until the earlier of ``end`` and ``expiry``,
    by the listed customers only when ``eligible_customer_ids`` is set, and
    ``limit`` times in total unless ``limit`` is zero.
    """

    code = String(required=True, max_length=64)
    description = Text()
    type = String(choices=CouponType, required=True)
    amount = Decimal(required=True)
    minimum = Decimal(min_value=0, default=ZERO)
    maximum = Decimal(min_value=0, default=ZERO)
    limit = Integer(min_value=0, default=0)
    used = Integer(min_value=0, default=0)
    start = DateTime(required=True)
    end = DateTime(required=True)
    expiry = DateTime(required=True)
    status = String(choices=CouponStatus, default=CouponStatus.ACTIVE.value)
    creator_id = Identifier()
    eligible_customer_ids = List(content_type=String)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def amount_must_be_positive(self):
        if self.amount is None or self.amount <= ZERO:
            raise ValidationError({"amount": ["Coupon amount must be positive"]})
        if self.type == CouponType.PERCENTAGE.value and self.amount > HUNDRED:
            raise ValidationError({"amount": ["Percentage coupons cannot exceed 100"]})

    @invariant.post
    def must_end_after_it_starts(self):
        if as_utc(self.start) > self.ends_at:
            raise ValidationError({"end": ["Coupon must end after it starts"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        code,
        type,
        amount,
        start=None,
        end=None,
        expiry=None,
        minimum=None,
        maximum=None,
        limit=0,
        status=CouponStatus.ACTIVE,
        description=None,
        creator_id=None,
        eligible_customer_ids=None,
        now=None,
    ):
        """Build a new, unused coupon.

        ``start`` defaults to now; ``end`` and ``expiry`` default to each
        other, and to one year from now when neither is given. Timestamps
        without an offset are taken to be UTC.
        """
        now = as_utc(now) or utc_now()
        start, end, expiry = as_utc(start), as_utc(end), as_utc(expiry)
        ends = end or expiry or now + DEFAULT_VALIDITY
        return cls(
            code=normalize_code(code),
            type=_choice(CouponType, type, "type"),
            amount=_money(amount, "amount"),
            start=start or now,
            end=end or ends,
            expiry=expiry or ends,
            minimum=_money(minimum, "minimum"),
            maximum=_money(maximum, "maximum"),
            limit=limit or 0,
            used=0,
            status=_choice(CouponStatus, status, "status"),
            description=description,
            creator_id=creator_id,
            eligible_customer_ids=list(eligible_customer_ids or []),
            created_at=now,
            updated_at=now,
        )

    def revise(self, now=None, **changes):
        """Apply administrative *changes*; the usage counter and timestamps stay as they are."""
        unknown = set(changes) - set(declared_fields(self)) - _PROTECTED_FIELDS
        if unknown:
            raise ValidationError({field: ["Unknown coupon field"] for field in sorted(unknown)})
        for field in _PROTECTED_FIELDS:
            changes.pop(field, None)

        if "code" in changes:
            changes["code"] = normalize_code(changes["code"])
        if "type" in changes:
            changes["type"] = _choice(CouponType, changes["type"], "type")
        if "status" in changes:
            changes["status"] = _choice(CouponStatus, changes["status"], "status")
        for money_field in ("amount", "minimum", "maximum"):
            if money_field in changes:
                changes[money_field] = _money(changes[money_field], money_field)
        for time_field in ("start", "end", "expiry"):
            if time_field in changes:
                changes[time_field] = as_utc(changes[time_field])
        if "eligible_customer_ids" in changes:
            changes["eligible_customer_ids"] = list(changes["eligible_customer_ids"] or [])

        with atomic_change(self):
            for field, value in changes.items():
                setattr(self, field, value)
            self.updated_at = as_utc(now) or utc_now()

    def redeem(self, now=None):
        """Count one more use, or refuse when the coupon is inactive or used up."""
        if self.status != CouponStatus.ACTIVE.value:
            raise CouponNotFound("Coupon not found or inactive", coupon_id=self.id)
        if self.is_exhausted:
            raise CouponLimitReached("Coupon usage limit reached", coupon_id=self.id)
        self.used = self.used + 1
        self.updated_at = now or utc_now()

    @property
    def ends_at(self):
        """The earlier of ``end`` and ``expiry``; the coupon is unusable afterwards."""
        return min(as_utc(self.end), as_utc(self.expiry))

    @property
    def is_exhausted(self) -> bool:
        return self.limit > 0 and self.used >= self.limit

    def is_eligible(self, customer_id) -> bool:
        if not self.eligible_customer_ids:
            return True
        return customer_id is not None and customer_id in self.eligible_customer_ids


@settlement.value_object
class CouponPreview:
    """What a coupon would take off a given cart subtotal."""

    coupon_id = Identifier(required=True)
    code = String(required=True, max_length=64)
    subtotal = Decimal(required=True, min_value=0)
    discount = Decimal(min_value=0, default=ZERO)
