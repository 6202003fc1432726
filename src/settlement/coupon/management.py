"""Coupon administration commands, reads, and checkout preview."""

from datetime import datetime

import structlog
from protean import handle
from protean.fields import DateTime, Decimal, Float, Identifier, Integer, List, String, Text

from settlement.coupon.coupon import Coupon, CouponPreview, CouponStatus, CouponType, normalize_code
from settlement.coupon.validation import validate_coupon
from settlement.domain import settlement
from settlement.exceptions import ValidationError
from settlement.money import ZERO, to_money
from settlement.store import deadline_for, get_store
from settlement.store.port import OrderStore, Page, PageRequest
from settlement.utils.clock import utc_now

logger = structlog.get_logger(__name__)

MAX_PAGE_SIZE = 100

# Fields an UpdateCoupon command may carry; None means "leave as is"
_REVISABLE_FIELDS = (
    "code",
    "description",
    "type",
    "amount",
    "minimum",
    "maximum",
    "limit",
    "start",
    "end",
    "expiry",
    "status",
    "creator_id",
    "eligible_customer_ids",
)


@settlement.command(part_of="Coupon")
class CreateCoupon:
    code = String(required=True, max_length=64)
    type = String(required=True, choices=CouponType)
    amount = Decimal(required=True)
    description = Text()
    minimum = Decimal(min_value=0)
    maximum = Decimal(min_value=0)
    limit = Integer(min_value=0, default=0)
    start = DateTime()
    end = DateTime()
    expiry = DateTime()
    status = String(choices=CouponStatus, default=CouponStatus.ACTIVE.value)
    creator_id = Identifier()
    eligible_customer_ids = List(content_type=String)


@settlement.command(part_of="Coupon")
class UpdateCoupon:
    coupon_id = Identifier(required=True)
    code = String(max_length=64)
    type = String(choices=CouponType)
    amount = Decimal()
    description = Text()
    minimum = Decimal(min_value=0)
    maximum = Decimal(min_value=0)
    limit = Integer(min_value=0)
    start = DateTime()
    end = DateTime()
    expiry = DateTime()
    status = String(choices=CouponStatus)
    creator_id = Identifier()
    eligible_customer_ids = List(content_type=String, default=None)


@settlement.command(part_of="Coupon")
class DeleteCoupon:
    coupon_id = Identifier(required=True)
    timeout = Float(min_value=0)


@settlement.command_handler(part_of=Coupon)
class CouponAdministrationHandler:
    @handle(CreateCoupon)
    def create_coupon(self, command):
        coupon = Coupon.create(
            command.code,
            command.type,
            command.amount,
            start=command.start,
            end=command.end,
            expiry=command.expiry,
            minimum=command.minimum,
            maximum=command.maximum,
            limit=command.limit,
            status=command.status or CouponStatus.ACTIVE,
            description=command.description,
            creator_id=command.creator_id,
            eligible_customer_ids=command.eligible_customer_ids,
        )
        get_store().add_coupon(coupon)

        logger.info("coupon.created", coupon_id=coupon.id, code=coupon.code, type=coupon.type)
        return str(coupon.id)

    @handle(UpdateCoupon)
    def update_coupon(self, command):
        """Apply the fields the command carries. The usage counter cannot be edited."""
        changes = {
            field: getattr(command, field) for field in _REVISABLE_FIELDS if getattr(command, field) is not None
        }
        if not changes:
            raise ValidationError("Nothing to update", coupon_id=command.coupon_id)

        store = get_store()
        coupon = store.get_coupon(command.coupon_id)
        coupon.revise(**changes)
        store.update_coupon(coupon)

        logger.info("coupon.updated", coupon_id=coupon.id, fields=sorted(changes))
        return str(coupon.id)

    @handle(DeleteCoupon)
    def delete_coupon(self, command):
        """Delete a coupon no order refers to.

        Orders keep the id and code of the coupon they redeemed, so a coupon
        that has been used is refused with ``BusinessRuleViolation``; block
        it instead.
        """
        get_store().delete_coupon(command.coupon_id, deadline_for(command.timeout))
        logger.info("coupon.deleted", coupon_id=command.coupon_id)
        return command.coupon_id


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_coupon(store: OrderStore, coupon_id: str) -> Coupon:
    return store.get_coupon(coupon_id)


def list_coupons(store: OrderStore, page: PageRequest | None = None) -> Page:
    """Coupons, newest first."""
    page = page or PageRequest()
    errors = {}
    if page.page < 1:
        errors["page"] = "Page must be 1 or greater"
    if not 1 <= page.limit <= MAX_PAGE_SIZE:
        errors["limit"] = f"Limit must be between 1 and {MAX_PAGE_SIZE}"
    if errors:
        raise ValidationError("Invalid coupon listing request", **errors)
    return store.list_coupons(page)


def preview_coupon(
    store: OrderStore,
    code: str,
    subtotal,
    customer_id: str | None = None,
    now: datetime | None = None,
) -> CouponPreview:
    """What *code* would take off a cart of *subtotal*; raises the rejection otherwise.

    Nothing is redeemed. A later checkout can still be rejected if the
    coupon is used up in between.
    """
    code = normalize_code(code)
    try:
        subtotal = to_money(subtotal)
    except ValueError as exc:
        raise ValidationError("Subtotal must be a monetary amount", field="subtotal") from exc
    if subtotal < ZERO:
        raise ValidationError("Subtotal cannot be negative", field="subtotal")

    coupon = store.find_active_coupon(code)
    discount = validate_coupon(coupon, subtotal, customer_id=customer_id, now=now or utc_now(), code=code)
    return CouponPreview(coupon_id=coupon.id, code=coupon.code, subtotal=subtotal, discount=discount)
