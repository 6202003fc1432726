"""Shared BDD fixtures and step definitions for the settlement engine."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from pytest_bdd import given, parsers, then, when
from settlement.coupon.management import CreateCoupon
from settlement.dispatch import dispatch
from settlement.exceptions import SettlementError
from settlement.order import management
from settlement.order.management import ChangeOrderStatus
from settlement.order.placement import CartLine
from settlement.store import get_store, set_store

_PRICING_FIELDS = {
    "order total": "total",
    "items discount": "items_total_discount",
    "coupon discount": "coupon_applied_discount",
    "total with discount": "total_with_discount",
    "net total": "net_total",
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def store(document_store):
    """Scenarios run against the Protean-backed store."""
    set_store(document_store)
    return document_store


@pytest.fixture()
def cart():
    return {"lines": [], "delivery_charge": Decimal("0")}


@pytest.fixture()
def error():
    """Container for the error a When step raised."""
    return {"exc": None}


def _create_coupon(code, type, amount, **attributes):
    start = datetime.now(UTC) - timedelta(days=1)
    dispatch(CreateCoupon(code=code, type=type, amount=amount, start=start, **attributes))


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a {rate:d}% coupon "{code}" capped at {maximum}'))
def percentage_coupon(store, rate, code, maximum):
    _create_coupon(code, "PERCENTAGE", rate, maximum=maximum)


@given(parsers.cfparse('a {rate:d}% coupon "{code}" with a minimum of {minimum}'))
def percentage_coupon_with_minimum(store, rate, code, minimum):
    _create_coupon(code, "PERCENTAGE", rate, minimum=minimum)


@given(parsers.cfparse('a fixed coupon "{code}" worth {amount}'))
def fixed_coupon(store, code, amount):
    _create_coupon(code, "FIXED", amount)


@given(parsers.cfparse('a cart with {quantity:d} of "{product_id}"'))
def cart_with(cart, quantity, product_id):
    cart["lines"].append(CartLine(quantity=quantity, product_id=product_id))


@given(parsers.cfparse('the cart also holds {quantity:d} of "{product_id}"'))
def cart_also_holds(cart, quantity, product_id):
    cart["lines"].append(CartLine(quantity=quantity, product_id=product_id))


@given(parsers.cfparse("a delivery charge of {amount}"))
def delivery_charge(cart, amount):
    cart["delivery_charge"] = Decimal(amount)


@given("a placed order", target_fixture="order")
def placed_order(store, checkout):
    return checkout()


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
def _checkout(store, checkout, cart, error, coupon_code=None):
    try:
        return checkout(lines=list(cart["lines"]), delivery_charge=cart["delivery_charge"], coupon_code=coupon_code)
    except SettlementError as exc:
        error["exc"] = exc
        return None


@when(parsers.cfparse('the customer checks out with coupon "{code}"'), target_fixture="order")
def checkout_with_coupon(store, checkout, cart, error, code):
    return _checkout(store, checkout, cart, error, coupon_code=code)


@when("the customer checks out", target_fixture="order")
def checkout_cart(store, checkout, cart, error):
    return _checkout(store, checkout, cart, error)


@when(parsers.cfparse('the order is moved to "{status}"'), target_fixture="order")
def move_order(store, order, error, status):
    try:
        dispatch(ChangeOrderStatus(order_id=order.id, status=status))
    except SettlementError as exc:
        error["exc"] = exc
    return get_store().get_order(order.id)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(
    parsers.re(
        r"the (?P<label>order total|items discount|coupon discount|total with discount|net total) "
        r"is (?P<amount>\d+\.\d{2})"
    )
)
def order_priced(order, label, amount):
    assert order is not None
    assert getattr(order, _PRICING_FIELDS[label]) == Decimal(amount)


@then(
    parsers.re(r'coupon "(?P<code>[A-Z0-9]+)" has been used (?P<count>\d+) times?'),
    converters={"count": int},
)
def coupon_usage(store, code, count):
    assert store.find_active_coupon(code).used == count


@then(parsers.cfparse('{action} fails with "{reason}"'))
def action_fails(error, action, reason):
    assert error["exc"] is not None, f"Expected {action} to fail"
    assert error["exc"].reason == reason


@then("no order has been placed")
def no_order(store):
    assert management.list_orders(store).total == 0


@then(parsers.cfparse('the order status is "{status}"'))
def order_status(store, order, status):
    assert store.get_order(order.id).status == status
