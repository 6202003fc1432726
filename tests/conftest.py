import os
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture

from settlement.catalog import reset_catalog, set_catalog
from settlement.catalog.memory_adapter import InMemoryCatalog
from settlement.coupon.coupon import Coupon
from settlement.dispatch import dispatch
from settlement.order.order import Address
from settlement.order.placement import CartLine, PlaceOrder
from settlement.store import get_store, reset_store, set_store
from settlement.store.document import DocumentOrderStore
from settlement.store.relational import RelationalOrderStore


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    os.environ["PROTEAN_ENV"] = session.config.option.env
    os.environ.setdefault("SETTLEMENT_LOG_DIR", str(Path(session.config.rootpath) / "logs"))


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)
        elif "/bdd/" in test_path:
            item.add_marker(pytest.mark.bdd)


# ---------------------------------------------------------------------------
# Domain
# ---------------------------------------------------------------------------
@pytest.fixture(scope="session")
def settlement_bed():
    from settlement.domain import settlement

    bed = DomainFixture(settlement)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(settlement_bed):
    with settlement_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def run_around_tests(_ctx):
    """Clear stores and factory singletons after every test."""
    yield

    from protean import current_domain

    for _, provider in current_domain.providers.items():
        provider._data_reset()

    reset_store()
    reset_catalog()


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------
def _relational_store(url, **engine_kwargs):
    store = RelationalOrderStore.from_url(url, **engine_kwargs)
    store.drop_schema()
    store.create_schema()
    return store


@pytest.fixture()
def relational_store():
    store = _relational_store(os.environ.get("SETTLEMENT_TEST_DATABASE_URI", "sqlite://"))
    yield store
    store.drop_schema()
    store.engine.dispose()


@pytest.fixture()
def file_store(tmp_path):
    """Relational store on a SQLite file, shared safely between threads."""
    url = os.environ.get("SETTLEMENT_TEST_DATABASE_URI") or f"sqlite:///{tmp_path / 'settlement.db'}"
    engine_kwargs = {"connect_args": {"check_same_thread": False, "timeout": 30}} if url.startswith("sqlite") else {}
    store = _relational_store(url, **engine_kwargs)
    yield store
    store.drop_schema()
    store.engine.dispose()


@pytest.fixture()
def document_store():
    return DocumentOrderStore()


@pytest.fixture(params=["relational", "document"])
def store(request):
    """Each store in turn, installed as the active store for command handlers."""
    store = request.getfixturevalue(f"{request.param}_store")
    set_store(store)
    return store


# ---------------------------------------------------------------------------
# Catalog and checkout helpers
# ---------------------------------------------------------------------------
@pytest.fixture()
def catalog():
    catalog = InMemoryCatalog()
    catalog.add_product("prod-tee", "Cotton Tee", "100.00", image_url="https://img/tee.png")
    catalog.add_product("prod-mug", "Coffee Mug", "50.00", sale_price="40.00")
    catalog.add_product("prod-cap", "Cap", "300.00")
    catalog.add_variant("var-tee-xl", "Cotton Tee XL", "120.00", sale_price="100.00")
    set_catalog(catalog)
    return catalog


@pytest.fixture()
def shipping_address():
    return Address(
        name="Jane Doe",
        line="12 Lake Road",
        city="Dhaka",
        country="Bangladesh",
        zip="1207",
        phone="+8801700000000",
    )


@pytest.fixture()
def billing_address():
    return Address(
        name="Jane Doe",
        line="40 Office Street",
        city="Chattogram",
        country="Bangladesh",
        zip="4000",
    )


@pytest.fixture()
def make_command(shipping_address):
    """Build a PlaceOrder; two tees and a mug on sale, 30 delivery: total 250, item discount 10."""

    def _make(**overrides):
        values = {
            "customer_id": "cust-001",
            "lines": [CartLine(quantity=2, product_id="prod-tee"), CartLine(quantity=1, product_id="prod-mug")],
            "shipping_address": shipping_address,
            "delivery_charge": Decimal("30.00"),
            "payment_method": "COD",
        }
        values.update(overrides)
        return PlaceOrder(**values)

    return _make


@pytest.fixture()
def checkout(catalog, make_command):
    """Place an order through the active store and return it as stored."""

    def _checkout(**overrides):
        order_id = dispatch(make_command(**overrides))
        return get_store().get_order(order_id)

    return _checkout


@pytest.fixture()
def make_coupon():
    """Persist a coupon valid from yesterday for a year; 10% capped at 15 by default."""

    def _make(code="SAVE10", type="PERCENTAGE", amount="10", **attributes):
        if type == "PERCENTAGE":
            attributes.setdefault("maximum", "15")
        now = datetime.now(UTC)
        attributes.setdefault("start", now - timedelta(days=1))
        coupon = Coupon.create(code, type, amount, now=now, **attributes)
        get_store().add_coupon(coupon)
        return get_store().get_coupon(coupon.id)

    return _make
