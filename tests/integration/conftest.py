"""Fixtures for HTTP-level tests of the settlement API."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from settlement.api import coupon_router, invoice_router, order_router, register_exception_handlers
from settlement.catalog import set_catalog
from settlement.store import set_store


@pytest.fixture()
def client(store, catalog):
    set_store(store)
    set_catalog(catalog)

    app = FastAPI()
    app.include_router(order_router)
    app.include_router(coupon_router)
    app.include_router(invoice_router)
    register_exception_handlers(app)
    return TestClient(app)


@pytest.fixture()
def address_payload():
    return {
        "name": "Jane Doe",
        "line": "12 Lake Road",
        "city": "Dhaka",
        "country": "Bangladesh",
        "zip": "1207",
        "phone": "+8801700000000",
    }


@pytest.fixture()
def order_payload(address_payload):
    return {
        "customer_id": "cust-001",
        "lines": [{"product_id": "prod-tee", "quantity": 2}, {"product_id": "prod-mug", "quantity": 1}],
        "shipping_address": address_payload,
        "delivery_charge": "30.00",
        "payment_method": "COD",
    }
