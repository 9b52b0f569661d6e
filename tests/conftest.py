from __future__ import annotations

from decimal import Decimal

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from modules.core.authentication import Principal, Role
from modules.orders.dtos import CreateOrderDTO, OrderItemDTO, ShippingAddressDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService

CONSUMER_ID = "consumer-1"
OTHER_CONSUMER_ID = "consumer-2"
VENDOR_ID = "vendor-1"
OTHER_VENDOR_ID = "vendor-2"
ADMIN_ID = "admin-1"


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_cache():
    """Throttle counters live in the cache; start every test from zero."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Principals
# ---------------------------------------------------------------------------


@pytest.fixture()
def consumer():
    return Principal.of(CONSUMER_ID, Role.CONSUMER)


@pytest.fixture()
def other_consumer():
    return Principal.of(OTHER_CONSUMER_ID, Role.CONSUMER)


@pytest.fixture()
def vendor():
    return Principal.of(VENDOR_ID, Role.VENDOR)


@pytest.fixture()
def other_vendor():
    return Principal.of(OTHER_VENDOR_ID, Role.VENDOR)


@pytest.fixture()
def admin():
    return Principal.of(ADMIN_ID, Role.ADMIN)


@pytest.fixture()
def client_for():
    """Factory: APIClient force-authenticated as the given principal."""

    def _make(principal: Principal) -> APIClient:
        client = APIClient()
        client.force_authenticate(user=principal)
        return client

    return _make


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@pytest.fixture()
def order_payload():
    return {
        "payment_id": "pay_123",
        "vendor_id": VENDOR_ID,
        "order_items": [
            {"product_id": "sku-a", "quantity": 2, "price": "10.00"},
            {"product_id": "sku-b", "quantity": 1, "price": "25.50"},
        ],
        "shipping_address": {
            "line1": "12 Market Street",
            "city": "Springfield",
            "postal_code": "62701",
            "country": "us",
        },
    }


def make_create_dto(**overrides) -> CreateOrderDTO:
    values = {
        "vendor_id": VENDOR_ID,
        "payment_id": "pay_123",
        "items": [
            OrderItemDTO(product_id="sku-a", quantity=2, price=Decimal("10.00")),
            OrderItemDTO(product_id="sku-b", quantity=1, price=Decimal("25.50")),
        ],
        "shipping_address": ShippingAddressDTO(
            line1="12 Market Street",
            city="Springfield",
            postal_code="62701",
            country="US",
        ),
    }
    values.update(overrides)
    return CreateOrderDTO(**values)


@pytest.fixture()
def order_service():
    return OrderService(order_repository=OrderDjangoRepository())


@pytest.fixture()
def place_order(order_service, consumer):
    """Factory: place an order through the service and return it."""

    def _place(principal: Principal | None = None, **overrides):
        order, _ = order_service.create_order(principal or consumer, make_create_dto(**overrides))
        return order

    return _place


@pytest.fixture()
def order(place_order):
    """A pending order of ``consumer-1`` sold by ``vendor-1``."""
    return place_order()
