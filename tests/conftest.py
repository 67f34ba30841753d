"""Shared pytest fixtures for the checkout service tests."""

from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient

from makerset_service.cart import CartStore, ShippingPolicy
from makerset_service.checkout import CheckoutService
from makerset_service.clients import BackendClient
from makerset_service.models import CustomerInfo
from makerset_service.storage import CustomerInfoStore, JsonFileStore
from mock_services import mock_backend


@pytest.fixture(autouse=True)
def reset_mock_backend():
    mock_backend.reset_state()
    yield
    mock_backend.reset_state()


@pytest.fixture
def backend() -> BackendClient:
    """BackendClient talking to the in-process mock backend."""
    client = TestClient(mock_backend.app, base_url="http://testserver/api")
    return BackendClient(client=client, retry_delay=0)


def _mock_transport_backend(handler) -> BackendClient:
    """BackendClient whose requests are answered by `handler(request)`."""
    client = httpx.Client(base_url="http://backend/api", transport=httpx.MockTransport(handler))
    return BackendClient(client=client, retry_delay=0)


@pytest.fixture
def storage(tmp_path) -> JsonFileStore:
    return JsonFileStore(tmp_path / "storage.json")


@pytest.fixture
def customer_store(storage) -> CustomerInfoStore:
    return CustomerInfoStore(storage)


@pytest.fixture
def cart() -> CartStore:
    return CartStore(ShippingPolicy(handling_cost=Decimal("15"), free_over=None))


@pytest.fixture
def checkout(cart, backend, customer_store) -> CheckoutService:
    return CheckoutService(cart, backend, customer_store)


@pytest.fixture
def customer_info() -> CustomerInfo:
    return CustomerInfo(
        company_name="Makers GmbH",
        customer_first_name="Alex",
        customer_last_name="Smith",
        customer_email="alex@example.com",
        customer_phone="+49 123 456",
        shipping_address="Werkstrasse 1, Berlin",
        notes="Leave at the door",
    )


@pytest.fixture
def transport_backend():
    """Factory for BackendClients answered by a MockTransport handler."""
    return _mock_transport_backend
