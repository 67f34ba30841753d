"""Tests for the checkout service HTTP API."""

from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient

from makerset_service.cart import ShippingPolicy
from makerset_service.main import create_app
from makerset_service.storage import CART_KEY, JsonFileStore
from mock_services import mock_backend

ARDUINO = {"set_id": 1, "unit_price": 49.9, "set_name": "Arduino Starter Kit", "category": "electronics"}
SOLAR_CAR = {"set_id": 2, "unit_price": "30", "set_name": "Solar Car"}


@pytest.fixture
def api(backend, storage):
    app = create_app(backend=backend, storage=storage,
                     shipping_policy=ShippingPolicy(handling_cost=Decimal("15"), free_over=None))
    with TestClient(app) as client:
        yield client


@pytest.fixture
def form(customer_info):
    return customer_info.model_dump()


def test_health(api) -> None:
    assert api.get("/health").json() == {"status": "ok"}


class TestCartEndpoints:
    def test_empty_cart(self, api) -> None:
        body = api.get("/cart").json()
        assert body["items"] == []
        assert body["total_items"] == 0
        assert body["shipping"] == {"description": "No items in cart", "cost": 0.0, "provider_count": 0}
        assert body["provider"] is None

    def test_add_and_increment(self, api) -> None:
        api.post("/cart/items", json=ARDUINO)
        response = api.post("/cart/items", json=ARDUINO)
        assert response.status_code == 201
        body = response.json()
        assert body["total_items"] == 2
        assert body["items"][0]["quantity"] == 2
        assert body["items"][0]["line_total"] == pytest.approx(99.8)
        assert body["subtotal"] == pytest.approx(99.8)
        assert body["grand_total"] == pytest.approx(114.8)
        assert body["provider"]["provider_name"] == "MakerSet Platform"

    def test_set_quantity_and_remove(self, api) -> None:
        api.post("/cart/items", json=ARDUINO)
        api.post("/cart/items", json=SOLAR_CAR)
        assert api.put("/cart/items/1", json={"quantity": 3}).json()["total_items"] == 4
        assert api.put("/cart/items/2", json={"quantity": 0}).json()["total_items"] == 3
        assert api.delete("/cart/items/1").json()["items"] == []

    def test_clear(self, api, storage) -> None:
        api.post("/cart/items", json=ARDUINO)
        assert storage.get_item(CART_KEY) is not None
        assert api.delete("/cart").json()["total_items"] == 0
        assert storage.get_item(CART_KEY) is None

    def test_cart_restored_on_startup(self, backend, storage) -> None:
        policy = ShippingPolicy(handling_cost=Decimal("15"), free_over=None)
        with TestClient(create_app(backend=backend, storage=storage, shipping_policy=policy)) as client:
            client.post("/cart/items", json=ARDUINO)

        with TestClient(create_app(backend=backend, storage=storage, shipping_policy=policy)) as client:
            assert client.get("/cart").json()["total_items"] == 1

    def test_add_reserves_stock(self, api) -> None:
        api.post("/cart/items", json=ARDUINO)
        assert [(r["set_id"], r["quantity"]) for r in mock_backend.RESERVATIONS] == [(1, 1)]

    def test_failed_reservation_still_adds(self, api) -> None:
        response = api.post("/cart/items", json=SOLAR_CAR)
        assert response.status_code == 201
        assert response.json()["total_items"] == 1
        assert mock_backend.RESERVATIONS == []

    def test_add_works_with_backend_down(self, storage, transport_backend) -> None:
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        app = create_app(backend=transport_backend(handler), storage=storage, shipping_policy=ShippingPolicy())
        with TestClient(app) as client:
            assert client.post("/cart/items", json=ARDUINO).json()["total_items"] == 1

    def test_clear_releases_reservations(self, api) -> None:
        api.post("/cart/items", json=ARDUINO)
        api.delete("/cart")
        assert mock_backend.RESERVATIONS == []


class TestCheckoutEndpoints:
    def test_successful_checkout(self, api, form) -> None:
        api.post("/cart/items", json=ARDUINO)
        response = api.post("/checkout", json={"customer_info": form, "save_customer_info": True})

        assert response.status_code == 201
        assert response.json()["order"]["order"]["order_number"] == "ORD-00001"
        assert api.get("/cart").json()["total_items"] == 0
        saved = api.get("/customer-info").json()
        assert saved["saved"] is True
        assert saved["customer_info"]["company_name"] == form["company_name"]

    def test_stock_issue(self, api, form) -> None:
        api.post("/cart/items", json=SOLAR_CAR)
        response = api.post("/checkout", json={"customer_info": form})

        assert response.status_code == 409
        body = response.json()
        assert "Resistor (R1): need 40, have 30" in body["error"]
        assert body["results"][0]["set_id"] == 2
        assert api.get("/cart").json()["total_items"] == 1
        assert mock_backend.ORDERS == []

    def test_missing_fields(self, api, form) -> None:
        api.post("/cart/items", json=ARDUINO)
        form["customer_email"] = "nope"
        response = api.post("/checkout", json={"customer_info": form})
        assert response.status_code == 422
        assert response.json()["fields"] == {"customer_email": "Invalid email format"}

    def test_backend_down(self, storage, form, transport_backend) -> None:
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        app = create_app(backend=transport_backend(handler), storage=storage,
                         shipping_policy=ShippingPolicy())
        with TestClient(app) as client:
            client.post("/cart/items", json=ARDUINO)
            response = client.post("/checkout", json={"customer_info": form})
        assert response.status_code == 502
        assert response.json()["error"] == "Failed to validate stock availability"

    def test_validate_stock_endpoint(self, api) -> None:
        api.post("/cart/items", json=ARDUINO)
        body = api.post("/checkout/validate-stock").json()
        assert body["valid"] is True
        assert body["results"][0]["set_id"] == 1

    def test_clear_customer_info(self, api, form) -> None:
        api.post("/cart/items", json=ARDUINO)
        api.post("/checkout", json={"customer_info": form, "save_customer_info": True})
        assert api.delete("/customer-info").json() == {"saved": False}
        assert api.get("/customer-info").json()["saved"] is False


class TestStartup:
    def test_unreadable_storage_file_starts_empty(self, backend, tmp_path) -> None:
        path = tmp_path / "storage.json"
        path.write_bytes(b"\xff\xfe garbage")
        policy = ShippingPolicy(handling_cost=Decimal("15"), free_over=None)
        with TestClient(create_app(backend=backend, storage=JsonFileStore(path), shipping_policy=policy)) as client:
            assert client.get("/cart").json()["total_items"] == 0

    def test_shipping_cost_loaded_from_backend(self, backend, storage) -> None:
        with TestClient(create_app(backend=backend, storage=storage)) as client:
            client.post("/cart/items", json=ARDUINO)
            assert client.get("/cart").json()["shipping"]["cost"] == pytest.approx(12.5)

    def test_default_shipping_cost_when_backend_down(self, storage, transport_backend) -> None:
        def handler(request):
            return httpx.Response(500, json={"error": "down"})

        with TestClient(create_app(backend=transport_backend(handler), storage=storage)) as client:
            client.post("/cart/items", json=ARDUINO)
            assert client.get("/cart").json()["shipping"]["cost"] == pytest.approx(15)


class TestManualEndpoints:
    def test_parsed_steps(self, api) -> None:
        body = api.post("/manual/steps", json={"manual": "step 1. Unpack\nOpen the box"}).json()
        assert body["parsed"] is True
        assert body["steps"] == [{"step_number": 1, "title": "Unpack", "description": "Open the box", "image_url": None}]

    def test_generic_steps(self, api) -> None:
        body = api.post("/manual/steps", json={"manual": "", "tools": [{"tool_name": "Pliers"}]}).json()
        assert body["parsed"] is False
        assert [step["title"] for step in body["steps"]] == [
            "Preparation", "Tool Setup", "Assembly", "Testing & Verification",
        ]

    def test_render_text_renumbers(self, api) -> None:
        body = api.post("/manual/text", json={"steps": [
            {"step_number": 4, "title": "First", "description": "a"},
            {"step_number": 9, "title": "Second", "description": "b"},
        ]}).json()
        assert body["manual"] == "step 1. First\n\na\n\nstep 2. Second\n\nb"
        assert [step["step_number"] for step in body["steps"]] == [1, 2]
