"""Tests for durable local state."""

import json

from makerset_service.cart import CartStore
from makerset_service.models import CustomerInfo
from makerset_service.storage import (
    CART_KEY,
    CART_TIMESTAMP_KEY,
    CUSTOMER_INFO_KEY,
    CartPersistence,
    JsonFileStore,
)

DAY = 24 * 60 * 60


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestJsonFileStore:
    def test_missing_file_reads_empty(self, storage) -> None:
        assert storage.get_item("anything") is None

    def test_set_get_remove(self, storage) -> None:
        storage.set_item("a", "1")
        storage.set_item("b", "2")
        storage.remove_item("a")
        assert storage.get_item("a") is None
        assert storage.get_item("b") == "2"

    def test_survives_reopen(self, tmp_path) -> None:
        JsonFileStore(tmp_path / "s.json").set_item("k", "v")
        assert JsonFileStore(tmp_path / "s.json").get_item("k") == "v"

    def test_corrupt_file_reads_empty(self, tmp_path) -> None:
        path = tmp_path / "s.json"
        path.write_text("{not json", encoding="utf-8")
        assert JsonFileStore(path).get_item("k") is None

    def test_undecodable_file_reads_empty(self, tmp_path) -> None:
        path = tmp_path / "s.json"
        path.write_bytes(b"\xff\xfe garbage")
        assert JsonFileStore(path).get_item("k") is None
        assert CartPersistence(JsonFileStore(path)).restore(CartStore()) is False


class TestCustomerInfoStore:
    def test_save_load_clear(self, customer_store, customer_info) -> None:
        assert customer_store.exists() is False
        customer_store.save(customer_info)
        assert customer_store.exists() is True
        assert customer_store.load() == customer_info
        customer_store.clear()
        assert customer_store.load() is None

    def test_stored_as_json_object(self, storage, customer_store, customer_info) -> None:
        customer_store.save(customer_info)
        saved = json.loads(storage.get_item(CUSTOMER_INFO_KEY))
        assert set(saved) == {
            "company_name", "customer_first_name", "customer_last_name", "customer_email",
            "customer_phone", "shipping_address", "notes",
        }

    def test_unreadable_value_is_ignored(self, storage, customer_store) -> None:
        storage.set_item(CUSTOMER_INFO_KEY, "[1, 2]")
        assert customer_store.load() is None

    def test_partial_value_fills_defaults(self, storage, customer_store) -> None:
        storage.set_item(CUSTOMER_INFO_KEY, json.dumps({"company_name": "Makers"}))
        assert customer_store.load() == CustomerInfo(company_name="Makers")


class TestCartPersistence:
    def test_round_trip(self, storage) -> None:
        clock = FakeClock()
        cart = CartStore()
        cart.add_or_increment(1, "19.99", {"set_name": "Arduino Starter Kit", "provider_id": 4})
        cart.add_or_increment(1, "19.99")
        cart.add_or_increment(2, 5, {"provider_id": 4})

        persistence = CartPersistence(storage, clock=clock)
        persistence.save(cart)

        restored = CartStore()
        assert persistence.restore(restored) is True
        assert [(line.set_id, line.quantity, line.set_name) for line in restored.items()] == [
            (1, 2, "Arduino Starter Kit"),
            (2, 1, ""),
        ]
        assert restored.total_price() == cart.total_price()

    def test_expired_cart_is_discarded(self, storage) -> None:
        clock = FakeClock()
        cart = CartStore()
        cart.add_or_increment(1, 10)
        persistence = CartPersistence(storage, max_age_days=7, clock=clock)
        persistence.save(cart)

        clock.now += 7 * DAY
        assert persistence.load() == []
        assert storage.get_item(CART_KEY) is None
        assert storage.get_item(CART_TIMESTAMP_KEY) is None

    def test_recent_cart_is_kept(self, storage) -> None:
        clock = FakeClock()
        cart = CartStore()
        cart.add_or_increment(1, 10)
        persistence = CartPersistence(storage, max_age_days=7, clock=clock)
        persistence.save(cart)

        clock.now += 6 * DAY
        assert len(persistence.load()) == 1

    def test_mixed_providers_are_discarded(self, storage) -> None:
        cart = CartStore()
        cart.add_or_increment(1, 10, {"provider_id": 4})
        cart.add_or_increment(2, 10)
        persistence = CartPersistence(storage, clock=FakeClock())
        persistence.save(cart)

        assert persistence.restore(CartStore()) is False
        assert storage.get_item(CART_KEY) is None

    def test_garbage_is_discarded(self, storage) -> None:
        storage.set_item(CART_KEY, "not json")
        storage.set_item(CART_TIMESTAMP_KEY, "123")
        assert CartPersistence(storage).load() == []
        assert storage.get_item(CART_KEY) is None
