"""
storage.py — Durable Local Key-Value State

A small JSON file holds the values the shop front-end keeps in browser
storage: the saved checkout form and the last cart. Reads and writes are
synchronous and whole-file; there is a single writer per file.
"""

import json
import logging
import time
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .cart import CartStore
from .config import CART_MAX_AGE_DAYS, MAKERSET_STORAGE_PATH
from .models import CartLineItem, CustomerInfo

log = logging.getLogger(__name__)

CUSTOMER_INFO_KEY = "customerInfo"
CART_KEY = "makerset_cart"
CART_TIMESTAMP_KEY = "makerset_cart_timestamp"


class JsonFileStore:
    """String key-value store persisted as one JSON object."""

    def __init__(self, path=MAKERSET_STORAGE_PATH):
        self.path = Path(path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            log.error(f"[Storage] {self.path} is not readable JSON, starting empty.")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data), encoding="utf-8")
        tmp.replace(self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_item(self, key: str, value: str):
        data = self._read()
        data[key] = value
        self._write(data)

    def remove_item(self, key: str):
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)


class CustomerInfoStore:
    """The saved checkout form, written only when the customer opts in."""

    def __init__(self, store: JsonFileStore):
        self.store = store

    def save(self, info: CustomerInfo):
        self.store.set_item(CUSTOMER_INFO_KEY, info.model_dump_json())
        log.info("[Storage] Customer info saved.")

    def load(self) -> Optional[CustomerInfo]:
        raw = self.store.get_item(CUSTOMER_INFO_KEY)
        if raw is None:
            return None
        try:
            return CustomerInfo.model_validate_json(raw)
        except ValidationError as e:
            log.error(f"[Storage] Saved customer info unreadable: {e}")
            return None

    def exists(self) -> bool:
        return self.store.get_item(CUSTOMER_INFO_KEY) is not None

    def clear(self):
        self.store.remove_item(CUSTOMER_INFO_KEY)
        log.info("[Storage] Customer info cleared.")


class CartPersistence:
    """
    Saves and restores cart lines.

    A saved cart is discarded when it is older than `max_age_days` or when
    its lines come from more than one provider.
    """

    def __init__(self, store: JsonFileStore, max_age_days: int = CART_MAX_AGE_DAYS, clock=time.time):
        self.store = store
        self.max_age_seconds = max_age_days * 24 * 60 * 60
        self.clock = clock

    def save(self, cart: CartStore):
        lines = [line.model_dump(mode="json") for line in cart.items()]
        self.store.set_item(CART_KEY, json.dumps(lines))
        self.store.set_item(CART_TIMESTAMP_KEY, str(int(self.clock() * 1000)))

    def discard(self):
        self.store.remove_item(CART_KEY)
        self.store.remove_item(CART_TIMESTAMP_KEY)

    def load(self) -> List[CartLineItem]:
        raw = self.store.get_item(CART_KEY)
        stamp = self.store.get_item(CART_TIMESTAMP_KEY)
        if raw is None or stamp is None:
            return []

        try:
            age = self.clock() - int(stamp) / 1000
            lines = [CartLineItem.model_validate(item) for item in json.loads(raw)]
        except (ValueError, TypeError, ValidationError) as e:
            log.error(f"[Storage] Saved cart unreadable, discarding: {e}")
            self.discard()
            return []

        if age >= self.max_age_seconds:
            log.info("[Storage] Saved cart expired, discarding.")
            self.discard()
            return []

        if len({line.provider_id for line in lines}) > 1:
            log.warning("[Storage] Saved cart mixes providers, discarding.")
            self.discard()
            return []

        return lines

    def restore(self, cart: CartStore) -> bool:
        """Loads the saved lines into `cart`; returns True if anything was restored."""
        lines = self.load()
        if lines:
            cart.load(lines)
        return bool(lines)
