"""
This module provides the communication client for the MakerSet REST backend:
- Stock validation for cart lines
- Order creation
- Cart stock reservations
- Ratings, inventory adjustments and set visibility
The client encapsulates the HTTP details, timeouts and error logging.
"""

import logging
import time
import uuid
from typing import Callable, List, Optional

import httpx

from .config import MAKERSET_API_RETRIES, MAKERSET_API_TIMEOUT, MAKERSET_API_URL
from .models import (
    OrderRequest,
    SetRatings,
    StockAdjustment,
    StockIncome,
    StockValidationResponse,
)

log = logging.getLogger(__name__)


class BackendClient:
    """
    Client for the MakerSet backend (REST API).

    Every call raises httpx errors to the caller after logging them; retries
    happen only for connect failures, where the request never reached the
    server.
    """
    def __init__(self, base_url: str = MAKERSET_API_URL, client: Optional[httpx.Client] = None,
                 retries: int = MAKERSET_API_RETRIES, retry_delay: float = 0.5):
        """
        Initializes the HTTP client with proper timeout configuration.

        Args:
            base_url (str): Backend API root, e.g. 'http://localhost:5001/api'.
            client (httpx.Client, optional): Preconfigured client (used by tests).
            retries (int): Extra attempts after a connect failure.
            retry_delay (float): Seconds to wait between attempts.
        """
        if client is None:
            timeout_config = httpx.Timeout(MAKERSET_API_TIMEOUT, read=MAKERSET_API_TIMEOUT + 3.0)
            client = httpx.Client(base_url=base_url, timeout=timeout_config)
        self.client = client
        self.retries = max(0, retries)
        self.retry_delay = retry_delay

    def close(self):
        """Closes the HTTP client session."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _send(self, send: Callable[[], httpx.Response], what: str) -> httpx.Response:
        attempt = 0
        while True:
            try:
                response = send()
                response.raise_for_status()  # raises HTTPStatusError on 4xx/5xx
                return response
            except httpx.ConnectError as e:
                if attempt >= self.retries:
                    log.error(f"{what}: backend unreachable after {attempt + 1} attempts ({e}).")
                    raise
                attempt += 1
                log.warning(f"{what}: connect failed ({e}), retry {attempt}/{self.retries}.")
                time.sleep(self.retry_delay)
            except httpx.TimeoutException:
                log.error(f"{what}: backend timeout. Outcome unknown.")
                raise
            except httpx.HTTPStatusError as e:
                log.error(f"{what}: HTTP {e.response.status_code} - {_error_text(e.response)}")
                raise

    def validate_stock(self, lines: List[dict]) -> StockValidationResponse:
        """
        Asks the backend whether every cart line can be fulfilled from stock.

        Args:
            lines (list): Dicts with 'set_id' and 'quantity'.
        Returns:
            StockValidationResponse: Overall verdict plus one result per line.
        Raises:
            httpx.HTTPError: If the call fails.
        """
        response = self._send(
            lambda: self.client.post("/sets/validate-stock", json={"sets": lines}),
            "[Stock] Validation",
        )
        return StockValidationResponse.model_validate(response.json())

    def create_order(self, order: OrderRequest) -> dict:
        """
        Creates a new order.

        One Idempotency-Key is generated per order and reused across connect
        retries, so the backend can deduplicate.

        Returns:
            dict: JSON response of the backend (contains the created order), or an
            empty dict if a successful response carries no JSON body.
        Raises:
            httpx.HTTPError: If the call fails.
        """
        headers = {"Idempotency-Key": str(uuid.uuid4())}
        payload = order.model_dump(mode="json")
        response = self._send(
            lambda: self.client.post("/orders", json=payload, headers=headers),
            "[Order] Creation",
        )
        try:
            return response.json()
        except ValueError:
            log.warning(f"[Order] Created (HTTP {response.status_code}) but the response is not JSON.")
            return {}

    def reserve_stock(self, set_id: int, quantity: int = 1) -> dict:
        """
        Holds stock for a kit that was put into the cart.

        The backend keeps the reservation for 15 minutes and answers HTTP 400
        when the kit cannot be built from the remaining stock.

        Returns:
            dict: Reservation id and expiry.
        Raises:
            httpx.HTTPError: If the call fails.
        """
        response = self._send(
            lambda: self.client.post("/cart/reserve", json={"set_id": set_id, "quantity": quantity}),
            f"[Set: {set_id}] Stock reservation",
        )
        return response.json()

    def release_reservations(self) -> int:
        """Releases every cart reservation; returns how many were dropped."""
        response = self._send(
            lambda: self.client.delete("/cart/reservations"),
            "[Cart] Reservation release",
        )
        return int(response.json().get("released", 0))

    def get_set_ratings(self, set_id: int) -> SetRatings:
        response = self._send(
            lambda: self.client.get(f"/ratings/set/{set_id}"),
            f"[Set: {set_id}] Ratings",
        )
        body = response.json()
        return SetRatings.model_validate(body.get("data") or {"set_id": set_id})

    def adjust_stock(self, part_id: int, adjustment: StockAdjustment) -> dict:
        payload = adjustment.model_dump(mode="json", exclude_none=True)
        response = self._send(
            lambda: self.client.post(f"/inventory/parts/{part_id}/adjust", json=payload),
            f"[Part: {part_id}] Stock adjustment",
        )
        return response.json()

    def add_income(self, part_id: int, income: StockIncome) -> dict:
        payload = income.model_dump(mode="json", exclude_none=True)
        response = self._send(
            lambda: self.client.post(f"/inventory/parts/{part_id}/income", json=payload),
            f"[Part: {part_id}] Stock income",
        )
        return response.json()

    def set_visibility(self, set_id: int, visible: bool) -> dict:
        response = self._send(
            lambda: self.client.put(f"/sets/{set_id}/visibility", json={"admin_visible": visible}),
            f"[Set: {set_id}] Visibility",
        )
        return response.json()

    def get_shipping_cost(self) -> Optional[str]:
        """
        Reads the configured handling cost from the backend system settings.

        Returns:
            Optional[str]: The raw setting value, or None if the backend has none.
        """
        response = self._send(
            lambda: self.client.get("/settings/shipping_handling_cost"),
            "[Settings] Shipping cost",
        )
        data = response.json()
        setting = data.get("setting") or {}
        return setting.get("setting_value") or data.get("value")


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return str(body)
