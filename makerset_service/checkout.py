"""
checkout.py — Checkout Workflow for the MakerSet Cart

This module contains the checkout logic. It coordinates the cart, the
backend stock check and the order-creation call in the correct sequence.

Workflow Overview:
1. Validate the checkout form (required fields, e-mail format)
2. Validate stock for every cart line via the backend
3. Create the order via the backend
4. Clear the cart and, if the customer opted in, remember the form

State machine:
    IDLE → VALIDATING → VALIDATION_FAILED → IDLE
                      → VALIDATION_PASSED → SUBMITTING → SUCCESS → IDLE (cart cleared)
                                                       → SUBMIT_ERROR → IDLE
Only one checkout can be in flight per service instance.
"""

import enum
import logging
import re
import threading
from typing import Dict, List, Optional

import httpx

from .cart import CartStore
from .clients import BackendClient
from .errors import (
    CheckoutInProgressError,
    CustomerInfoError,
    OrderSubmissionError,
    StockIssueError,
    StockValidationFailedError,
)
from .models import (
    CartLineItem,
    CustomerInfo,
    OrderItem,
    OrderRequest,
    StockValidationResponse,
    StockValidationResult,
)
from .storage import CustomerInfoStore

log = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "company_name",
    "customer_first_name",
    "customer_last_name",
    "customer_email",
    "customer_phone",
    "shipping_address",
)
EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")


class CheckoutState(enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    VALIDATION_FAILED = "validation_failed"
    VALIDATION_PASSED = "validation_passed"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    SUBMIT_ERROR = "submit_error"


def validate_customer_info(info: CustomerInfo) -> Dict[str, str]:
    """Returns field → message for every missing or malformed form field."""
    errors = {}
    for field in REQUIRED_FIELDS:
        if not getattr(info, field).strip():
            errors[field] = "Required"
    email = info.customer_email.strip()
    if email and not EMAIL_PATTERN.search(email):
        errors["customer_email"] = "Invalid email format"
    return errors


def format_stock_issues(results: List[StockValidationResult], lines: List[CartLineItem]) -> str:
    """
    Aggregates every invalid stock result into one multi-line message.

    Example line:
        Arduino Starter Kit: Insufficient stock - Resistor (R1): need 10, have 3
    """
    names = {line.set_id: line.set_name for line in lines}
    messages = []
    for result in results:
        if result.valid:
            continue
        item_name = names.get(result.set_id) or f"Set {result.set_id}"
        if not result.parts_configured:
            messages.append(f"{item_name}: No parts configured for this set")
        elif result.insufficient_parts:
            part_details = ", ".join(
                f"{part.part_name} ({part.part_number}): need {part.required}, have {part.available}"
                for part in result.insufficient_parts
            )
            messages.append(f"{item_name}: Insufficient stock - {part_details}")
        else:
            messages.append(f"{item_name}: {result.error or 'Not available'}")
    return "Cannot place order due to stock issues:\n" + "\n".join(messages)


class CheckoutService:
    """
    Runs checkout for one cart.

    Args:
        cart (CartStore): The cart to check out. Ordered lines leave it only after a successful order.
        backend (BackendClient): Client for the stock and order endpoints.
        customer_store (CustomerInfoStore, optional): Where opted-in form data is saved.
    """

    def __init__(self, cart: CartStore, backend: BackendClient,
                 customer_store: Optional[CustomerInfoStore] = None):
        self.cart = cart
        self.backend = backend
        self.customer_store = customer_store
        self.state = CheckoutState.IDLE
        self.last_outcome: Optional[CheckoutState] = None
        self._in_flight = threading.Lock()

    def _enter(self, state: CheckoutState):
        log.info(f"[Checkout] {self.state.name} -> {state.name}")
        self.state = state

    def validate_stock(self, lines: Optional[List[CartLineItem]] = None) -> StockValidationResponse:
        """
        Checks stock for every cart line. Never mutates the cart.

        Args:
            lines (list, optional): The lines to check; defaults to the current cart.

        Returns:
            StockValidationResponse: The backend verdict. An empty cart is valid
            without a backend call.
        Raises:
            StockValidationFailedError: If the backend call fails for any reason.
        """
        if lines is None:
            lines = self.cart.items()
        if not lines:
            return StockValidationResponse(valid=True, results=[])

        payload = [{"set_id": line.set_id, "quantity": line.quantity} for line in lines]
        try:
            return self.backend.validate_stock(payload)
        except (httpx.HTTPError, ValueError) as e:
            log.error(f"[Checkout] Stock validation failed: {e}")
            raise StockValidationFailedError(e) from e

    def build_order(self, info: CustomerInfo, lines: Optional[List[CartLineItem]] = None) -> OrderRequest:
        """Builds the order payload from the form and the given lines (default: the current cart)."""
        if lines is None:
            lines = self.cart.items()
        first = lines[0] if lines else None
        subtotal, shipping, total = self.cart.totals_for(lines)
        return OrderRequest(
            **info.model_dump(),
            billing_address=info.shipping_address,
            provider_id=first.provider_id if first else None,
            provider_code=first.provider_code if first else None,
            set_type="admin" if first is None or first.provider_id is None else "provider",
            discount_code=self.cart.discount_code,
            items=[
                OrderItem(
                    set_id=line.set_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    line_total=line.line_total,
                    provider_set_id=line.provider_set_id,
                    provider_id=line.provider_id,
                )
                for line in lines
            ],
            subtotal=subtotal,
            shipping_cost=shipping.cost,
            discount_amount=self.cart.discount_amount,
            total_amount=total,
        )

    def place_order(self, info: CustomerInfo, save_customer_info: bool = False) -> dict:
        """
        Executes the complete checkout for the current cart.

        Args:
            info (CustomerInfo): The filled-in checkout form.
            save_customer_info (bool): Persist the form for the next checkout.

        Returns:
            dict: The backend's order-creation response.

        Raises:
            CheckoutInProgressError: Another checkout is running on this cart.
            CustomerInfoError: Required form fields are missing.
            StockValidationFailedError: The stock check could not be performed.
            StockIssueError: At least one line cannot be fulfilled. The cart is left untouched.
            OrderSubmissionError: The order-creation call failed. The cart is left untouched.
        """
        if not self._in_flight.acquire(blocking=False):
            log.warning("[Checkout] Rejected: another checkout is in flight.")
            raise CheckoutInProgressError()
        try:
            return self._run(info, save_customer_info)
        finally:
            self.state = CheckoutState.IDLE
            self._in_flight.release()

    def _run(self, info: CustomerInfo, save_customer_info: bool) -> dict:
        field_errors = validate_customer_info(info)
        if field_errors:
            raise CustomerInfoError(field_errors)
        # Validation, payload and cleanup all work on this one snapshot.
        lines = self.cart.items()
        if not lines:
            raise CustomerInfoError({"items": "Cart is empty"})

        # --- 1. Stock validation ---
        self._enter(CheckoutState.VALIDATING)
        try:
            validation = self.validate_stock(lines)
        except StockValidationFailedError:
            self._finish(CheckoutState.VALIDATION_FAILED)
            raise

        if not validation.valid or any(not result.valid for result in validation.results):
            message = format_stock_issues(validation.results, lines)
            log.warning(f"[Checkout] {message}")
            self._finish(CheckoutState.VALIDATION_FAILED)
            raise StockIssueError(message, validation.results)
        self._enter(CheckoutState.VALIDATION_PASSED)

        # --- 2. Order creation ---
        self._enter(CheckoutState.SUBMITTING)
        order = self.build_order(info, lines)
        try:
            result = self.backend.create_order(order)
        except httpx.HTTPStatusError as e:
            self._finish(CheckoutState.SUBMIT_ERROR)
            raise OrderSubmissionError(_backend_message(e.response) or "Failed to place order", e) from e
        except httpx.HTTPError as e:
            self._finish(CheckoutState.SUBMIT_ERROR)
            raise OrderSubmissionError("Failed to place order", e) from e

        # --- 3. Cleanup ---
        self.cart.remove_ordered(lines)
        if save_customer_info and self.customer_store is not None:
            self.customer_store.save(info)
        log.info(f"[Checkout] Order placed ({len(order.items)} lines, total {order.total_amount}).")
        self._finish(CheckoutState.SUCCESS)
        return result

    def _finish(self, outcome: CheckoutState):
        self._enter(outcome)
        self.last_outcome = outcome


def _backend_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return None
