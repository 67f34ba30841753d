"""
cart.py — Cart State for the MakerSet Shop

The cart is an explicitly owned CartStore object. Whoever needs a cart gets
one passed in (the FastAPI app keeps one on `app.state`); there is no
module-level cart.

Invariants kept by every mutation:
    • at most one line per set_id
    • no line with quantity <= 0 (setting 0 removes the line)
"""

import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional

from .config import FREE_SHIPPING_THRESHOLD, SHIPPING_HANDLING_COST
from .models import CartLineItem, ShippingInfo, to_price

log = logging.getLogger(__name__)

PLATFORM_PROVIDER_NAME = "MakerSet Platform"


@dataclass(frozen=True)
class ShippingPolicy:
    """
    Business rule for shipping and handling.

    Attributes:
        handling_cost (Decimal): Flat cost charged once per order.
        free_over (Optional[Decimal]): Subtotal from which shipping is free. None disables it.
    """
    handling_cost: Decimal = SHIPPING_HANDLING_COST
    free_over: Optional[Decimal] = FREE_SHIPPING_THRESHOLD

    def quote(self, lines: List[CartLineItem]) -> ShippingInfo:
        if not lines:
            return ShippingInfo(description="No items in cart", cost=Decimal("0"), provider_count=0)

        provider_count = len({line.provider_id for line in lines})
        subtotal = sum((line.line_total for line in lines), Decimal("0"))

        if self.free_over is not None and subtotal >= self.free_over:
            return ShippingInfo(
                description="Free shipping",
                cost=Decimal("0"),
                provider_count=provider_count,
            )

        if provider_count == 1:
            description = "Single shipment from one provider"
        else:
            description = f"Shipments from {provider_count} providers"
        return ShippingInfo(description=description, cost=self.handling_cost, provider_count=provider_count)


class CartStore:
    """
    Ordered collection of cart lines with derived totals.

    All mutations go through the methods below; callers get copies of the
    lines, never the live objects. Access is serialised by a lock, as the
    cart endpoints run on FastAPI's threadpool.
    """

    def __init__(self, shipping_policy: Optional[ShippingPolicy] = None):
        self.shipping_policy = shipping_policy or ShippingPolicy()
        self._lines: Dict[int, CartLineItem] = {}
        self.discount_code: Optional[str] = None
        self.discount_amount = Decimal("0")
        self._lock = threading.RLock()

    def add_or_increment(self, set_id: int, unit_price, metadata: Optional[dict] = None) -> CartLineItem:
        """
        Adds one kit to the cart.

        If a line for `set_id` exists its quantity grows by 1, otherwise a new
        line with quantity 1 is appended. The price and metadata of an existing
        line are left as they are.

        Args:
            set_id (int): The kit to add.
            unit_price: Price per kit; anything unparseable counts as 0.
            metadata (dict, optional): Descriptive fields (set_name, category,
                difficulty_level, provider_id, provider_name, ...).

        Returns:
            CartLineItem: A copy of the resulting line.
        """
        with self._lock:
            line = self._lines.get(set_id)
            if line is not None:
                line.quantity += 1
                log.info(f"[Cart] Set {set_id} incremented to {line.quantity}.")
                return line.model_copy()

            fields = dict(metadata or {})
            fields.pop("quantity", None)
            fields.pop("set_id", None)
            fields["unit_price"] = unit_price
            line = CartLineItem(set_id=set_id, quantity=1, **fields)
            self._lines[set_id] = line
            log.info(f"[Cart] Set {set_id} added at {line.unit_price}.")
            return line.model_copy()

    def set_quantity(self, set_id: int, quantity: int):
        """Sets the quantity of a line exactly; `quantity <= 0` removes it."""
        with self._lock:
            if quantity <= 0:
                self.remove(set_id)
                return
            line = self._lines.get(set_id)
            if line is None:
                return
            line.quantity = quantity

    def remove(self, set_id: int):
        with self._lock:
            if self._lines.pop(set_id, None) is not None:
                log.info(f"[Cart] Set {set_id} removed.")

    def clear(self):
        with self._lock:
            self._lines.clear()
            self.remove_discount()
        log.info("[Cart] Cleared.")

    def remove_ordered(self, ordered: List[CartLineItem]):
        """
        Takes the ordered quantities out of the cart.

        Lines added after the order was built stay, and so does any quantity
        added to an ordered line in the meantime. The discount is consumed.
        """
        with self._lock:
            for item in ordered:
                line = self._lines.get(item.set_id)
                if line is None:
                    continue
                remaining = line.quantity - item.quantity
                if remaining > 0:
                    line.quantity = remaining
                else:
                    del self._lines[item.set_id]
            self.remove_discount()
            log.info(f"[Cart] {len(ordered)} ordered lines removed, {len(self._lines)} left.")

    def items(self) -> List[CartLineItem]:
        with self._lock:
            return [line.model_copy() for line in self._lines.values()]

    def get_item(self, set_id: int) -> Optional[CartLineItem]:
        with self._lock:
            line = self._lines.get(set_id)
            return line.model_copy() if line is not None else None

    def is_in_cart(self, set_id: int) -> bool:
        return set_id in self._lines

    def is_empty(self) -> bool:
        return not self._lines

    def total_items(self) -> int:
        return sum(line.quantity for line in self.items())

    def total_price(self) -> Decimal:
        return sum((line.line_total for line in self.items()), Decimal("0"))

    def shipping_info(self) -> ShippingInfo:
        return self.shipping_policy.quote(self.items())

    def apply_discount(self, code: str, amount):
        self.discount_code = code
        self.discount_amount = to_price(amount)

    def remove_discount(self):
        self.discount_code = None
        self.discount_amount = Decimal("0")

    def grand_total(self) -> Decimal:
        """Subtotal minus discount (never below 0) plus shipping."""
        return self.totals_for(self.items())[2]

    def totals_for(self, lines: List[CartLineItem]):
        """
        Prices a fixed set of lines with this cart's shipping policy and discount.

        Returns:
            tuple: (subtotal, ShippingInfo, grand total).
        """
        subtotal = sum((line.line_total for line in lines), Decimal("0"))
        shipping = self.shipping_policy.quote(lines)
        discounted = max(subtotal - self.discount_amount, Decimal("0"))
        return subtotal, shipping, discounted + shipping.cost

    def current_provider(self) -> Optional[dict]:
        """
        Returns the provider of the first line, or None for an empty cart.

        Platform-owned kits (provider_id None) report the platform name.
        """
        lines = self.items()
        if not lines:
            return None
        first = lines[0]
        if first.provider_id is None:
            return {"provider_id": None, "provider_name": PLATFORM_PROVIDER_NAME}
        return {
            "provider_id": first.provider_id,
            "provider_name": first.provider_code or first.provider_name or "Unknown Provider",
        }

    def load(self, lines: List[CartLineItem]):
        """Replaces the cart content with previously persisted lines."""
        with self._lock:
            self._lines = {line.set_id: line.model_copy() for line in lines if line.quantity > 0}
