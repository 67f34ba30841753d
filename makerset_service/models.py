"""
models.py — Data Models for Cart, Checkout and Build Manuals

This module defines the data structures exchanged with the MakerSet backend
and the checkout API. It uses Pydantic models to ensure type safety and
automatic validation of incoming data.

Models:
    - CartLineItem: One kit entry in the cart.
    - StockValidationResult / StockValidationResponse: Backend stock check.
    - CustomerInfo: The checkout form.
    - OrderItem / OrderRequest: Payload for the order-creation endpoint.
    - ShippingInfo: Derived shipping cost and description.
    - BuildStep: One numbered instruction of a kit manual.
    - SetRatings, StockAdjustment, StockIncome: Other backend payloads.
"""

import math
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, PlainSerializer, field_validator

# Decimal in Python, plain JSON number on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


def to_price(value: Any) -> Decimal:
    """
    Coerces a price read from any source into a Decimal.

    Missing, NaN, infinite, negative or unparseable values count as 0, so a
    single malformed line never poisons the cart total.
    """
    if value is None or isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, float) and not math.isfinite(value):
        return Decimal("0")
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not price.is_finite() or price < 0:
        return Decimal("0")
    return price


class CartLineItem(BaseModel):
    """
    Represents a single kit in the cart.

    Attributes:
        set_id (int): Kit identifier, unique within a cart.
        quantity (int): Number of kits. Always at least 1.
        unit_price (Decimal): Price per kit. Malformed input is stored as 0.
        provider_id (Optional[int]): Vendor of the kit, None for platform-owned kits.
        set_name, category, difficulty_level (str): Descriptive only.
    """
    set_id: int
    quantity: int = Field(1, ge=1)
    unit_price: Money = Decimal("0")
    provider_id: Optional[int] = None
    provider_set_id: Optional[int] = None
    provider_name: Optional[str] = None
    provider_code: Optional[str] = None
    set_name: str = ""
    category: str = ""
    difficulty_level: str = ""

    @field_validator("unit_price", mode="before")
    @classmethod
    def _coerce_price(cls, value):
        return to_price(value)

    @property
    def line_total(self) -> Decimal:
        return self.quantity * to_price(self.unit_price)


class InsufficientPart(BaseModel):
    part_id: Optional[int] = None
    part_name: str = ""
    part_number: str = ""
    required: int
    available: int
    shortfall: Optional[int] = None


class StockValidationResult(BaseModel):
    """Stock check result for one cart line, as reported by the backend."""
    set_id: int
    valid: bool
    parts_configured: bool = True
    insufficient_parts: List[InsufficientPart] = Field(default_factory=list)
    error: Optional[str] = None


class StockValidationSummary(BaseModel):
    total_items: int = 0
    valid_items: int = 0
    invalid_items: int = 0


class StockValidationResponse(BaseModel):
    valid: bool
    results: List[StockValidationResult] = Field(default_factory=list)
    summary: StockValidationSummary = Field(default_factory=StockValidationSummary)


class CustomerInfo(BaseModel):
    """
    The checkout form. Field names match the backend order payload and the
    locally persisted copy.
    """
    company_name: str = ""
    customer_first_name: str = ""
    customer_last_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    shipping_address: str = ""
    notes: str = ""


class ShippingInfo(BaseModel):
    description: str
    cost: Money
    provider_count: int = 0


class OrderItem(BaseModel):
    set_id: int
    quantity: int = Field(..., gt=0)
    unit_price: Money
    line_total: Money
    provider_set_id: Optional[int] = None
    provider_id: Optional[int] = None


class OrderRequest(CustomerInfo):
    """
    Represents the order payload posted to the backend.

    Attributes:
        provider_id (Optional[int]): Provider of the first line, None for platform kits.
        set_type (str): 'admin' for platform kits, 'provider' otherwise.
        items (List[OrderItem]): The cart lines.
        subtotal, shipping_cost, discount_amount, total_amount (Decimal): Computed totals.
        status (str): Orders start as 'pending_payment'; an admin confirms the payment.
    """
    billing_address: str = ""
    provider_id: Optional[int] = None
    provider_code: Optional[str] = None
    set_type: Literal["admin", "provider"] = "admin"
    payment_method: str = "credit_card"
    status: str = "pending_payment"
    discount_code: Optional[str] = None
    items: List[OrderItem]
    subtotal: Money
    shipping_cost: Money
    discount_amount: Money = Decimal("0")
    total_amount: Money


class BuildStep(BaseModel):
    """
    One numbered instruction unit of a kit's assembly manual.

    Attributes:
        step_number (int): Step number as written or assigned by position.
        title (str): Non-empty step title.
        description (str): Free text, possibly empty or multi-line.
    """
    step_number: int
    title: str = Field(..., min_length=1)
    description: str = ""
    image_url: Optional[str] = None


class Review(BaseModel):
    rating: int
    review_text: Optional[str] = None
    user_name: Optional[str] = None
    created_at: Optional[str] = None


class SetRatings(BaseModel):
    set_id: int
    average_rating: float = 0.0
    review_count: int = 0
    reviews: List[Review] = Field(default_factory=list)


class StockAdjustment(BaseModel):
    adjustment_type: Literal["add", "remove", "set"]
    quantity: int = Field(..., ge=0)
    reason: Optional[str] = None
    notes: Optional[str] = None


class StockIncome(BaseModel):
    quantity: int = Field(..., gt=0)
    supplier: Optional[str] = None
    cost_per_unit: Optional[Money] = None
    purchase_date: Optional[date] = None
    notes: Optional[str] = None


# --- Checkout API request bodies ---

class AddToCartRequest(BaseModel):
    set_id: int
    unit_price: Optional[Union[float, str]] = None
    set_name: str = ""
    category: str = ""
    difficulty_level: str = ""
    provider_id: Optional[int] = None
    provider_set_id: Optional[int] = None
    provider_name: Optional[str] = None
    provider_code: Optional[str] = None


class QuantityUpdate(BaseModel):
    quantity: int  # <= 0 removes the line


class CheckoutRequest(BaseModel):
    customer_info: CustomerInfo
    save_customer_info: bool = False


class ManualRequest(BaseModel):
    manual: Optional[str] = None
    tools: List[dict] = Field(default_factory=list)
    parts: List[dict] = Field(default_factory=list)


class StepsRequest(BaseModel):
    steps: List[BuildStep]
