"""
main.py — FastAPI Entry Point for the MakerSet Checkout Service

This module provides the REST API interface for the shop's cart, checkout and
build-manual logic. It owns one CartStore per application instance and hands
it to the endpoints through FastAPI dependencies.

Responsibilities:
    • Cart mutations and derived totals
    • Checkout (stock validation → order creation) against the MakerSet backend
    • Saved customer information
    • Parsing and rendering of kit build manuals
    • Health information
"""

from typing import Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from .cart import CartStore, ShippingPolicy
from .checkout import CheckoutService
from .clients import BackendClient
from .errors import (
    CheckoutInProgressError,
    CustomerInfoError,
    MakerSetError,
    OrderSubmissionError,
    StockIssueError,
    StockValidationFailedError,
)
from .logging_config import get_logger, setup_logging
from .manual import StepList, generate_default_build_steps, parse_build_steps
from .models import (
    AddToCartRequest,
    CheckoutRequest,
    CustomerInfo,
    ManualRequest,
    QuantityUpdate,
    StepsRequest,
    to_price,
)
from .storage import CartPersistence, CustomerInfoStore, JsonFileStore

log = get_logger(__name__)
router = APIRouter()

ERROR_STATUS = {
    CustomerInfoError: 422,
    StockIssueError: 409,
    CheckoutInProgressError: 409,
    StockValidationFailedError: 502,
    OrderSubmissionError: 502,
}


# Dependencies
def get_cart(request: Request) -> CartStore:
    return request.app.state.cart


def get_checkout(request: Request) -> CheckoutService:
    return request.app.state.checkout


def get_backend(request: Request) -> BackendClient:
    return request.app.state.backend


def get_cart_persistence(request: Request) -> CartPersistence:
    return request.app.state.cart_persistence


def get_customer_store(request: Request) -> CustomerInfoStore:
    return request.app.state.customer_store


def reserve_quietly(backend: BackendClient, set_id: int):
    """Reserves stock for an added kit. Failures are logged; the kit stays in the cart."""
    try:
        backend.reserve_stock(set_id, 1)
    except (httpx.HTTPError, ValueError) as e:
        log.warning(f"[Cart] Stock reservation for set {set_id} failed, keeping the item: {e}")


def release_quietly(backend: BackendClient):
    try:
        backend.release_reservations()
    except (httpx.HTTPError, ValueError) as e:
        log.warning(f"[Cart] Releasing stock reservations failed: {e}")


def cart_view(cart: CartStore) -> dict:
    shipping = cart.shipping_info()
    return {
        "items": [
            {**line.model_dump(mode="json"), "line_total": float(line.line_total)}
            for line in cart.items()
        ],
        "total_items": cart.total_items(),
        "subtotal": float(cart.total_price()),
        "shipping": shipping.model_dump(mode="json"),
        "discount_code": cart.discount_code,
        "discount_amount": float(cart.discount_amount),
        "grand_total": float(cart.grand_total()),
        "provider": cart.current_provider(),
    }


# Cart endpoints
@router.get("/cart")
def read_cart(cart: CartStore = Depends(get_cart)):
    return cart_view(cart)


@router.post("/cart/items", status_code=201)
def add_to_cart(body: AddToCartRequest,
                cart: CartStore = Depends(get_cart),
                persistence: CartPersistence = Depends(get_cart_persistence),
                backend: BackendClient = Depends(get_backend)):
    """
    Adds one kit to the cart, or increments its quantity if already present.

    Stock for the kit is reserved on the backend on a best-effort basis.

    Returns:
        dict: The full cart view after the change.
    """
    metadata = body.model_dump(exclude={"set_id", "unit_price"})
    cart.add_or_increment(body.set_id, body.unit_price, metadata)
    persistence.save(cart)
    reserve_quietly(backend, body.set_id)
    return cart_view(cart)


@router.put("/cart/items/{set_id}")
def update_quantity(set_id: int, body: QuantityUpdate,
                    cart: CartStore = Depends(get_cart),
                    persistence: CartPersistence = Depends(get_cart_persistence)):
    cart.set_quantity(set_id, body.quantity)
    persistence.save(cart)
    return cart_view(cart)


@router.delete("/cart/items/{set_id}")
def remove_from_cart(set_id: int,
                     cart: CartStore = Depends(get_cart),
                     persistence: CartPersistence = Depends(get_cart_persistence)):
    cart.remove(set_id)
    persistence.save(cart)
    return cart_view(cart)


@router.delete("/cart")
def clear_cart(cart: CartStore = Depends(get_cart),
               persistence: CartPersistence = Depends(get_cart_persistence),
               backend: BackendClient = Depends(get_backend)):
    cart.clear()
    persistence.discard()
    release_quietly(backend)
    return cart_view(cart)


# Checkout endpoints
@router.post("/checkout/validate-stock")
def validate_stock(checkout: CheckoutService = Depends(get_checkout)):
    return checkout.validate_stock().model_dump(mode="json")


@router.post("/checkout", status_code=201)
def submit_checkout(body: CheckoutRequest,
                    checkout: CheckoutService = Depends(get_checkout),
                    persistence: CartPersistence = Depends(get_cart_persistence)):
    """
    Places an order for the current cart.

    The cart is validated against backend stock first; the order is only
    created if every line can be fulfilled. On success the ordered lines leave
    the cart; anything added meanwhile stays and is saved again.

    Args:
        body (CheckoutRequest): Customer form plus the save-my-details opt-in.

    Returns:
        dict: Confirmation plus the backend's order response.

    Raises:
        CustomerInfoError (422), StockIssueError (409), CheckoutInProgressError (409),
        StockValidationFailedError / OrderSubmissionError (502).
    """
    result = checkout.place_order(body.customer_info, body.save_customer_info)
    if checkout.cart.is_empty():
        persistence.discard()
    else:
        persistence.save(checkout.cart)
    return {"status": "Order placed successfully", "order": result}


@router.get("/customer-info")
def read_customer_info(store: CustomerInfoStore = Depends(get_customer_store)):
    info = store.load()
    return {"saved": info is not None, "customer_info": (info or CustomerInfo()).model_dump()}


@router.delete("/customer-info")
def clear_customer_info(store: CustomerInfoStore = Depends(get_customer_store)):
    store.clear()
    return {"saved": False}


# Manual endpoints
@router.post("/manual/steps")
def manual_steps(body: ManualRequest):
    """Build steps for a manual text, falling back to generic steps."""
    parsed = parse_build_steps(body.manual)
    steps = parsed or generate_default_build_steps(body.tools, body.parts)
    return {
        "parsed": bool(parsed),
        "steps": [step.model_dump() for step in steps],
    }


@router.post("/manual/text")
def manual_text(body: StepsRequest):
    """Renumbers the authored steps and renders them as manual text."""
    steps = StepList(body.steps)
    return {"manual": steps.to_text(), "steps": [step.model_dump() for step in steps.steps]}


# Health Check Endpoint
@router.get("/health")
def health_check():
    """
    Simple health check endpoint.

    Returns:
        dict: A basic JSON object indicating service availability.
    """
    return {"status": "ok"}


async def handle_makerset_error(request: Request, exc: MakerSetError):
    status = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    content = {"error": exc.message}
    if isinstance(exc, CustomerInfoError):
        content["fields"] = exc.field_errors
    if isinstance(exc, StockIssueError):
        content["results"] = [result.model_dump() for result in exc.results]
    return JSONResponse(status_code=status, content=content)


def create_app(backend: Optional[BackendClient] = None,
               storage: Optional[JsonFileStore] = None,
               shipping_policy: Optional[ShippingPolicy] = None) -> FastAPI:
    """
    Builds the application with its own cart, backend client and storage.

    Args:
        backend (BackendClient, optional): Client for the MakerSet backend.
        storage (JsonFileStore, optional): Durable local state.
        shipping_policy (ShippingPolicy, optional): If omitted, the handling cost is
            loaded from the backend settings at startup.
    """
    app = FastAPI(title="MakerSet Checkout Service")
    storage = storage or JsonFileStore()

    app.state.backend = backend or BackendClient()
    app.state.cart = CartStore(shipping_policy)
    app.state.cart_persistence = CartPersistence(storage)
    app.state.customer_store = CustomerInfoStore(storage)
    app.state.checkout = CheckoutService(app.state.cart, app.state.backend, app.state.customer_store)

    app.include_router(router)
    app.add_exception_handler(MakerSetError, handle_makerset_error)

    @app.on_event("startup")
    def on_startup():
        """
        Restores the saved cart and, unless a shipping policy was given,
        loads the handling cost from the backend settings.
        """
        log.info("Checkout service starting...")
        if app.state.cart_persistence.restore(app.state.cart):
            log.info(f"[Cart] Restored {app.state.cart.total_items()} items from storage.")

        if shipping_policy is None:
            try:
                value = app.state.backend.get_shipping_cost()
            except (httpx.HTTPError, ValueError) as e:
                log.warning(f"Shipping cost not loaded from backend, using default: {e}")
                return
            if value is not None:
                current = app.state.cart.shipping_policy
                app.state.cart.shipping_policy = ShippingPolicy(handling_cost=to_price(value),
                                                                free_over=current.free_over)
                log.info(f"Loaded shipping cost from settings: {value}")

    @app.on_event("shutdown")
    def on_shutdown():
        app.state.backend.close()

    return app


setup_logging()
app = create_app()
