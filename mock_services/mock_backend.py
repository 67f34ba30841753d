"""
mock_backend.py — Mock Implementation of the MakerSet REST Backend

This module provides a simulated MakerSet backend for local runs and tests
of the checkout service. It exposes a FastAPI application with the endpoints
the service consumes, backed by an in-memory catalog.

Simulation Scenarios:
    • Set 1 (Arduino Starter Kit): enough stock for up to 3 kits
    • Set 2 (Solar Car): short on resistors as soon as it is ordered
    • Set 3 (Robot Arm): no parts configured
    • Orders with company name "Decline Inc" are rejected (HTTP 400)
    • Cart reservations hold kits for 15 minutes; a created order releases them

Endpoints:
    POST /api/sets/validate-stock
    POST /api/orders
    POST /api/cart/reserve
    DELETE /api/cart/reservations
    GET  /api/ratings/set/{set_id}
    POST /api/inventory/parts/{part_id}/adjust
    POST /api/inventory/parts/{part_id}/income
    PUT  /api/sets/{set_id}/visibility
    GET  /api/settings/shipping_handling_cost

Port:
    Default: 5001 (HTTP)
"""

import logging
import time
from typing import List, Literal, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

app = FastAPI(title="Mock MakerSet Backend")
logging.basicConfig(level=logging.INFO)

PARTS = {
    10: {"part_number": "R1", "part_name": "Resistor", "stock_quantity": 30},
    11: {"part_number": "LED-R", "part_name": "Red LED", "stock_quantity": 12},
    12: {"part_number": "MC-UNO", "part_name": "Microcontroller", "stock_quantity": 3},
}

# set_id -> {part_id: required quantity per kit}
SET_PARTS = {
    1: {10: 10, 11: 4, 12: 1},
    2: {10: 40},
    3: {},
}

VISIBILITY = {1: True, 2: True, 3: False}
ORDERS = []
RESERVATIONS = []

RESERVATION_SECONDS = 15 * 60

_INITIAL_STOCK = {part_id: part["stock_quantity"] for part_id, part in PARTS.items()}


def reset_state():
    """Restores the initial catalog and forgets all orders."""
    for part_id, quantity in _INITIAL_STOCK.items():
        PARTS[part_id]["stock_quantity"] = quantity
    VISIBILITY.update({1: True, 2: True, 3: False})
    ORDERS.clear()
    RESERVATIONS.clear()


class StockLine(BaseModel):
    set_id: Optional[int] = None
    quantity: Optional[int] = None


class StockRequest(BaseModel):
    sets: List[StockLine]


class ReserveRequest(BaseModel):
    set_id: Optional[int] = None
    quantity: Optional[int] = None


class AdjustRequest(BaseModel):
    adjustment_type: Literal["add", "remove", "set"]
    quantity: int
    reason: Optional[str] = None
    notes: Optional[str] = None


class IncomeRequest(BaseModel):
    quantity: int
    supplier: Optional[str] = None
    cost_per_unit: Optional[float] = None
    purchase_date: Optional[str] = None
    notes: Optional[str] = None


class VisibilityRequest(BaseModel):
    admin_visible: bool


def _check_set(set_id: int, quantity: int) -> dict:
    parts = SET_PARTS.get(set_id) or {}
    if not parts:
        return {"set_id": set_id, "valid": False, "parts_configured": False,
                "error": "No parts configured for this set"}

    insufficient = []
    for part_id, per_kit in parts.items():
        part = PARTS[part_id]
        required = per_kit * quantity
        if part["stock_quantity"] < required:
            insufficient.append({
                "part_id": part_id,
                "part_number": part["part_number"],
                "part_name": part["part_name"],
                "required": required,
                "available": part["stock_quantity"],
                "shortfall": required - part["stock_quantity"],
            })
    return {"set_id": set_id, "valid": not insufficient, "parts_configured": True,
            "insufficient_parts": insufficient}


@app.post("/api/sets/validate-stock")
def validate_stock(request: StockRequest):
    """
    Checks every requested set against part stock.

    Returns:
        dict: `valid` (all lines valid), `results` (one per line) and `summary`.
    """
    results = []
    for line in request.sets:
        if line.set_id is None or line.quantity is None:
            results.append({"set_id": line.set_id or 0, "valid": False, "error": "Missing set_id or quantity"})
            continue
        results.append(_check_set(line.set_id, line.quantity))

    valid_items = sum(1 for result in results if result["valid"])
    logging.info(f"[Backend] Stock check for {len(results)} sets, {valid_items} valid.")
    return {
        "valid": valid_items == len(results),
        "results": results,
        "summary": {
            "total_items": len(results),
            "valid_items": valid_items,
            "invalid_items": len(results) - valid_items,
        },
    }


@app.post("/api/orders", status_code=201)
def create_order(order: dict):
    if order.get("company_name") == "Decline Inc":
        logging.warning("[Backend] Order rejected.")
        return JSONResponse(status_code=400, content={"error": "Customer account is blocked"})

    order_id = len(ORDERS) + 1
    ORDERS.append(order)
    RESERVATIONS.clear()
    logging.info(f"[Backend] Order {order_id} created.")
    return {
        "success": True,
        "order": {
            "order_id": order_id,
            "order_number": f"ORD-{order_id:05d}",
            "status": order.get("status", "pending_payment"),
            "total_amount": order.get("total_amount"),
            "created_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        },
    }


def _reserved(set_id: int) -> int:
    now = time.time()
    RESERVATIONS[:] = [r for r in RESERVATIONS if r["expires_at"] > now]
    return sum(r["quantity"] for r in RESERVATIONS if r["set_id"] == set_id)


def _buildable(set_id: int) -> Optional[int]:
    """Kits that can be built from part stock; None when the set needs no parts."""
    parts = SET_PARTS.get(set_id) or {}
    if not parts:
        return None
    return min(PARTS[part_id]["stock_quantity"] // per_kit for part_id, per_kit in parts.items())


@app.post("/api/cart/reserve")
def reserve(request: ReserveRequest):
    if not request.set_id or not request.quantity or request.quantity <= 0:
        return JSONResponse(status_code=400, content={"error": "Set ID and valid quantity required"})

    buildable = _buildable(request.set_id)
    if buildable is not None:
        available = buildable - _reserved(request.set_id)
        if available < request.quantity:
            return JSONResponse(status_code=400, content={
                "error": "Insufficient stock", "available": max(available, 0), "requested": request.quantity,
            })

    expires_at = time.time() + RESERVATION_SECONDS
    RESERVATIONS.append({"set_id": request.set_id, "quantity": request.quantity, "expires_at": expires_at})
    logging.info(f"[Backend] Reserved {request.quantity} of set {request.set_id}.")
    return {
        "success": True,
        "reservation_id": len(RESERVATIONS),
        "expires_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(expires_at)),
    }


@app.delete("/api/cart/reservations")
def release_reservations():
    released = len(RESERVATIONS)
    RESERVATIONS.clear()
    return {"success": True, "released": released}


@app.get("/api/ratings/set/{set_id}")
def set_ratings(set_id: int):
    reviews = [
        {"rating": 5, "review_text": "Great first project", "user_name": "maker1"},
        {"rating": 4, "review_text": "Clear manual", "user_name": "maker2"},
    ] if set_id == 1 else []
    average = sum(review["rating"] for review in reviews) / len(reviews) if reviews else 0
    return {"success": True, "data": {
        "set_id": set_id,
        "average_rating": average,
        "review_count": len(reviews),
        "reviews": reviews,
    }}


@app.post("/api/inventory/parts/{part_id}/adjust")
def adjust_stock(part_id: int, request: AdjustRequest):
    part = PARTS.get(part_id)
    if part is None:
        return JSONResponse(status_code=404, content={"error": "Part not found"})

    previous = part["stock_quantity"]
    if request.adjustment_type == "add":
        new = previous + request.quantity
    elif request.adjustment_type == "remove":
        new = previous - request.quantity
    else:
        new = request.quantity
    if new < 0:
        return JSONResponse(status_code=400, content={"error": "Stock cannot be negative"})

    part["stock_quantity"] = new
    return {"success": True, "part_id": part_id, "previous_stock": previous, "new_stock": new}


@app.post("/api/inventory/parts/{part_id}/income")
def add_income(part_id: int, request: IncomeRequest):
    part = PARTS.get(part_id)
    if part is None:
        return JSONResponse(status_code=404, content={"error": "Part not found"})
    previous = part["stock_quantity"]
    part["stock_quantity"] = previous + request.quantity
    return {"success": True, "part_id": part_id, "previous_stock": previous,
            "new_stock": part["stock_quantity"], "supplier": request.supplier}


@app.put("/api/sets/{set_id}/visibility")
def set_visibility(set_id: int, request: VisibilityRequest):
    if set_id not in SET_PARTS:
        return JSONResponse(status_code=404, content={"error": "Set not found"})
    VISIBILITY[set_id] = request.admin_visible
    return {"success": True, "set_id": set_id, "admin_visible": request.admin_visible}


@app.get("/api/settings/shipping_handling_cost")
def shipping_handling_cost():
    return {"setting": {"setting_key": "shipping_handling_cost", "setting_value": "12.50"}}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=5001)
