# backend/billiard_pos/routes/inventory.py
"""
Inventory routes: stock summary, ledger history and manual adjustments.

Adjustments floor stock at zero; the ledger keeps the requested delta.
"""
from flask import Blueprint, request

from ..errors import PosError, ValidationError
from ..models.inventory import CHANGE_ADJUSTMENT
from ..services import inventory_service
from ..services.ledger_service import replay_quantity, verify_ledger
from ..validation import parse_positive_int

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

LEDGER_MAX_LIMIT = 1000


@inventory_bp.get("")
def inventory_summary_route():
    items = inventory_service.inventory_summary()
    return {"items": items, "count": len(items)}


@inventory_bp.get("/low-stock")
def low_stock_route():
    """
    Query params:
    - threshold: int (optional) - defaults to LOW_STOCK_THRESHOLD
    """
    products = inventory_service.low_stock(request.args.get("threshold", type=int))
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@inventory_bp.get("/ledger")
def ledger_route():
    """
    Query params:
    - product_id: int (optional)
    - limit: int (optional, default 200, max 1000)
    """
    limit = min(request.args.get("limit", default=200, type=int) or 200, LEDGER_MAX_LIMIT)
    entries = inventory_service.list_ledger(
        product_id=request.args.get("product_id", type=int),
        limit=limit,
    )
    return {"items": [e.to_dict() for e in entries], "count": len(entries)}


@inventory_bp.post("/adjust")
def adjust_inventory_route():
    """
    Adjust stock.

    Body: {"product_id": int, "change_quantity": int (signed),
           "change_type": "adjustment" (default) | "add" | "update" | "sale",
           "note": str (optional)}
    """
    payload = request.get_json(silent=True) or {}

    try:
        if "change_quantity" not in payload:
            raise ValidationError("change_quantity is required")
        result = inventory_service.adjust_inventory(
            parse_positive_int(payload.get("product_id"), "product_id"),
            payload["change_quantity"],
            payload.get("change_type") or CHANGE_ADJUSTMENT,
            note=payload.get("note"),
        )
    except PosError as e:
        return e.to_dict(), e.status_code

    return result, 201


@inventory_bp.get("/verify")
def verify_ledger_route():
    """Ledger replay vs stored quantity, for every product or one product_id."""
    product_id = request.args.get("product_id", type=int)
    try:
        mismatches = verify_ledger(product_id)
    except PosError as e:
        return e.to_dict(), e.status_code

    response = {"consistent": not mismatches, "mismatches": mismatches}
    if product_id is not None:
        response["replayed_quantity"] = replay_quantity(product_id)
    return response
