# backend/billiard_pos/routes/combos.py
"""
Combo item routes.

Payloads carry the recipe as
    "components": [{"product_id": int, "quantity": int}, ...]
On update, sending components replaces the whole recipe.
"""
from flask import Blueprint, request

from ..errors import PosError
from ..models import ComboItem
from ..services import combo_service
from ..services.inventory_service import check_combo_stock
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_combo,
    parse_bool,
    parse_components,
)

COMBO_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "price", "category"},
    required_on_create={"name", "price", "components"},
    extra_fields={"components"},
)

combos_bp = Blueprint("combos", __name__, url_prefix="/api/combo-items")


@combos_bp.get("")
def list_combos_route():
    """
    Query params:
    - include_inactive: bool (optional)
    """
    try:
        combos = combo_service.list_combos(include_inactive=parse_bool(request.args.get("include_inactive")))
    except PosError as e:
        return e.to_dict(), e.status_code
    return {"items": [c.to_dict() for c in combos], "count": len(combos)}


@combos_bp.get("/<int:combo_id>")
def get_combo_route(combo_id: int):
    try:
        return combo_service.get_combo(combo_id).to_dict()
    except PosError as e:
        return e.to_dict(), e.status_code


@combos_bp.post("")
def create_combo_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=ComboItem, payload=payload, policy=COMBO_POLICY, partial=False)
        enforce_rules_combo(patch)
        components = parse_components(payload.get("components"))
        combo = combo_service.create_combo(patch=patch, components=components)
    except PosError as e:
        return e.to_dict(), e.status_code

    return combo.to_dict(), 201


@combos_bp.put("/<int:combo_id>")
def update_combo_route(combo_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=ComboItem, payload=payload, policy=COMBO_POLICY, partial=True)
        enforce_rules_combo(patch)
        components = parse_components(payload["components"]) if "components" in payload else None
        combo = combo_service.update_combo(combo_id, patch=patch, components=components)
    except PosError as e:
        return e.to_dict(), e.status_code

    return combo.to_dict()


@combos_bp.delete("/<int:combo_id>")
def deactivate_combo_route(combo_id: int):
    try:
        combo_service.deactivate_combo(combo_id)
    except PosError as e:
        return e.to_dict(), e.status_code

    return {"ok": True}, 200


@combos_bp.get("/<int:combo_id>/check-stock")
def check_stock_route(combo_id: int):
    """
    Query params:
    - quantity: int (optional, default 1) - number of combos to check
    """
    try:
        return check_combo_stock(combo_id, request.args.get("quantity", default="1"))
    except PosError as e:
        return e.to_dict(), e.status_code
