# backend/billiard_pos/routes/products.py
"""
Product catalog routes.

quantity on create is the opening stock; on update it is an absolute count
and the difference is written to the inventory ledger.
"""
from flask import Blueprint, request

from ..errors import PosError
from ..models import Product
from ..services import products_service
from ..services.inventory_service import get_product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "price", "cost", "quantity", "category"},
    required_on_create={"name", "price"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products_route():
    """
    Query params:
    - category: str (optional)
    """
    products = products_service.list_products(category=request.args.get("category"))
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return get_product(product_id).to_dict()
    except PosError as e:
        return e.to_dict(), e.status_code


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        created = products_service.create_product(patch=patch)
    except PosError as e:
        return e.to_dict(), e.status_code

    return created.to_dict(), 201


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        updated = products_service.update_product(product_id, patch=patch)
    except PosError as e:
        return e.to_dict(), e.status_code

    return updated.to_dict()


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id)
    except PosError as e:
        return e.to_dict(), e.status_code

    return {"ok": True}, 200
