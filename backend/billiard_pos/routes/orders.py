# backend/billiard_pos/routes/orders.py
"""
Pending order routes, per table or for the standalone (counter) bucket.

Placing, changing and removing orders move stock in the same commit;
insufficient stock returns 409 with the short items in details.
"""
from flask import Blueprint, request

from ..errors import PosError
from ..services import order_service
from ..services.checkout_service import compute_standalone_total
from ..validation import parse_bool, parse_item_ref, parse_positive_int

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _orders_response(table_id):
    orders = order_service.list_orders(table_id)
    return {"table_id": table_id, "items": [o.to_dict() for o in orders], "count": len(orders)}


@orders_bp.get("/table/<int:table_id>")
def list_table_orders_route(table_id: int):
    return _orders_response(table_id)


@orders_bp.get("/standalone")
def list_standalone_orders_route():
    response = _orders_response(None)
    response["totals"] = compute_standalone_total().to_dict()
    return response


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        return order_service.get_order(order_id).to_dict()
    except PosError as e:
        return e.to_dict(), e.status_code


@orders_bp.post("")
def place_order_route():
    """
    Add an item.

    Body: {"table_id": int | null, "product_id": int | "combo_id": int,
           "quantity": int (default 1), "name": str (optional), "price": number (optional)}
    """
    payload = request.get_json(silent=True) or {}

    try:
        table_id = payload.get("table_id")
        if table_id is not None:
            table_id = parse_positive_int(table_id, "table_id")
        order = order_service.place_order(
            table_id,
            parse_item_ref(payload),
            payload.get("quantity", 1),
            name=payload.get("name"),
            price=payload.get("price"),
        )
    except PosError as e:
        return e.to_dict(), e.status_code

    return order.to_dict(), 201


@orders_bp.put("/<int:order_id>")
def change_quantity_route(order_id: int):
    """
    Body: {"quantity": int} - 0 removes the order
    """
    payload = request.get_json(silent=True) or {}

    try:
        order = order_service.change_order_quantity(order_id, payload.get("quantity"))
    except PosError as e:
        return e.to_dict(), e.status_code

    if order is None:
        return {"ok": True, "removed": True}
    return order.to_dict()


@orders_bp.delete("/<int:order_id>")
def remove_order_route(order_id: int):
    try:
        order_service.remove_order(order_id)
    except PosError as e:
        return e.to_dict(), e.status_code

    return {"ok": True}, 200


@orders_bp.delete("/table/<int:table_id>")
def clear_table_orders_route(table_id: int):
    """
    Query params:
    - restore_stock: bool (optional, default true)
    """
    try:
        cleared = order_service.clear_orders(
            table_id,
            restore_stock=parse_bool(request.args.get("restore_stock"), default=True),
        )
    except PosError as e:
        return e.to_dict(), e.status_code

    return {"ok": True, "cleared": cleared}


@orders_bp.delete("/standalone")
def clear_standalone_orders_route():
    try:
        cleared = order_service.clear_orders(
            None,
            restore_stock=parse_bool(request.args.get("restore_stock"), default=True),
        )
    except PosError as e:
        return e.to_dict(), e.status_code

    return {"ok": True, "cleared": cleared}
