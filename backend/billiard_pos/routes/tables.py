# backend/billiard_pos/routes/tables.py
"""
Table and session state-machine routes.

Every state change goes through services/session_service.py; routes only
parse input and translate domain errors into JSON responses.
"""
from flask import Blueprint, request

from ..errors import PosError
from ..services import session_service, table_service
from ..services.checkout_service import compute_table_total

tables_bp = Blueprint("tables", __name__, url_prefix="/api/tables")


@tables_bp.get("")
def list_tables_route():
    return {"items": table_service.list_tables()}


@tables_bp.get("/<int:table_id>")
def get_table_route(table_id: int):
    try:
        return table_service.get_table_detail(table_id)
    except PosError as e:
        return e.to_dict(), e.status_code


@tables_bp.put("/count")
def set_table_count_route():
    """
    Provision tables 1..count.

    Body: {"count": int}
    """
    payload = request.get_json(silent=True) or {}
    try:
        return table_service.set_table_count(payload.get("count"))
    except PosError as e:
        return e.to_dict(), e.status_code


@tables_bp.post("/<int:table_id>/start")
def start_session_route(table_id: int):
    """
    Start a session.

    Body: {"mode": "open" | "hour" | "countdown", "duration": seconds (countdown only)}
    """
    payload = request.get_json(silent=True) or {}
    try:
        session = session_service.start_session(
            table_id,
            payload.get("mode") or "open",
            payload.get("duration"),
        )
    except PosError as e:
        return e.to_dict(), e.status_code

    return {"session": session.to_dict(), "table": table_service.get_table_detail(table_id)}, 201


@tables_bp.post("/<int:table_id>/stop")
def stop_session_route(table_id: int):
    try:
        return session_service.stop_session(table_id)
    except PosError as e:
        return e.to_dict(), e.status_code


@tables_bp.post("/<int:table_id>/extend")
def extend_session_route(table_id: int):
    """
    Add time to a countdown session.

    Body: {"added_duration": seconds}
    """
    payload = request.get_json(silent=True) or {}
    try:
        session = session_service.extend_session(table_id, payload.get("added_duration"))
    except PosError as e:
        return e.to_dict(), e.status_code

    return {
        "session": session.to_dict(),
        "extension": session.extensions[-1].to_dict(),
        "total_allocated_seconds": session.total_allocated_seconds,
    }, 201


@tables_bp.post("/<int:table_id>/reset")
def reset_table_route(table_id: int):
    try:
        return session_service.reset_table(table_id)
    except PosError as e:
        return e.to_dict(), e.status_code


@tables_bp.get("/<int:table_id>/total")
def table_total_route(table_id: int):
    try:
        return compute_table_total(table_id).to_dict()
    except PosError as e:
        return e.to_dict(), e.status_code
