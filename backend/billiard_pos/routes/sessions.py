# backend/billiard_pos/routes/sessions.py
"""
Session history (read-only).

Query params accept ISO-8601 datetimes with Z/offsets; they bound start_time
inclusively.
"""
from flask import Blueprint, request

from ..errors import PosError
from ..services import session_service
from ..validation import parse_bool
from billiard_pos.time_utils import parse_query_datetime

sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")


@sessions_bp.get("")
def list_sessions_route():
    """
    Query params:
    - table_id: int (optional)
    - start, end: ISO-8601 (optional)
    - open: bool (optional) - only running sessions
    - limit: int (optional)
    """
    try:
        start = parse_query_datetime(request.args.get("start"), "start")
        end = parse_query_datetime(request.args.get("end"), "end")
        sessions = session_service.list_sessions(
            start=start,
            end=end,
            table_id=request.args.get("table_id", type=int),
            open_only=parse_bool(request.args.get("open")),
            limit=request.args.get("limit", type=int),
        )
    except PosError as e:
        return e.to_dict(), e.status_code

    return {"items": [s.to_dict() for s in sessions], "count": len(sessions)}


@sessions_bp.get("/<int:session_id>")
def get_session_route(session_id: int):
    try:
        return session_service.get_session(session_id).to_dict()
    except PosError as e:
        return e.to_dict(), e.status_code
