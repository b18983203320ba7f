# backend/billiard_pos/routes/transactions.py
"""
Checkout and transaction history routes.

Checkout computes both the time and product components server-side; clients
never send amounts.
"""
from flask import Blueprint, request

from ..errors import PosError
from ..services import checkout_service, reporting_service
from ..services.reporting_service import parse_report_date
from ..validation import parse_positive_int
from billiard_pos.time_utils import parse_query_datetime

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _list_response(txns):
    return {"items": [t.to_dict() for t in txns], "count": len(txns)}


@transactions_bp.post("/checkout")
def checkout_route():
    """
    Settle a table or the standalone bucket.

    Body: {"table_id": int | null, "payment_method": "cash" | "gcash",
           "reference_number": str (gcash only, optional)}
    """
    payload = request.get_json(silent=True) or {}

    try:
        table_id = payload.get("table_id")
        if table_id is not None:
            table_id = parse_positive_int(table_id, "table_id")
        txn = checkout_service.checkout(
            table_id,
            payload.get("payment_method") or "cash",
            payload.get("reference_number"),
        )
    except PosError as e:
        return e.to_dict(), e.status_code

    return txn.to_dict(), 201


@transactions_bp.get("")
def list_transactions_route():
    """
    Query params:
    - start, end: ISO-8601 datetimes (optional, inclusive)
    """
    try:
        start = parse_query_datetime(request.args.get("start"), "start")
        end = parse_query_datetime(request.args.get("end"), "end")
    except PosError as e:
        return e.to_dict(), e.status_code

    return _list_response(checkout_service.list_transactions(start, end))


@transactions_bp.get("/range")
def range_transactions_route():
    """
    Query params:
    - start_date, end_date: YYYY-MM-DD (UTC calendar days, inclusive)
    """
    try:
        txns = reporting_service.transactions_for_days(
            parse_report_date(request.args.get("start_date"), "start_date"),
            parse_report_date(request.args.get("end_date"), "end_date"),
        )
    except PosError as e:
        return e.to_dict(), e.status_code

    return _list_response(txns)


@transactions_bp.get("/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        return checkout_service.get_transaction(transaction_id).to_dict()
    except PosError as e:
        return e.to_dict(), e.status_code
