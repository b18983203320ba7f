# backend/billiard_pos/routes/reports.py
"""
Read-only reports over transactions and the inventory ledger.

Dates are YYYY-MM-DD UTC calendar days; ranges are inclusive of both ends.
"""
import calendar
from datetime import date, timedelta

from flask import Blueprint, request

from ..errors import PosError, ValidationError
from ..services import reporting_service
from ..services.reporting_service import parse_report_date

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _range_args() -> tuple[date, date]:
    start_date = parse_report_date(request.args.get("start_date"), "start_date")
    end_date = parse_report_date(request.args.get("end_date"), "end_date")
    return start_date, end_date


@reports_bp.get("/daily/<day>")
def daily_report_route(day: str):
    try:
        return reporting_service.daily_report(parse_report_date(day))
    except PosError as e:
        return e.to_dict(), e.status_code


@reports_bp.get("/range")
def range_report_route():
    """
    Query params:
    - start_date, end_date: YYYY-MM-DD (required)
    """
    try:
        return reporting_service.range_report(*_range_args())
    except PosError as e:
        return e.to_dict(), e.status_code


@reports_bp.get("/weekly")
def weekly_report_route():
    """
    Seven days starting at start_date.

    Query params:
    - start_date: YYYY-MM-DD (required)
    """
    try:
        start_date = parse_report_date(request.args.get("start_date"), "start_date")
        return reporting_service.range_report(start_date, start_date + timedelta(days=6))
    except PosError as e:
        return e.to_dict(), e.status_code


@reports_bp.get("/monthly/<int:year>/<int:month>")
def monthly_report_route(year: int, month: int):
    try:
        if not 1 <= month <= 12 or not 1 <= year <= 9999:
            raise ValidationError("Invalid year or month", details={"year": year, "month": month})
        last_day = calendar.monthrange(year, month)[1]
        return reporting_service.range_report(date(year, month, 1), date(year, month, last_day))
    except PosError as e:
        return e.to_dict(), e.status_code


@reports_bp.get("/products")
def product_sales_route():
    """
    Query params:
    - start_date, end_date: YYYY-MM-DD (required)
    """
    try:
        rows = reporting_service.product_sales(*_range_args())
    except PosError as e:
        return e.to_dict(), e.status_code

    return {"items": rows, "count": len(rows)}
