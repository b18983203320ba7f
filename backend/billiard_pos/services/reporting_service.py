# Overview: Service-layer operations for reporting; read-only aggregation over transactions and the inventory ledger.

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal

from ..extensions import db
from ..models import InventoryLedgerEntry, Transaction
from ..models.inventory import CHANGE_SALE
from ..errors import ValidationError
from ..money import money_str, quantize_money
from ..time_utils import day_bounds
"""
Reporting Semantics

- Read-only. Transactions and ledger rows are immutable history.
- Days are UTC calendar days: [00:00, next day 00:00).
- Revenue comes from Transactions. Product movement and COGS come from
  'sale' ledger rows, using the price/cost snapshot each row carries; sale
  reversals (positive deltas) net out the units they return.
"""

MAX_REPORT_DAYS = 366
TOP_PRODUCTS_LIMIT = 10

ZERO = Decimal("0")


def parse_report_date(value: str | None, field: str = "date") -> date:
    if not value:
        raise ValidationError(f"{field} is required")
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(f"{field} must be YYYY-MM-DD")


def _window(start_date: date, end_date: date) -> tuple[datetime, datetime]:
    if end_date < start_date:
        raise ValidationError(
            "end_date must not be before start_date",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )
    if (end_date - start_date).days + 1 > MAX_REPORT_DAYS:
        raise ValidationError(f"Report range cannot exceed {MAX_REPORT_DAYS} days")
    return day_bounds(start_date, end_date)


def _transactions(start: datetime, end: datetime) -> list[Transaction]:
    return (
        db.session.query(Transaction)
        .filter(Transaction.created_at >= start, Transaction.created_at < end)
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .all()
    )


def transactions_for_days(start_date: date, end_date: date) -> list[Transaction]:
    """Transactions on the UTC calendar days start_date..end_date, newest first."""
    return _transactions(*_window(start_date, end_date))


def _sale_entries(start: datetime, end: datetime) -> list[InventoryLedgerEntry]:
    return (
        db.session.query(InventoryLedgerEntry)
        .filter(
            InventoryLedgerEntry.change_type == CHANGE_SALE,
            InventoryLedgerEntry.created_at >= start,
            InventoryLedgerEntry.created_at < end,
        )
        .order_by(InventoryLedgerEntry.id.asc())
        .all()
    )


def _product_rows(entries: list[InventoryLedgerEntry]) -> list[dict]:
    """Net units, revenue and COGS per product, best sellers (by revenue) first."""
    acc: dict = {}
    for e in entries:
        key = (e.product_id, e.product_name)
        row = acc.setdefault(key, {
            "product_id": e.product_id,
            "product_name": e.product_name,
            "category": e.category,
            "quantity": 0,
            "revenue": ZERO,
            "cogs": ZERO,
        })
        sold = -e.change_quantity
        row["quantity"] += sold
        row["revenue"] += sold * e.price
        row["cogs"] += sold * (e.cost or ZERO)

    rows = [r for r in acc.values() if r["quantity"] > 0]
    rows.sort(key=lambda r: (-r["revenue"], r["product_name"]))
    return rows


def _serialize_product_row(row: dict) -> dict:
    return {
        "product_id": row["product_id"],
        "product_name": row["product_name"],
        "category": row["category"],
        "quantity": row["quantity"],
        "revenue": money_str(row["revenue"]),
        "cogs": money_str(row["cogs"]),
        "profit": money_str(row["revenue"] - row["cogs"]),
    }


def _summarize(txns: list[Transaction], entries: list[InventoryLedgerEntry]) -> dict:
    total = sum((t.total_amount for t in txns), ZERO)
    time_revenue = sum((t.time_cost for t in txns), ZERO)
    product_revenue = sum((t.product_cost for t in txns), ZERO)
    by_method = defaultdict(lambda: ZERO)
    for t in txns:
        by_method[t.payment_method] += t.total_amount

    cogs = sum((-e.change_quantity * (e.cost or ZERO) for e in entries), ZERO)
    net = total - cogs
    margin = quantize_money(net / total * 100) if total > 0 else Decimal("0.00")

    return {
        "total_revenue": money_str(total),
        "time_revenue": money_str(time_revenue),
        "product_revenue": money_str(product_revenue),
        "transaction_count": len(txns),
        "cash_payments": money_str(by_method["cash"]),
        "gcash_payments": money_str(by_method["gcash"]),
        "gross_income": money_str(total),
        "cogs": money_str(cogs),
        "net_income": money_str(net),
        "profit_margin": money_str(margin),
    }


def _table_income(txns: list[Transaction]) -> list[dict]:
    acc: dict = {}
    for t in txns:
        if t.table_id is None:
            continue
        row = acc.setdefault(t.table_id, {
            "table_id": t.table_id,
            "table_name": t.table.name if t.table is not None else None,
            "session_count": 0,
            "time_revenue": ZERO,
            "product_revenue": ZERO,
            "total_revenue": ZERO,
        })
        row["session_count"] += 1
        row["time_revenue"] += t.time_cost
        row["product_revenue"] += t.product_cost
        row["total_revenue"] += t.total_amount

    return [
        {
            **row,
            "time_revenue": money_str(row["time_revenue"]),
            "product_revenue": money_str(row["product_revenue"]),
            "total_revenue": money_str(row["total_revenue"]),
        }
        for _, row in sorted(acc.items())
    ]


def daily_report(day: date) -> dict:
    start, end = _window(day, day)
    txns = _transactions(start, end)
    entries = _sale_entries(start, end)

    return {
        "date": day.isoformat(),
        "summary": _summarize(txns, entries),
        "table_income": _table_income(txns),
        "top_products": [_serialize_product_row(r) for r in _product_rows(entries)[:TOP_PRODUCTS_LIMIT]],
        "transactions": [t.to_dict() for t in txns],
    }


def range_report(start_date: date, end_date: date) -> dict:
    """
    One summary row per day in [start_date, end_date] plus totals over the
    whole range. Backs the weekly and monthly views.
    """
    start, end = _window(start_date, end_date)
    txns = _transactions(start, end)
    entries = _sale_entries(start, end)

    txns_by_day = defaultdict(list)
    for t in txns:
        txns_by_day[t.created_at.date()].append(t)
    entries_by_day = defaultdict(list)
    for e in entries:
        entries_by_day[e.created_at.date()].append(e)

    days = []
    day = start_date
    while day <= end_date:
        days.append({"date": day.isoformat(), **_summarize(txns_by_day[day], entries_by_day[day])})
        day += timedelta(days=1)

    return {
        "start_date": start_date.isoformat(),
        "end_date": end_date.isoformat(),
        "days": days,
        "totals": _summarize(txns, entries),
        "table_income": _table_income(txns),
    }


def product_sales(start_date: date, end_date: date) -> list[dict]:
    """Net units, revenue, COGS and profit per product over the range."""
    start, end = _window(start_date, end_date)
    return [_serialize_product_row(r) for r in _product_rows(_sale_entries(start, end))]
