# Overview: Service-layer operations for checkout; totals and the atomic transaction finalizer.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Table, TableSession, Transaction
from ..models.tables import MODE_OPEN, TABLE_AVAILABLE, TABLE_INACTIVE
from ..errors import InvalidStateError, NotFoundError
from ..money import money_str, quantize_money
from ..time_utils import utcnow
from ..validation import enforce_payment
from .. import events
from .concurrency import begin_exclusive, run_with_retry
from .order_service import delete_orders_for_scope, list_orders
from .pricing_service import (
    compute_open_time_cost,
    compute_session_time_cost,
    session_duration_minutes,
    session_elapsed_seconds,
)
from .settings_service import get_rates
from .table_service import get_table, latest_session, open_session, table_view
"""
Checkout Invariants (authoritative)

- total = time_cost + product_cost, both computed at checkout time.
- time_cost comes from the table's latest session while the table is billing
  (occupied, stopped or needs_checkout); an available table bills no time,
  so a checked-out session is never billed twice.
- product_cost = sum(price x quantity) over the scope's pending orders.
- One checkout writes exactly one Transaction, and in the same commit:
    table scope: closes any open session, deletes the table's orders and
    sets the table to available.
    standalone scope: deletes the table_id NULL orders only.
- Stock is not touched: pending orders were deducted when placed.
"""


@dataclass(frozen=True)
class TableTotal:
    table_id: int | None
    session_id: int | None
    time_cost: Decimal
    product_cost: Decimal
    time_breakdown: str | None = None

    @property
    def total(self) -> Decimal:
        return quantize_money(self.time_cost + self.product_cost)

    def to_dict(self) -> dict:
        return {
            "table_id": self.table_id,
            "session_id": self.session_id,
            "time_cost": money_str(self.time_cost),
            "product_cost": money_str(self.product_cost),
            "total": money_str(self.total),
            "time_breakdown": self.time_breakdown,
        }


def _product_cost(table_id: int | None) -> Decimal:
    total = sum((o.line_total for o in list_orders(table_id)), Decimal("0"))
    return quantize_money(total)


def _billable_session(table: Table) -> TableSession | None:
    if table.status in (TABLE_AVAILABLE, TABLE_INACTIVE):
        return None
    return latest_session(table.id)


def _table_total(table: Table, now: datetime) -> TableTotal:
    session = _billable_session(table)
    time_cost = Decimal("0.00")
    breakdown = None
    if session is not None:
        rates = get_rates()
        time_cost = compute_session_time_cost(session, rates, now)
        if session.mode == MODE_OPEN:
            breakdown = compute_open_time_cost(session_elapsed_seconds(session, now), rates).breakdown

    return TableTotal(
        table_id=table.id,
        session_id=session.id if session is not None else None,
        time_cost=time_cost,
        product_cost=_product_cost(table.id),
        time_breakdown=breakdown,
    )


def compute_table_total(table_id: int, *, now: datetime | None = None) -> TableTotal:
    """What checking out the table right now would charge."""
    return _table_total(get_table(table_id), now or utcnow())


def compute_standalone_total() -> TableTotal:
    return TableTotal(
        table_id=None,
        session_id=None,
        time_cost=Decimal("0.00"),
        product_cost=_product_cost(None),
    )


def checkout(
    table_id: int | None,
    payment_method: str | None = "cash",
    reference_number: str | None = None,
    *,
    now: datetime | None = None,
) -> Transaction:
    """
    Settle a table (or the standalone bucket when table_id is None) and
    record the Transaction. All-or-nothing.
    """
    method, reference = enforce_payment(payment_method, reference_number)
    now = now or utcnow()

    def _op():
        begin_exclusive()

        if table_id is None:
            totals = compute_standalone_total()
            table = None
        else:
            table = get_table(table_id, lock=True)
            if table.status == TABLE_INACTIVE:
                raise InvalidStateError("Table is inactive", details={"table_id": table_id})
            totals = _table_total(table, now)

        txn = Transaction(
            table_id=table_id,
            session_id=totals.session_id,
            total_amount=totals.total,
            time_cost=totals.time_cost,
            product_cost=totals.product_cost,
            payment_method=method,
            reference_number=reference,
            created_at=now,
        )
        db.session.add(txn)

        if table is not None:
            session = open_session(table.id)
            if session is not None:
                session.end_time = now
                session.duration_minutes = session_duration_minutes(session, now)
            table.status = TABLE_AVAILABLE

        cleared = delete_orders_for_scope(table_id)
        db.session.commit()
        return txn, table, cleared

    txn, table, cleared = run_with_retry(_op)
    current_app.logger.info(
        "Checkout %s: %s total %s (time %s, products %s, %s line(s)) via %s",
        txn.id,
        f"table {table_id}" if table_id is not None else "standalone",
        money_str(txn.total_amount),
        money_str(txn.time_cost),
        money_str(txn.product_cost),
        cleared,
        txn.payment_method,
    )

    events.publish(events.transaction_completed, transaction=txn.to_dict())
    if table is not None:
        events.publish(events.table_changed, table=table_view(table, latest_session(table.id), now))
    events.publish(events.order_changed, table_id=table_id, orders=[])
    return txn


def list_transactions(start: datetime | None = None, end: datetime | None = None) -> list[Transaction]:
    """Transactions newest first; start/end bound created_at inclusively."""
    query = db.session.query(Transaction)
    if start is not None:
        query = query.filter(Transaction.created_at >= start)
    if end is not None:
        query = query.filter(Transaction.created_at <= end)
    return query.order_by(Transaction.created_at.desc(), Transaction.id.desc()).all()


def get_transaction(transaction_id: int) -> Transaction:
    txn = db.session.get(Transaction, transaction_id)
    if txn is None:
        raise NotFoundError("Transaction not found", details={"transaction_id": transaction_id})
    return txn
