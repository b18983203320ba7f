# Overview: Service-layer operations for tables; provisioning and read views of table state.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import OrderItem, Table, TableSession, Transaction
from ..models.tables import TABLE_AVAILABLE, TABLE_INACTIVE
from ..errors import InvalidStateError, NotFoundError
from ..time_utils import to_utc_z, utcnow
from .. import events
from .concurrency import begin_exclusive, lock_for_update, run_with_retry
from .pricing_service import remaining_seconds, session_elapsed_seconds


def get_table(table_id: int, *, lock: bool = False) -> Table:
    query = db.session.query(Table).filter_by(id=table_id)
    if lock:
        query = lock_for_update(query)
    table = query.first()
    if table is None:
        raise NotFoundError("Table not found", details={"table_id": table_id})
    return table


def latest_session(table_id: int) -> TableSession | None:
    """Most recent session of a table (open or closed), by id."""
    return (
        db.session.query(TableSession)
        .filter_by(table_id=table_id)
        .order_by(TableSession.id.desc())
        .first()
    )


def open_session(table_id: int) -> TableSession | None:
    """The running session of a table, if any (end_time NULL)."""
    return (
        db.session.query(TableSession)
        .filter(TableSession.table_id == table_id, TableSession.end_time.is_(None))
        .first()
    )


def table_view(table: Table, session: TableSession | None, now: datetime | None = None) -> dict:
    """
    Table state as the POS screen consumes it: status plus the latest session,
    with derived timing (elapsed, remaining countdown time).
    """
    now = now or utcnow()
    view = table.to_dict()
    view.update({
        "is_active": session is not None and session.is_open,
        "session_id": None,
        "mode": None,
        "start_time": None,
        "end_time": None,
        "countdown_duration": None,
        "time_extensions": [],
        "elapsed_seconds": None,
        "total_allocated_seconds": None,
        "remaining_seconds": None,
    })
    if session is None:
        return view

    view.update({
        "session_id": session.id,
        "mode": session.mode,
        "start_time": to_utc_z(session.start_time),
        "end_time": to_utc_z(session.end_time),
        "countdown_duration": session.countdown_duration,
        "time_extensions": [ext.to_dict() for ext in session.extensions],
        "elapsed_seconds": session_elapsed_seconds(session, now),
        "total_allocated_seconds": session.total_allocated_seconds,
        "remaining_seconds": remaining_seconds(session, now),
    })
    return view


def list_tables(now: datetime | None = None) -> list[dict]:
    """All non-inactive tables ordered by id, each with its latest session."""
    now = now or utcnow()
    tables = (
        db.session.query(Table)
        .filter(Table.status != TABLE_INACTIVE)
        .order_by(Table.id.asc())
        .all()
    )
    return [table_view(t, latest_session(t.id), now) for t in tables]


def get_table_detail(table_id: int, now: datetime | None = None) -> dict:
    """Table view plus pending orders and the running total."""
    from .order_service import list_orders
    from .checkout_service import compute_table_total

    now = now or utcnow()
    table = get_table(table_id)
    view = table_view(table, latest_session(table.id), now)
    view["orders"] = [o.to_dict() for o in list_orders(table.id)]
    view["totals"] = compute_table_total(table.id, now=now).to_dict()
    return view


def provision_tables(count: int) -> dict:
    """
    Make tables 1..count available and retire the rest. Does not commit.

    - Missing ids in range are created as "Table {i}".
    - Inactive tables in range are reactivated.
    - Tables above count are deleted if they never hosted a session,
      otherwise marked inactive so their history survives.
    """
    tables = {t.id: t for t in lock_for_update(db.session.query(Table)).all()}

    busy = sorted(
        tid for tid in tables
        if tid > count and (
            tables[tid].status not in (TABLE_AVAILABLE, TABLE_INACTIVE)
            or open_session(tid) is not None
            or db.session.query(OrderItem.id).filter_by(table_id=tid).first() is not None
        )
    )
    if busy:
        raise InvalidStateError(
            "Cannot retire tables that are in use or awaiting checkout",
            details={"table_ids": busy},
        )

    created, reactivated, deleted, retired = [], [], [], []

    for i in range(1, count + 1):
        table = tables.get(i)
        if table is None:
            db.session.add(Table(id=i, name=f"Table {i}", status=TABLE_AVAILABLE))
            created.append(i)
        elif table.status == TABLE_INACTIVE:
            table.status = TABLE_AVAILABLE
            reactivated.append(i)

    for tid, table in sorted(tables.items()):
        if tid <= count:
            continue
        has_history = (
            db.session.query(TableSession.id).filter_by(table_id=tid).first() is not None
            or db.session.query(Transaction.id).filter_by(table_id=tid).first() is not None
        )
        if has_history:
            if table.status != TABLE_INACTIVE:
                table.status = TABLE_INACTIVE
                retired.append(tid)
        else:
            db.session.delete(table)
            deleted.append(tid)

    db.session.flush()
    return {"created": created, "reactivated": reactivated, "deleted": deleted, "retired": retired}


def set_table_count(count: int) -> dict:
    """Provision tables to `count` and store it as the table_count setting."""
    from .settings_service import KEY_TABLE_COUNT, validate_table_count
    from ..models import Setting

    count = validate_table_count(count)

    def _op():
        begin_exclusive()
        changes = provision_tables(count)

        row = db.session.get(Setting, KEY_TABLE_COUNT)
        if row is None:
            db.session.add(Setting(key=KEY_TABLE_COUNT, value=str(count)))
        else:
            row.value = str(count)

        db.session.commit()
        return changes

    changes = run_with_retry(_op)
    current_app.logger.info("Table count set to %s (%s)", count, changes)

    tables = publish_tables_updated()
    return {"count": count, "changes": changes, "tables": tables}


def publish_tables_updated() -> list[dict]:
    tables = list_tables()
    events.publish(events.tables_updated, tables=tables)
    return tables
