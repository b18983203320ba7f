# Overview: Service-layer operations for table sessions; the start/stop/extend/reset state machine.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Table, TableSession, TimeExtension
from ..models.tables import (
    MODE_COUNTDOWN,
    MODE_HOUR,
    SESSION_MODES,
    TABLE_AVAILABLE,
    TABLE_INACTIVE,
    TABLE_NEEDS_CHECKOUT,
    TABLE_OCCUPIED,
    TABLE_STOPPED,
)
from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..money import money_str
from ..time_utils import utcnow
from ..validation import parse_positive_int
from .. import events
from .concurrency import begin_exclusive, run_with_retry
from .pricing_service import (
    compute_session_time_cost,
    session_duration_minutes,
    session_elapsed_seconds,
    should_auto_stop,
)
from .settings_service import get_rates
from .table_service import get_table, latest_session, open_session, table_view
"""
Session State Machine

    available --start--> occupied --stop--> stopped | needs_checkout
        ^                    |                          |
        +------reset---------+-----------reset----------+
        +------------------checkout---------------------+

- start: only from a table without an open session (ConflictError otherwise).
- stop: closes the open session; countdown sessions that used up their grant
  go to needs_checkout, everything else to stopped.
- extend: countdown sessions only, while open. Adds time, never cost.
- reset: idempotent; closes any open session and frees the table.
  Pending orders are left untouched.
"""


def _publish_table(table: Table, session: TableSession | None) -> None:
    events.publish(events.table_changed, table=table_view(table, session))


def _active_table(table_id: int) -> Table:
    table = get_table(table_id, lock=True)
    if table.status == TABLE_INACTIVE:
        raise InvalidStateError("Table is inactive", details={"table_id": table_id})
    return table


def start_session(
    table_id: int,
    mode: str = "open",
    duration: int | None = None,
    *,
    now: datetime | None = None,
) -> TableSession:
    """
    Open a session on an available table.

    duration (seconds) is required and must be positive for countdown mode,
    and is ignored otherwise.
    """
    if mode not in SESSION_MODES:
        raise ValidationError(
            f"Invalid session mode: {mode}",
            details={"allowed": list(SESSION_MODES)},
        )
    countdown_duration = None
    if mode == MODE_COUNTDOWN:
        if duration is None:
            raise ValidationError("Countdown sessions require a duration")
        countdown_duration = parse_positive_int(duration, "duration")

    def _op():
        begin_exclusive()
        table = _active_table(table_id)

        if open_session(table.id) is not None:
            raise ConflictError("Table already has an active session", details={"table_id": table.id})

        session = TableSession(
            table_id=table.id,
            start_time=now or utcnow(),
            mode=mode,
            countdown_duration=countdown_duration,
        )
        db.session.add(session)
        table.status = TABLE_OCCUPIED
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Table already has an active session", details={"table_id": table_id})

        db.session.commit()
        return table, session

    table, session = run_with_retry(_op)
    current_app.logger.info("Session %s started on table %s (%s)", session.id, table.id, mode)
    _publish_table(table, session)
    return session


def _close_session(table: Table, session: TableSession, now: datetime) -> str:
    """Set end_time and duration and move the table to its post-stop status."""
    session.end_time = now
    elapsed = session_elapsed_seconds(session, now)
    session.duration_minutes = session_duration_minutes(session, now)

    if session.mode == MODE_COUNTDOWN and elapsed >= (session.total_allocated_seconds or 0):
        table.status = TABLE_NEEDS_CHECKOUT
    else:
        table.status = TABLE_STOPPED
    return table.status


def stop_session(table_id: int, *, now: datetime | None = None) -> dict:
    """
    Stop the running session of a table.

    Returns the closed session with its billed minutes and mode-aware cost.
    """
    now = now or utcnow()

    def _op():
        begin_exclusive()
        table = _active_table(table_id)

        session = open_session(table.id)
        if session is None:
            raise InvalidStateError("No active session on this table", details={"table_id": table.id})

        status = _close_session(table, session, now)
        cost = compute_session_time_cost(session, get_rates(), now)
        db.session.commit()
        return table, session, status, cost

    table, session, status, cost = run_with_retry(_op)
    current_app.logger.info(
        "Session %s stopped on table %s after %s min (%s)",
        session.id, table.id, session.duration_minutes, status,
    )
    _publish_table(table, session)
    return {
        "session": session.to_dict(),
        "total_minutes": session.duration_minutes,
        "cost": money_str(cost),
        "status": status,
    }


def extend_session(table_id: int, added_duration, *, now: datetime | None = None) -> TableSession:
    """Grant extra seconds to the running countdown session of a table."""
    seconds = parse_positive_int(added_duration, "added_duration")

    def _op():
        begin_exclusive()
        table = _active_table(table_id)

        session = open_session(table.id)
        if session is None:
            raise InvalidStateError("No active session on this table", details={"table_id": table.id})
        if session.mode != MODE_COUNTDOWN:
            raise InvalidStateError(
                "Only countdown sessions can be extended",
                details={"session_id": session.id, "mode": session.mode},
            )

        session.extensions.append(
            TimeExtension(added_duration=seconds, added_at=now or utcnow(), cost=0)
        )
        db.session.commit()
        return table, session

    table, session = run_with_retry(_op)
    current_app.logger.info(
        "Session %s extended by %ss (allocated %ss)",
        session.id, seconds, session.total_allocated_seconds,
    )
    _publish_table(table, session)
    return session


def reset_table(table_id: int, *, now: datetime | None = None) -> dict:
    """
    Return a table to available, closing any open session. Pending orders
    are kept. Safe to call on a table that is already available.
    """
    now = now or utcnow()

    def _op():
        begin_exclusive()
        table = _active_table(table_id)

        session = open_session(table.id)
        if session is not None:
            _close_session(table, session, now)
        table.status = TABLE_AVAILABLE
        db.session.commit()
        return table, session

    table, closed = run_with_retry(_op)
    if closed is not None:
        current_app.logger.info("Table %s reset, session %s closed", table.id, closed.id)
    _publish_table(table, latest_session(table.id))
    return table_view(table, latest_session(table.id), now)


def get_session(session_id: int) -> TableSession:
    session = db.session.get(TableSession, session_id)
    if session is None:
        raise NotFoundError("Session not found", details={"session_id": session_id})
    return session


def list_sessions(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    table_id: int | None = None,
    open_only: bool = False,
    limit: int | None = None,
) -> list[TableSession]:
    """
    Sessions newest first. start/end bound start_time (inclusive); table_id
    and open_only narrow further.
    """
    query = db.session.query(TableSession)
    if start is not None:
        query = query.filter(TableSession.start_time >= start)
    if end is not None:
        query = query.filter(TableSession.start_time <= end)
    if table_id is not None:
        query = query.filter(TableSession.table_id == table_id)
    if open_only:
        query = query.filter(TableSession.end_time.is_(None))
    query = query.order_by(TableSession.start_time.desc(), TableSession.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def auto_stop_expired(*, now: datetime | None = None) -> list[int]:
    """
    Stop every open session whose time is up (hour sessions at 60 minutes,
    countdown sessions once elapsed reaches the allocated grant) and return
    the ids of the tables that were stopped.

    Each stop is its own unit of work; a table that changed state in the
    meantime is skipped.
    """
    now = now or utcnow()
    due = sorted(
        s.table_id
        for s in list_sessions(open_only=True)
        if s.mode in (MODE_HOUR, MODE_COUNTDOWN) and should_auto_stop(s, now)
    )

    stopped = []
    for tid in due:
        try:
            stop_session(tid, now=now)
        except InvalidStateError:
            current_app.logger.info("Auto-stop skipped table %s: no longer active", tid)
            continue
        stopped.append(tid)
    if stopped:
        current_app.logger.info("Auto-stopped %s session(s): tables %s", len(stopped), stopped)
    return stopped
