# Overview: Service-layer operations for concurrency; encapsulates business logic and database work.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    begin_exclusive() covers SQLite.
    """
    return query.with_for_update()


def begin_exclusive() -> None:
    """
    Open the unit of work with a write lock on SQLite (BEGIN IMMEDIATE), so a
    check-then-write sequence cannot interleave with another connection's.

    No-op on other dialects (they rely on lock_for_update) and when the
    connection already holds an open transaction.
    """
    if db.engine.dialect.name != "sqlite":
        return
    driver_conn = db.session.connection().connection.driver_connection
    if not driver_conn.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other failure rolls back the session
    and propagates, so a rejected operation leaves no pending writes.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc

