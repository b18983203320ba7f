from __future__ import annotations

from ..extensions import db
from billiard_pos.money import money_str
from billiard_pos.time_utils import to_utc_z

TABLE_AVAILABLE = "available"
TABLE_OCCUPIED = "occupied"
TABLE_STOPPED = "stopped"
TABLE_NEEDS_CHECKOUT = "needs_checkout"
TABLE_INACTIVE = "inactive"
TABLE_STATUSES = (TABLE_AVAILABLE, TABLE_OCCUPIED, TABLE_STOPPED, TABLE_NEEDS_CHECKOUT, TABLE_INACTIVE)

MODE_OPEN = "open"
MODE_HOUR = "hour"
MODE_COUNTDOWN = "countdown"
SESSION_MODES = (MODE_OPEN, MODE_HOUR, MODE_COUNTDOWN)


class Table(db.Model):
    """
    A physical billing unit (pool table, console station).

    DESIGN: Tables that ever hosted a session are never deleted; shrinking the
    table count marks them 'inactive' so their session history stays intact.
    """
    __tablename__ = "tables"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('available', 'occupied', 'stopped', 'needs_checkout', 'inactive')",
            name="ck_tables_status",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=TABLE_AVAILABLE, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    sessions = db.relationship(
        "TableSession",
        back_populates="table",
        lazy="dynamic",
        order_by="TableSession.id",
    )

    def __repr__(self) -> str:
        return f"<Table id={self.id} name={self.name!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class TableSession(db.Model):
    """
    One timed occupancy of a table.

    LIFECYCLE:
    - created by start (end_time NULL = running)
    - closed by stop, reset or checkout (end_time set)
    - never mutated after checkout

    INVARIANT: at most one open session per table, enforced by a partial
    unique index on (table_id) WHERE end_time IS NULL.
    """
    __tablename__ = "sessions"
    __table_args__ = (
        db.Index(
            "uq_sessions_one_open_per_table",
            "table_id",
            unique=True,
            sqlite_where=db.text("end_time IS NULL"),
            postgresql_where=db.text("end_time IS NULL"),
        ),
        db.CheckConstraint("mode IN ('open', 'hour', 'countdown')", name="ck_sessions_mode"),
        db.CheckConstraint(
            "(mode = 'countdown' AND countdown_duration IS NOT NULL) "
            "OR (mode <> 'countdown' AND countdown_duration IS NULL)",
            name="ck_sessions_countdown_duration",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    table_id = db.Column(db.Integer, db.ForeignKey("tables.id"), nullable=False, index=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)
    duration_minutes = db.Column(db.Integer, nullable=True)  # Set at stop

    mode = db.Column(db.String(16), nullable=False, default=MODE_OPEN)
    countdown_duration = db.Column(db.Integer, nullable=True)  # Seconds, countdown only

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    table = db.relationship("Table", back_populates="sessions")
    extensions = db.relationship(
        "TimeExtension",
        back_populates="session",
        order_by="TimeExtension.id",
        lazy="selectin",
    )

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def extension_seconds(self) -> int:
        return sum(ext.added_duration for ext in self.extensions)

    @property
    def total_allocated_seconds(self) -> int | None:
        """Countdown grant plus every extension; None outside countdown mode."""
        if self.mode != MODE_COUNTDOWN:
            return None
        return (self.countdown_duration or 0) + self.extension_seconds

    def __repr__(self) -> str:
        return f"<TableSession id={self.id} table_id={self.table_id} mode={self.mode} open={self.is_open}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_id": self.table_id,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time),
            "duration_minutes": self.duration_minutes,
            "mode": self.mode,
            "countdown_duration": self.countdown_duration,
            "time_extensions": [ext.to_dict() for ext in self.extensions],
            "created_at": to_utc_z(self.created_at),
        }


class TimeExtension(db.Model):
    """
    Extra time granted to a running countdown session.

    IMMUTABLE: cost is stored as 0 at creation; extension time is billed
    through the session-level countdown formula at checkout.
    """
    __tablename__ = "time_extensions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("sessions.id"), nullable=False, index=True)

    added_duration = db.Column(db.Integer, nullable=False)  # Seconds
    added_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    cost = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    session = db.relationship("TableSession", back_populates="extensions")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "added_duration": self.added_duration,
            "added_at": to_utc_z(self.added_at),
            "cost": money_str(self.cost),
        }
