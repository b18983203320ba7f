from __future__ import annotations

from ..extensions import db
from billiard_pos.money import money_str
from billiard_pos.time_utils import to_utc_z


class Transaction(db.Model):
    """
    Immutable checkout receipt. Written exactly once per checkout and never
    updated; every report reads from these rows.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.CheckConstraint("payment_method IN ('cash', 'gcash')", name="ck_transactions_payment_method"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    table_id = db.Column(db.Integer, db.ForeignKey("tables.id"), nullable=True, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey("sessions.id"), nullable=True)

    total_amount = db.Column(db.Numeric(10, 2), nullable=False)
    time_cost = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    product_cost = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    reference_number = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    table = db.relationship("Table")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_id": self.table_id,
            "table_name": self.table.name if self.table is not None else None,
            "session_id": self.session_id,
            "total_amount": money_str(self.total_amount),
            "time_cost": money_str(self.time_cost),
            "product_cost": money_str(self.product_cost),
            "payment_method": self.payment_method,
            "reference_number": self.reference_number,
            "created_at": to_utc_z(self.created_at),
        }
