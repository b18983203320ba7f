from __future__ import annotations

from ..extensions import db
from billiard_pos.money import money_str
from billiard_pos.time_utils import to_utc_z

CHANGE_ADD = "add"
CHANGE_UPDATE = "update"
CHANGE_SALE = "sale"
CHANGE_ADJUSTMENT = "adjustment"
CHANGE_TYPES = (CHANGE_ADD, CHANGE_UPDATE, CHANGE_SALE, CHANGE_ADJUSTMENT)


class InventoryLedgerEntry(db.Model):
    """
    Append-only stock change log.

    Each row snapshots the product (name/price/cost/category) at the time of the
    change, the signed delta that was requested, and the resulting on-hand
    quantity. Rows are never updated or deleted; reports and COGS are rebuilt
    from them.

    NOTE: change_quantity is the *requested* delta. When a negative adjustment
    is clamped at zero, quantity shows the clamped result.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.CheckConstraint(
            "change_type IN ('add', 'update', 'sale', 'adjustment')",
            name="ck_inventory_change_type",
        ),
        db.Index("ix_inventory_product_created", "product_id", "created_at"),
        db.Index("ix_inventory_type_created", "change_type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    # Plain id, not a foreign key: ledger rows outlive a deleted product
    product_id = db.Column(db.Integer, nullable=True, index=True)

    # Product snapshot
    product_name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    cost = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    category = db.Column(db.String(16), nullable=False)

    change_type = db.Column(db.String(16), nullable=False)
    change_quantity = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)  # Resulting on-hand

    order_id = db.Column(db.Integer, nullable=True, index=True)  # Order that caused a sale row, if any
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "price": money_str(self.price),
            "cost": money_str(self.cost),
            "category": self.category,
            "change_type": self.change_type,
            "change_quantity": self.change_quantity,
            "quantity": self.quantity,
            "order_id": self.order_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
