from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from ..extensions import db
from billiard_pos.money import money_str, quantize_money
from billiard_pos.time_utils import to_utc_z


@dataclass(frozen=True)
class ProductRef:
    product_id: int


@dataclass(frozen=True)
class ComboRef:
    combo_id: int


# What a line item sells: exactly one product or one combo
ItemRef = Union[ProductRef, ComboRef]


class OrderItem(db.Model):
    """
    Pending line item for a table, or for the standalone counter bucket
    (table_id NULL).

    price is a snapshot taken when the item was first added; later catalog
    price edits never change pending orders.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint(
            "(product_id IS NULL AND combo_id IS NOT NULL) OR (product_id IS NOT NULL AND combo_id IS NULL)",
            name="ck_orders_single_item_ref",
        ),
        db.CheckConstraint("quantity > 0", name="ck_orders_quantity_positive"),
        db.Index("ix_orders_table_product", "table_id", "product_id"),
        db.Index("ix_orders_table_combo", "table_id", "combo_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    table_id = db.Column(db.Integer, db.ForeignKey("tables.id"), nullable=True, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    combo_id = db.Column(db.Integer, db.ForeignKey("combo_items.id"), nullable=True)

    product_name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def item_ref(self) -> ItemRef:
        if self.combo_id is not None:
            return ComboRef(self.combo_id)
        return ProductRef(self.product_id)

    @property
    def line_total(self):
        return quantize_money(self.price * self.quantity)

    def __repr__(self) -> str:
        return f"<OrderItem id={self.id} table_id={self.table_id} {self.item_ref} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_id": self.table_id,
            "product_id": self.product_id,
            "combo_id": self.combo_id,
            "product_name": self.product_name,
            "price": money_str(self.price),
            "quantity": self.quantity,
            "line_total": money_str(self.line_total),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
