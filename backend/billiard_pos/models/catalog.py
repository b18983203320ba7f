from __future__ import annotations

from ..extensions import db
from billiard_pos.money import money_str
from billiard_pos.time_utils import to_utc_z


class Product(db.Model):
    """
    Sellable catalog unit with live stock.

    Product.quantity is the current on-hand count. Every change to it goes
    through the inventory service, which appends an InventoryLedgerEntry in the
    same DB transaction (see services/inventory_service.py).

    NAME UNIQUENESS: case-insensitive, enforced by a unique index on lower(name).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        db.Index("ix_products_category_name", "category", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    price = db.Column(db.Numeric(10, 2), nullable=False)
    cost = db.Column(db.Numeric(10, 2), nullable=False, default=0)  # Purchase cost, for margin reporting

    quantity = db.Column(db.Integer, nullable=False, default=0)
    category = db.Column(db.String(16), nullable=False, default="other")

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": money_str(self.price),
            "cost": money_str(self.cost),
            "quantity": self.quantity,
            "category": self.category,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


db.Index("uq_products_name_lower", db.func.lower(Product.name), unique=True)


class ComboItem(db.Model):
    """
    Composite sellable unit. Selling one combo deducts every component's
    quantity from its product in one atomic group.

    SOFT DELETE: is_active=False hides the combo from the catalog; pending
    orders referencing it keep their snapshot.
    """
    __tablename__ = "combo_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    category = db.Column(db.String(16), nullable=False, default="combo")
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    components = db.relationship(
        "ComboComponent",
        back_populates="combo",
        order_by="ComboComponent.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<ComboItem id={self.id} name={self.name!r} active={self.is_active}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": money_str(self.price),
            "category": self.category,
            "is_active": self.is_active,
            "components": [c.to_dict() for c in self.components],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ComboComponent(db.Model):
    """One line of a combo recipe: quantity units of product per combo sold."""
    __tablename__ = "combo_components"
    __table_args__ = (
        db.UniqueConstraint("combo_id", "product_id", name="uq_combo_components_combo_product"),
        db.CheckConstraint("quantity > 0", name="ck_combo_components_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    combo_id = db.Column(db.Integer, db.ForeignKey("combo_items.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    combo = db.relationship("ComboItem", back_populates="components")
    product = db.relationship("Product", lazy="joined")

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "product": {
                "id": product.id,
                "name": product.name,
                "price": money_str(product.price),
                "cost": money_str(product.cost),
                "quantity": product.quantity,
                "category": product.category,
            } if product is not None else None,
        }
