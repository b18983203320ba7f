# Overview: Service-layer operations for products; catalog CRUD with ledgered quantity changes.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import ComboComponent, ComboItem, OrderItem, Product
from ..models.inventory import CHANGE_ADD, CHANGE_UPDATE
from ..errors import ConflictError
from .. import events
from .concurrency import begin_exclusive, run_with_retry
from .inventory_service import get_product, publish_inventory_changed
from .ledger_service import append_inventory_entry

PRODUCT_MUTABLE_FIELDS = {"name", "price", "cost", "category"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _ensure_unique_name(name: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(func.lower(Product.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise ConflictError("Product name already exists", details={"name": name})


def list_products(category: str | None = None) -> list[Product]:
    query = db.session.query(Product)
    if category:
        query = query.filter(Product.category == category)
    return query.order_by(Product.category.asc(), Product.name.asc()).all()


def create_product(*, patch: dict, now: datetime | None = None) -> Product:
    """
    Create a product from a validated patch dict.

    The opening quantity is recorded as an 'add' ledger entry so the ledger
    replays to the stored quantity from day one.
    """
    def _op():
        begin_exclusive()
        _ensure_unique_name(patch["name"])

        p = Product(quantity=0, cost=0, category="other")
        apply_product_patch(p, patch)
        opening = patch.get("quantity") or 0
        p.quantity = opening

        db.session.add(p)
        db.session.flush()  # ensure p.id exists before ledger append

        append_inventory_entry(
            product=p,
            change_type=CHANGE_ADD,
            change_quantity=opening,
            note="Product created",
            created_at=now,
        )
        db.session.commit()
        return p

    p = run_with_retry(_op)
    current_app.logger.info("Product %s created: %s (qty %s)", p.id, p.name, p.quantity)
    publish_inventory_changed([p])
    return p


def update_product(product_id: int, *, patch: dict, now: datetime | None = None) -> Product:
    """
    Update catalog fields. A quantity in the patch is an absolute stock count;
    the difference is ledgered as an 'update' entry.
    """
    def _op():
        begin_exclusive()
        p = get_product(product_id, lock=True)

        if "name" in patch and patch["name"].lower() != p.name.lower():
            _ensure_unique_name(patch["name"], exclude_id=p.id)

        apply_product_patch(p, patch)

        if "quantity" in patch and patch["quantity"] != p.quantity:
            diff = patch["quantity"] - p.quantity
            p.quantity = patch["quantity"]
            append_inventory_entry(
                product=p,
                change_type=CHANGE_UPDATE,
                change_quantity=diff,
                note="Quantity edited",
                created_at=now,
            )

        db.session.commit()
        return p

    p = run_with_retry(_op)
    current_app.logger.info("Product %s updated: %s", p.id, ", ".join(sorted(patch)))
    publish_inventory_changed([p])
    return p


def delete_product(product_id: int) -> None:
    """
    Delete a product that nothing pending depends on.

    Refused while a pending order or an active combo uses it. Components of
    retired combos are dropped with it; ledger rows keep their snapshots.
    """
    def _op():
        begin_exclusive()
        p = get_product(product_id, lock=True)

        pending = db.session.query(OrderItem.id).filter(OrderItem.product_id == p.id).count()
        active_combos = [
            name for (name,) in (
                db.session.query(ComboItem.name)
                .join(ComboComponent, ComboComponent.combo_id == ComboItem.id)
                .filter(ComboComponent.product_id == p.id, ComboItem.is_active.is_(True))
                .order_by(ComboItem.name.asc())
            )
        ]
        if pending or active_combos:
            raise ConflictError(
                "Product is still in use",
                details={"pending_orders": pending, "active_combos": active_combos},
            )

        db.session.query(ComboComponent).filter(ComboComponent.product_id == p.id).delete(
            synchronize_session=False
        )
        name = p.name
        db.session.delete(p)
        db.session.commit()
        return name

    name = run_with_retry(_op)
    current_app.logger.info("Product %s deleted: %s", product_id, name)
    events.publish(events.inventory_changed, products=[], deleted_product_id=product_id)
