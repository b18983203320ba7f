# Overview: Service-layer operations for inventory; stock adjustments, combo stock checks and queries.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import ComboItem, InventoryLedgerEntry, Product
from ..models.inventory import CHANGE_ADJUSTMENT, CHANGE_SALE, CHANGE_TYPES
from ..models.orders import ComboRef, ItemRef, ProductRef
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..validation import parse_int, parse_positive_int
from .. import events
from .concurrency import begin_exclusive, lock_for_update, run_with_retry
from .ledger_service import append_inventory_entry
"""
Inventory Invariants & Stock Protocol (authoritative)

Stock model:
- Product.quantity is the live on-hand count and never goes below zero.
- Every change to it appends an InventoryLedgerEntry in the same DB transaction.

adjust:
- new quantity = max(0, current + delta). Shortfalls are clamped, not rejected;
  the ledger records the requested delta.

Selling (deduct_for_item):
- A product line checks quantity >= requested before deducting.
- A combo line checks every component (component.quantity x multiplier) first;
  if any is short, nothing is deducted and InsufficientStockError lists all
  short components.
- Deductions are ledgered as change_type='sale' with a negative delta.

Returning stock (restore_for_item):
- The inverse of deduct_for_item, ledgered as change_type='sale' with a
  positive delta (a sale reversal).

Locking:
- Product rows touched by one operation are locked in ascending id order.
"""


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def _lock_products(product_ids) -> dict[int, Product]:
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    rows = (
        lock_for_update(db.session.query(Product).filter(Product.id.in_(ids)))
        .order_by(Product.id.asc())
        .all()
    )
    products = {p.id: p for p in rows}
    missing = [pid for pid in ids if pid not in products]
    if missing:
        raise NotFoundError("Product not found", details={"product_ids": missing})
    return products


def _get_combo(combo_id: int) -> ComboItem:
    combo = db.session.get(ComboItem, combo_id)
    if combo is None:
        raise NotFoundError("Combo item not found", details={"combo_id": combo_id})
    return combo


def apply_stock_delta(
    product: Product,
    delta: int,
    change_type: str,
    *,
    order_id: int | None = None,
    note: str | None = None,
    now: datetime | None = None,
) -> InventoryLedgerEntry:
    """
    Apply a signed delta to an already-locked product with the floor-at-zero
    rule and append its ledger row. Does not commit.
    """
    product.quantity = max(0, (product.quantity or 0) + delta)
    return append_inventory_entry(
        product=product,
        change_type=change_type,
        change_quantity=delta,
        order_id=order_id,
        note=note,
        created_at=now,
    )


def adjust_inventory(
    product_id: int,
    delta,
    change_type: str = CHANGE_ADJUSTMENT,
    *,
    note: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Stock adjustment entry point (receiving, shrinkage, corrections)."""
    delta = parse_int(delta, "change_quantity")
    if delta == 0:
        raise ValidationError("change_quantity must be non-zero")
    if change_type not in CHANGE_TYPES:
        raise ValidationError(
            f"Invalid change_type: {change_type}",
            details={"allowed": list(CHANGE_TYPES)},
        )

    def _op():
        begin_exclusive()
        product = get_product(product_id, lock=True)
        entry = apply_stock_delta(product, delta, change_type, note=note, now=now)
        db.session.commit()
        return product, entry

    product, entry = run_with_retry(_op)
    current_app.logger.info(
        "Product %s %s %+d -> %s", product.id, change_type, delta, product.quantity,
    )
    publish_inventory_changed([product])
    return {"product": product.to_dict(), "entry": entry.to_dict()}


def combo_requirements(combo: ComboItem, multiplier: int) -> list[tuple[int, int]]:
    """(product_id, required units) per component for `multiplier` combos."""
    return [(c.product_id, c.quantity * multiplier) for c in combo.components]


def check_combo_stock(combo_id: int, multiplier=1) -> dict:
    """
    Can `multiplier` units of the combo be sold right now?

    Read-only probe; order placement repeats the same check under lock.
    """
    multiplier = parse_positive_int(multiplier, "quantity")
    combo = _get_combo(combo_id)

    stock_check = []
    for component in combo.components:
        product = component.product
        required = component.quantity * multiplier
        stock_check.append({
            "product_id": product.id,
            "product_name": product.name,
            "required": required,
            "available": product.quantity,
            "in_stock": product.quantity >= required,
        })

    out_of_stock = [
        {k: row[k] for k in ("product_id", "product_name", "required", "available")}
        for row in stock_check
        if not row["in_stock"]
    ]
    return {
        "combo_id": combo.id,
        "combo_name": combo.name,
        "quantity": multiplier,
        "can_sell": not out_of_stock,
        "stock_check": stock_check,
        "out_of_stock_items": out_of_stock,
    }


def _item_requirements(item_ref: ItemRef, quantity: int) -> list[tuple[int, int]]:
    if isinstance(item_ref, ComboRef):
        return combo_requirements(_get_combo(item_ref.combo_id), quantity)
    if isinstance(item_ref, ProductRef):
        return [(item_ref.product_id, quantity)]
    raise TypeError(f"Unsupported item reference: {item_ref!r}")


def deduct_for_item(
    item_ref: ItemRef,
    quantity: int,
    *,
    order_id: int | None = None,
    now: datetime | None = None,
) -> list[Product]:
    """
    Check and deduct stock for `quantity` units of a product or combo.
    All-or-nothing; does not commit.
    """
    requirements = _item_requirements(item_ref, quantity)
    products = _lock_products(pid for pid, _ in requirements)

    short = []
    for pid, required in requirements:
        product = products[pid]
        if product.quantity < required:
            short.append({
                "product_id": pid,
                "product_name": product.name,
                "required": required,
                "available": product.quantity,
            })
    if short:
        if isinstance(item_ref, ProductRef):
            item = short[0]
            raise InsufficientStockError(
                f"Insufficient stock for {item['product_name']}",
                details={
                    "items": short,
                    "available": item["available"],
                    "requested": item["required"],
                },
            )
        raise InsufficientStockError(
            "Insufficient stock for combo components",
            details={"combo_id": item_ref.combo_id, "items": short},
        )

    for pid, required in sorted(requirements):
        apply_stock_delta(products[pid], -required, CHANGE_SALE, order_id=order_id, now=now)
    return [products[pid] for pid in sorted(products)]


def restore_for_item(
    item_ref: ItemRef,
    quantity: int,
    *,
    order_id: int | None = None,
    now: datetime | None = None,
) -> list[Product]:
    """Return stock for `quantity` units previously sold. Does not commit."""
    requirements = _item_requirements(item_ref, quantity)
    products = _lock_products(pid for pid, _ in requirements)
    for pid, amount in sorted(requirements):
        apply_stock_delta(
            products[pid], amount, CHANGE_SALE,
            order_id=order_id, note="Order reversal", now=now,
        )
    return [products[pid] for pid in sorted(products)]


def stock_status(quantity: int, threshold: int | None = None) -> str:
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    if quantity <= 0:
        return "out_of_stock"
    if quantity <= threshold:
        return "low_stock"
    return "in_stock"


def inventory_summary() -> list[dict]:
    """Every product with its stock_status, by category then name."""
    threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    products = db.session.query(Product).order_by(Product.category.asc(), Product.name.asc()).all()
    rows = []
    for product in products:
        row = product.to_dict()
        row["stock_status"] = stock_status(product.quantity, threshold)
        rows.append(row)
    return rows


def low_stock(threshold: int | None = None) -> list[Product]:
    """Products at or below the threshold, emptiest first."""
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    return (
        db.session.query(Product)
        .filter(Product.quantity <= threshold)
        .order_by(Product.quantity.asc(), Product.name.asc())
        .all()
    )


def list_ledger(product_id: int | None = None, limit: int = 200) -> list[InventoryLedgerEntry]:
    query = db.session.query(InventoryLedgerEntry)
    if product_id is not None:
        query = query.filter(InventoryLedgerEntry.product_id == product_id)
    return query.order_by(InventoryLedgerEntry.id.desc()).limit(limit).all()


def publish_inventory_changed(products: list[Product]) -> None:
    if products:
        events.publish(events.inventory_changed, products=[p.to_dict() for p in products])
