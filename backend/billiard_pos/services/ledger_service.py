# Overview: Service-layer operations for the inventory ledger; append, replay and verification.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import InventoryLedgerEntry, Product
from ..models.inventory import CHANGE_TYPES
from ..errors import NotFoundError, ValidationError
from ..time_utils import utcnow
"""
Inventory Ledger Invariants (authoritative)

- Append-only: rows are never updated or deleted.
- Entries are written inside the same DB transaction as the Product.quantity
  change they record.
- change_quantity is the requested signed delta; quantity is the resulting
  on-hand after the floor-at-zero rule.
- Replaying change_quantity in id order with q = max(0, q + delta), starting
  from 0, reproduces Product.quantity.
- As-of filtering is inclusive: created_at <= as_of.
"""


def append_inventory_entry(
    *,
    product: Product,
    change_type: str,
    change_quantity: int,
    order_id: int | None = None,
    note: str | None = None,
    created_at: datetime | None = None,
) -> InventoryLedgerEntry:
    """
    Append one ledger row snapshotting `product` as it is *after* the change.

    - No commit here; the caller owns the transaction.
    """
    if change_type not in CHANGE_TYPES:
        raise ValidationError(
            f"Invalid change_type: {change_type}",
            details={"allowed": list(CHANGE_TYPES)},
        )

    entry = InventoryLedgerEntry(
        product_id=product.id,
        product_name=product.name,
        price=product.price,
        cost=product.cost or 0,
        category=product.category,
        change_type=change_type,
        change_quantity=change_quantity,
        quantity=product.quantity,
        order_id=order_id,
        note=note,
        created_at=created_at or utcnow(),
    )
    db.session.add(entry)
    return entry


def replay_quantity(product_id: int, as_of: datetime | None = None) -> int:
    """Rebuild on-hand quantity from the ledger alone."""
    q = db.session.query(InventoryLedgerEntry.change_quantity).filter(
        InventoryLedgerEntry.product_id == product_id
    )
    if as_of is not None:
        q = q.filter(InventoryLedgerEntry.created_at <= as_of)

    quantity = 0
    for (delta,) in q.order_by(InventoryLedgerEntry.id.asc()):
        quantity = max(0, quantity + delta)
    return quantity


def verify_ledger(product_id: int | None = None) -> list[dict]:
    """
    Compare every product's stored quantity against its ledger replay.
    Returns one row per mismatch; an empty list means the ledger is consistent.
    """
    query = db.session.query(Product).order_by(Product.id.asc())
    if product_id is not None:
        query = query.filter(Product.id == product_id)
        if query.first() is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})

    mismatches = []
    for product in query:
        replayed = replay_quantity(product.id)
        if replayed != product.quantity:
            mismatches.append({
                "product_id": product.id,
                "product_name": product.name,
                "stored_quantity": product.quantity,
                "replayed_quantity": replayed,
            })
    return mismatches
