# Overview: Service-layer operations for orders; pending line items with their stock effects.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import OrderItem
from ..models.orders import ComboRef, ItemRef, ProductRef
from ..models.tables import TABLE_INACTIVE
from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..validation import MAX_PRICE, parse_int, parse_money, parse_positive_int
from .. import events
from .concurrency import begin_exclusive, lock_for_update, run_with_retry
from .combo_service import get_combo
from .inventory_service import deduct_for_item, get_product, publish_inventory_changed, restore_for_item
from .table_service import get_table
"""
Order Invariants (authoritative)

Identity & aggregation:
- An order line is identified by (table_id, item). table_id NULL is the shared
  standalone (counter) bucket; item is a ProductRef or a ComboRef.
- Adding an item that already has a line increments that line's quantity.
- price and product_name are snapshotted when the line is first created and
  never re-read from the catalog.

Stock effects (one atomic unit per call):
- place: the stock check, the deduction and the line insert or increment
  commit together.
- quantity change: only the difference is checked/deducted (increase) or
  restored (decrease). Zero removes the line.
- remove: the full line quantity is restored, then the line is deleted.
- A failed stock check leaves both inventory and orders untouched.
"""


def _check_table(table_id: int | None) -> None:
    if table_id is None:
        return
    table = get_table(table_id)
    if table.status == TABLE_INACTIVE:
        raise InvalidStateError("Table is inactive", details={"table_id": table_id})


def _scope_filter(query, table_id: int | None):
    if table_id is None:
        return query.filter(OrderItem.table_id.is_(None))
    return query.filter(OrderItem.table_id == table_id)


def _find_line(table_id: int | None, item_ref: ItemRef) -> OrderItem | None:
    query = _scope_filter(db.session.query(OrderItem), table_id)
    if isinstance(item_ref, ComboRef):
        query = query.filter(OrderItem.combo_id == item_ref.combo_id, OrderItem.product_id.is_(None))
    else:
        query = query.filter(OrderItem.product_id == item_ref.product_id, OrderItem.combo_id.is_(None))
    return lock_for_update(query).first()


def _catalog_snapshot(item_ref: ItemRef) -> tuple[str, object]:
    """Current (name, price) of the referenced product or active combo."""
    if isinstance(item_ref, ComboRef):
        combo = get_combo(item_ref.combo_id, active_only=True)
        return combo.name, combo.price
    if isinstance(item_ref, ProductRef):
        product = get_product(item_ref.product_id)
        return product.name, product.price
    raise TypeError(f"Unsupported item reference: {item_ref!r}")


def _publish(table_id: int | None, products) -> None:
    events.publish(
        events.order_changed,
        table_id=table_id,
        orders=[o.to_dict() for o in list_orders(table_id)],
    )
    publish_inventory_changed(products)


def list_orders(table_id: int | None) -> list[OrderItem]:
    """Pending lines for a table, or for the standalone bucket when table_id is None."""
    query = _scope_filter(db.session.query(OrderItem), table_id)
    return query.order_by(OrderItem.id.asc()).all()


def get_order(order_id: int, *, lock: bool = False) -> OrderItem:
    query = db.session.query(OrderItem).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def place_order(
    table_id: int | None,
    item_ref: ItemRef,
    quantity=1,
    *,
    name: str | None = None,
    price=None,
    now: datetime | None = None,
) -> OrderItem:
    """
    Sell `quantity` units of a product or combo onto a table (or the
    standalone bucket).

    name and price default to the catalog values; when given they become the
    line's snapshot. They only apply when a new line is created.
    """
    quantity = parse_positive_int(quantity, "quantity")
    if price is not None:
        price = parse_money(price, "price")
        if price <= 0 or price > MAX_PRICE:
            raise ValidationError(f"price must be > 0 and at most {MAX_PRICE}")
    if name is not None:
        name = str(name).strip()
        if not name:
            raise ValidationError("name cannot be blank")

    def _op():
        begin_exclusive()
        _check_table(table_id)
        catalog_name, catalog_price = _catalog_snapshot(item_ref)

        line = _find_line(table_id, item_ref)
        if line is None:
            line = OrderItem(
                table_id=table_id,
                product_id=getattr(item_ref, "product_id", None),
                combo_id=getattr(item_ref, "combo_id", None),
                product_name=name or catalog_name,
                price=price if price is not None else catalog_price,
                quantity=quantity,
            )
            db.session.add(line)
            db.session.flush()  # line.id for the ledger rows
            products = deduct_for_item(item_ref, quantity, order_id=line.id, now=now)
        else:
            products = deduct_for_item(item_ref, quantity, order_id=line.id, now=now)
            line.quantity += quantity

        db.session.commit()
        return line, products

    line, products = run_with_retry(_op)
    current_app.logger.info(
        "Order %s: %s x%s on %s", line.id, line.product_name, quantity,
        f"table {table_id}" if table_id is not None else "standalone",
    )
    _publish(table_id, products)
    return line


def change_order_quantity(order_id: int, new_quantity, *, now: datetime | None = None) -> OrderItem | None:
    """
    Set a line's quantity, applying only the difference to stock.
    Returns None when the quantity was set to zero and the line removed.
    """
    new_quantity = parse_int(new_quantity, "quantity")
    if new_quantity < 0:
        raise ValidationError("quantity must be >= 0", details={"quantity": new_quantity})
    if new_quantity == 0:
        remove_order(order_id, now=now)
        return None

    def _op():
        begin_exclusive()
        line = get_order(order_id, lock=True)
        diff = new_quantity - line.quantity
        products = []
        if diff > 0:
            if isinstance(line.item_ref, ComboRef):
                # Retired combos cannot be sold further
                get_combo(line.combo_id, active_only=True)
            products = deduct_for_item(line.item_ref, diff, order_id=line.id, now=now)
        elif diff < 0:
            products = restore_for_item(line.item_ref, -diff, order_id=line.id, now=now)
        line.quantity = new_quantity
        db.session.commit()
        return line, products, diff

    line, products, diff = run_with_retry(_op)
    if diff:
        current_app.logger.info("Order %s quantity %+d -> %s", line.id, diff, line.quantity)
        _publish(line.table_id, products)
    return line


def remove_order(order_id: int, *, now: datetime | None = None) -> None:
    """Delete a line and give its full quantity back to stock."""
    def _op():
        begin_exclusive()
        line = get_order(order_id, lock=True)
        table_id, quantity = line.table_id, line.quantity
        products = restore_for_item(line.item_ref, quantity, order_id=line.id, now=now)
        db.session.delete(line)
        db.session.commit()
        return table_id, quantity, products

    table_id, quantity, products = run_with_retry(_op)
    current_app.logger.info("Order %s removed, %s unit(s) restored", order_id, quantity)
    _publish(table_id, products)


def delete_orders_for_scope(table_id: int | None) -> int:
    """Delete every pending line of a table or the standalone bucket. Does not commit."""
    return _scope_filter(db.session.query(OrderItem), table_id).delete(synchronize_session=False)


def clear_orders(table_id: int | None, *, restore_stock: bool = True, now: datetime | None = None) -> int:
    """
    Cancel every pending line of a table (or the standalone bucket).
    With restore_stock the sold units go back on the shelf.
    """
    def _op():
        begin_exclusive()
        _check_table(table_id)
        products = {}
        if restore_stock:
            for line in list_orders(table_id):
                for p in restore_for_item(line.item_ref, line.quantity, order_id=line.id, now=now):
                    products[p.id] = p
        count = delete_orders_for_scope(table_id)
        db.session.commit()
        return count, [products[pid] for pid in sorted(products)]

    count, products = run_with_retry(_op)
    current_app.logger.info(
        "Cleared %s order(s) for %s (stock %s)",
        count,
        f"table {table_id}" if table_id is not None else "standalone",
        "restored" if restore_stock else "kept",
    )
    _publish(table_id, products)
    return count
