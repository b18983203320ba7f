# Overview: Service-layer operations for combo items; recipes of products sold as one unit.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import ComboComponent, ComboItem, Product
from ..errors import ConflictError, NotFoundError, ValidationError
from .. import events
from .concurrency import begin_exclusive, run_with_retry

COMBO_MUTABLE_FIELDS = {"name", "description", "price", "category"}


def _publish_catalog() -> None:
    events.publish(events.inventory_changed, combos=[c.to_dict() for c in list_combos()])


def apply_combo_patch(combo: ComboItem, patch: dict) -> None:
    for k, v in patch.items():
        if k not in COMBO_MUTABLE_FIELDS:
            continue
        setattr(combo, k, v)


def _build_components(components: list[tuple[int, int]]) -> list[ComboComponent]:
    """
    Turn (product_id, quantity) pairs into component rows.

    A recipe lists each product once; a repeated product id is a conflict.
    """
    if not components:
        raise ValidationError("A combo needs at least one component")

    seen: set[int] = set()
    duplicates = set()
    for pid, _ in components:
        if pid in seen:
            duplicates.add(pid)
        seen.add(pid)
    if duplicates:
        raise ConflictError(
            "Duplicate product in combo components",
            details={"product_ids": sorted(duplicates)},
        )

    ids = [pid for pid, _ in components]
    found = {pid for (pid,) in db.session.query(Product.id).filter(Product.id.in_(ids))}
    missing = [pid for pid in ids if pid not in found]
    if missing:
        raise NotFoundError("Product not found", details={"product_ids": missing})

    return [ComboComponent(product_id=pid, quantity=qty) for pid, qty in components]


def list_combos(*, include_inactive: bool = False) -> list[ComboItem]:
    query = db.session.query(ComboItem)
    if not include_inactive:
        query = query.filter(ComboItem.is_active.is_(True))
    return query.order_by(ComboItem.name.asc(), ComboItem.id.asc()).all()


def get_combo(combo_id: int, *, active_only: bool = False) -> ComboItem:
    combo = db.session.get(ComboItem, combo_id)
    if combo is None or (active_only and not combo.is_active):
        raise NotFoundError("Combo item not found", details={"combo_id": combo_id})
    return combo


def create_combo(*, patch: dict, components: list[tuple[int, int]]) -> ComboItem:
    def _op():
        begin_exclusive()
        combo = ComboItem(category="combo", is_active=True)
        apply_combo_patch(combo, patch)
        combo.components = _build_components(components)
        db.session.add(combo)
        db.session.commit()
        return combo

    combo = run_with_retry(_op)
    current_app.logger.info("Combo %s created: %s (%s components)", combo.id, combo.name, len(combo.components))
    _publish_catalog()
    return combo


def update_combo(
    combo_id: int,
    *,
    patch: dict,
    components: list[tuple[int, int]] | None = None,
) -> ComboItem:
    """
    Update combo fields. When components is given the recipe is replaced
    wholesale; pending orders keep the price they were placed at.
    """
    def _op():
        begin_exclusive()
        combo = get_combo(combo_id, active_only=True)
        apply_combo_patch(combo, patch)
        if components is not None:
            new_components = _build_components(components)
            # Flush the removals first so the (combo_id, product_id) unique
            # constraint never sees old and new rows together.
            combo.components.clear()
            db.session.flush()
            combo.components.extend(new_components)
        db.session.commit()
        return combo

    combo = run_with_retry(_op)
    current_app.logger.info("Combo %s updated", combo.id)
    _publish_catalog()
    return combo


def deactivate_combo(combo_id: int) -> ComboItem:
    """Soft delete: the combo leaves the catalog, history stays intact."""
    def _op():
        combo = get_combo(combo_id)
        combo.is_active = False
        db.session.commit()
        return combo

    combo = run_with_retry(_op)
    current_app.logger.info("Combo %s deactivated", combo.id)
    _publish_catalog()
    return combo
