"""
Order tests: line aggregation, price snapshots and the stock effects of
place / change / remove, for tables and the standalone bucket.
"""

from decimal import Decimal

import pytest

from billiard_pos.errors import InsufficientStockError, InvalidStateError, NotFoundError, ValidationError
from billiard_pos.extensions import db
from billiard_pos.models import ComboRef, InventoryLedgerEntry, OrderItem, ProductRef
from billiard_pos.services import (
    combo_service,
    inventory_service,
    ledger_service,
    order_service,
    products_service,
    session_service,
    table_service,
)

from conftest import T0


def _qty(product):
    return inventory_service.get_product(product.id).quantity


class TestPlaceOrder:

    def test_place_deducts_stock_and_snapshots_price(self, tables, make_product):
        cola = make_product(quantity=20)

        line = order_service.place_order(1, ProductRef(cola.id), 3, now=T0)

        assert line.table_id == 1
        assert line.product_name == "Cola"
        assert line.price == Decimal("50.00")
        assert line.quantity == 3
        assert _qty(cola) == 17

        sale = inventory_service.list_ledger(cola.id)[0]
        assert sale.change_type == "sale"
        assert sale.change_quantity == -3
        assert sale.order_id == line.id

    def test_same_item_merges_into_one_line(self, tables, make_product):
        cola = make_product()

        first = order_service.place_order(1, ProductRef(cola.id), 2, now=T0)
        second = order_service.place_order(1, ProductRef(cola.id), 1, now=T0)

        assert first.id == second.id
        assert second.quantity == 3
        assert len(order_service.list_orders(1)) == 1

    def test_lines_are_scoped_per_table(self, tables, make_product):
        cola = make_product()

        order_service.place_order(1, ProductRef(cola.id), 1, now=T0)
        order_service.place_order(2, ProductRef(cola.id), 1, now=T0)
        order_service.place_order(None, ProductRef(cola.id), 1, now=T0)

        assert len(order_service.list_orders(1)) == 1
        assert len(order_service.list_orders(2)) == 1
        assert len(order_service.list_orders(None)) == 1
        assert db.session.query(OrderItem).count() == 3

    def test_catalog_price_change_does_not_touch_pending_line(self, tables, make_product):
        cola = make_product(price="50.00")
        order_service.place_order(1, ProductRef(cola.id), 1, now=T0)

        products_service.update_product(cola.id, patch={"price": Decimal("65.00")})
        line = order_service.place_order(1, ProductRef(cola.id), 1, now=T0)

        assert line.price == Decimal("50.00")
        assert line.line_total == Decimal("100.00")

    def test_custom_name_and_price(self, tables, make_product):
        cola = make_product()

        line = order_service.place_order(1, ProductRef(cola.id), 1, name="Cola (promo)", price="40", now=T0)

        assert line.product_name == "Cola (promo)"
        assert line.price == Decimal("40.00")

    def test_insufficient_stock_changes_nothing(self, tables, make_product):
        cola = make_product(quantity=2)

        with pytest.raises(InsufficientStockError) as exc:
            order_service.place_order(1, ProductRef(cola.id), 3, now=T0)

        assert exc.value.details["available"] == 2
        assert exc.value.details["requested"] == 3
        assert _qty(cola) == 2
        assert order_service.list_orders(1) == []

    def test_combo_deducts_every_component(self, tables, make_product, make_combo):
        beer = make_product(name="Beer", quantity=12)
        chips = make_product(name="Chips", quantity=5, category="food")
        combo = make_combo([(beer, 6), (chips, 1)], price="420.00")

        line = order_service.place_order(1, ComboRef(combo.id), 2, now=T0)

        assert line.combo_id == combo.id
        assert line.product_id is None
        assert line.price == Decimal("420.00")
        assert _qty(beer) == 0
        assert _qty(chips) == 3

    def test_combo_short_component_deducts_nothing(self, tables, make_product, make_combo):
        beer = make_product(name="Beer", quantity=5)
        chips = make_product(name="Chips", quantity=5, category="food")
        combo = make_combo([(beer, 6), (chips, 1)])

        with pytest.raises(InsufficientStockError) as exc:
            order_service.place_order(1, ComboRef(combo.id), 1, now=T0)

        assert [item["product_name"] for item in exc.value.details["items"]] == ["Beer"]
        assert _qty(beer) == 5
        assert _qty(chips) == 5
        assert order_service.list_orders(1) == []
        assert db.session.query(InventoryLedgerEntry).filter_by(change_type="sale").count() == 0

    @pytest.mark.parametrize("quantity", [0, -1, "two", 1.5])
    def test_invalid_quantity(self, tables, make_product, quantity):
        cola = make_product()
        with pytest.raises(ValidationError):
            order_service.place_order(1, ProductRef(cola.id), quantity, now=T0)

    def test_unknown_product(self, tables):
        with pytest.raises(NotFoundError):
            order_service.place_order(1, ProductRef(999), 1, now=T0)

    def test_unknown_table(self, tables, make_product):
        cola = make_product()
        with pytest.raises(NotFoundError):
            order_service.place_order(77, ProductRef(cola.id), 1, now=T0)

    def test_inactive_table_rejected(self, tables, make_product):
        cola = make_product()
        session_service.start_session(4, now=T0)
        session_service.reset_table(4, now=T0)
        table_service.set_table_count(3)

        with pytest.raises(InvalidStateError):
            order_service.place_order(4, ProductRef(cola.id), 1, now=T0)
        assert _qty(cola) == 20


class TestChangeQuantity:

    def test_increase_deducts_only_the_difference(self, tables, make_product):
        cola = make_product(quantity=20)
        line = order_service.place_order(1, ProductRef(cola.id), 2, now=T0)

        order_service.change_order_quantity(line.id, 5, now=T0)

        assert _qty(cola) == 15
        assert order_service.get_order(line.id).quantity == 5

    def test_decrease_restores_the_difference(self, tables, make_product):
        cola = make_product(quantity=20)
        line = order_service.place_order(1, ProductRef(cola.id), 5, now=T0)

        order_service.change_order_quantity(line.id, 1, now=T0)

        assert _qty(cola) == 19
        reversal = inventory_service.list_ledger(cola.id)[0]
        assert reversal.change_type == "sale"
        assert reversal.change_quantity == 4
        assert reversal.note == "Order reversal"

    def test_zero_removes_the_line(self, tables, make_product):
        cola = make_product(quantity=20)
        line = order_service.place_order(1, ProductRef(cola.id), 5, now=T0)

        assert order_service.change_order_quantity(line.id, 0, now=T0) is None

        assert _qty(cola) == 20
        assert order_service.list_orders(1) == []

    def test_negative_rejected(self, tables, make_product):
        cola = make_product()
        line = order_service.place_order(1, ProductRef(cola.id), 1, now=T0)
        with pytest.raises(ValidationError):
            order_service.change_order_quantity(line.id, -2, now=T0)

    def test_increase_beyond_stock(self, tables, make_product):
        cola = make_product(quantity=3)
        line = order_service.place_order(1, ProductRef(cola.id), 2, now=T0)

        with pytest.raises(InsufficientStockError):
            order_service.change_order_quantity(line.id, 5, now=T0)

        assert _qty(cola) == 1
        assert order_service.get_order(line.id).quantity == 2

    def test_retired_combo_can_shrink_but_not_grow(self, tables, make_product, make_combo):
        beer = make_product(name="Beer", quantity=20)
        combo = make_combo([(beer, 2)])
        line = order_service.place_order(1, ComboRef(combo.id), 3, now=T0)
        combo_service.deactivate_combo(combo.id)

        with pytest.raises(NotFoundError):
            order_service.change_order_quantity(line.id, 4, now=T0)

        order_service.change_order_quantity(line.id, 1, now=T0)
        assert _qty(beer) == 18


class TestRemoveAndClear:

    def test_remove_restores_full_quantity(self, tables, make_product, make_combo):
        beer = make_product(name="Beer", quantity=12)
        chips = make_product(name="Chips", quantity=5, category="food")
        combo = make_combo([(beer, 6), (chips, 1)])
        line = order_service.place_order(1, ComboRef(combo.id), 2, now=T0)

        order_service.remove_order(line.id, now=T0)

        assert _qty(beer) == 12
        assert _qty(chips) == 5
        assert ledger_service.verify_ledger() == []

    def test_remove_unknown(self, tables):
        with pytest.raises(NotFoundError):
            order_service.remove_order(5150, now=T0)

    def test_clear_table_restores_stock(self, tables, make_product):
        cola = make_product(quantity=20)
        water = make_product(name="Water", price="20.00", quantity=10)
        order_service.place_order(1, ProductRef(cola.id), 2, now=T0)
        order_service.place_order(1, ProductRef(water.id), 4, now=T0)
        order_service.place_order(2, ProductRef(cola.id), 1, now=T0)

        cleared = order_service.clear_orders(1, now=T0)

        assert cleared == 2
        assert _qty(cola) == 19
        assert _qty(water) == 10
        assert len(order_service.list_orders(2)) == 1

    def test_clear_without_restoring(self, tables, make_product):
        cola = make_product(quantity=20)
        order_service.place_order(None, ProductRef(cola.id), 2, now=T0)

        assert order_service.clear_orders(None, restore_stock=False, now=T0) == 1

        assert _qty(cola) == 18
        assert order_service.list_orders(None) == []
