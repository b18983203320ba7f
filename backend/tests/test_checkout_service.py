"""
Checkout tests: totals, the single Transaction per checkout and the state
it leaves behind.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from billiard_pos import events
from billiard_pos.errors import InvalidStateError, NotFoundError, ValidationError
from billiard_pos.extensions import db
from billiard_pos.models import ComboRef, ProductRef, Transaction
from billiard_pos.services import checkout_service, inventory_service, order_service, session_service
from billiard_pos.services.table_service import get_table, open_session, set_table_count

from conftest import T0


def _at(minutes):
    return T0 + timedelta(minutes=minutes)


class TestTotals:

    def test_running_open_session(self, tables, make_product):
        cola = make_product()
        session = session_service.start_session(1, now=T0)
        order_service.place_order(1, ProductRef(cola.id), 2, now=T0)

        totals = checkout_service.compute_table_total(1, now=_at(90))

        assert totals.session_id == session.id
        assert totals.time_cost == Decimal("250.00")
        assert totals.product_cost == Decimal("100.00")
        assert totals.total == Decimal("350.00")
        assert totals.time_breakdown == "1 hr ₱150 + 30min ₱100"

    def test_stopped_session_cost_is_frozen(self, tables):
        session_service.start_session(1, now=T0)
        session_service.stop_session(1, now=_at(45))

        totals = checkout_service.compute_table_total(1, now=_at(500))

        assert totals.time_cost == Decimal("150.00")

    def test_countdown_bills_the_allocation(self, tables):
        session_service.start_session(1, "countdown", 3600, now=T0)
        session_service.extend_session(1, 1800, now=_at(30))

        totals = checkout_service.compute_table_total(1, now=_at(31))

        assert totals.time_cost == Decimal("250.00")
        assert totals.time_breakdown is None

    def test_available_table_bills_no_time(self, tables, make_product):
        cola = make_product()
        order_service.place_order(1, ProductRef(cola.id), 1, now=T0)

        totals = checkout_service.compute_table_total(1, now=T0)

        assert totals.session_id is None
        assert totals.time_cost == Decimal("0.00")
        assert totals.total == Decimal("50.00")

    def test_serialized_totals(self, tables):
        session_service.start_session(1, now=T0)
        data = checkout_service.compute_table_total(1, now=_at(10)).to_dict()

        assert data["time_cost"] == "100.00"
        assert data["product_cost"] == "0.00"
        assert data["total"] == "100.00"
        assert data["time_breakdown"] == "0-30min ₱100"


class TestCheckout:

    def test_table_checkout(self, tables, make_product, make_combo):
        cola = make_product(quantity=20)
        combo = make_combo([(cola, 2)], price="90.00")
        session = session_service.start_session(1, now=T0)
        order_service.place_order(1, ProductRef(cola.id), 3, now=T0)
        order_service.place_order(1, ComboRef(combo.id), 1, now=T0)

        txn = checkout_service.checkout(1, "cash", now=_at(90))

        assert txn.table_id == 1
        assert txn.session_id == session.id
        assert txn.time_cost == Decimal("250.00")
        assert txn.product_cost == Decimal("240.00")
        assert txn.total_amount == Decimal("490.00")
        assert txn.payment_method == "cash"
        assert txn.reference_number is None
        assert txn.created_at == _at(90)

        assert db.session.query(Transaction).count() == 1
        assert order_service.list_orders(1) == []
        assert get_table(1).status == "available"
        assert open_session(1) is None
        assert session_service.get_session(session.id).duration_minutes == 90
        # Stock was taken when the orders were placed
        assert inventory_service.get_product(cola.id).quantity == 15

    def test_checkout_after_stop(self, tables):
        session_service.start_session(1, "countdown", 1800, now=T0)
        session_service.stop_session(1, now=_at(30))

        txn = checkout_service.checkout(1, now=_at(40))

        assert txn.time_cost == Decimal("100.00")
        assert get_table(1).status == "available"

    def test_checkout_from_needs_checkout(self, tables, make_product):
        cola = make_product()
        session = session_service.start_session(1, "countdown", 1800, now=T0)
        order_service.place_order(1, ProductRef(cola.id), 1, now=T0)
        assert session_service.stop_session(1, now=_at(45))["status"] == "needs_checkout"

        txn = checkout_service.checkout(1, now=_at(50))

        assert txn.session_id == session.id
        assert txn.time_cost == Decimal("100.00")
        assert txn.total_amount == Decimal("150.00")
        assert get_table(1).status == "available"
        assert order_service.list_orders(1) == []

    def test_checkout_with_partial_minute(self, tables):
        session = session_service.start_session(1, now=T0)

        checkout_service.checkout(1, now=T0 + timedelta(seconds=60.5))

        assert session_service.get_session(session.id).duration_minutes == 2

    def test_failed_step_leaves_everything_in_place(self, tables, make_product, monkeypatch):
        cola = make_product(quantity=10)
        session = session_service.start_session(1, now=T0)
        order_service.place_order(1, ProductRef(cola.id), 2, now=T0)

        def broken_delete(table_id):
            raise RuntimeError("disk full")

        monkeypatch.setattr(checkout_service, "delete_orders_for_scope", broken_delete)

        with pytest.raises(RuntimeError):
            checkout_service.checkout(1, now=_at(30))

        assert db.session.query(Transaction).count() == 0
        assert open_session(1).id == session.id
        assert session_service.get_session(session.id).end_time is None
        assert get_table(1).status == "occupied"
        assert [(line.product_id, line.quantity) for line in order_service.list_orders(1)] == [(cola.id, 2)]
        assert inventory_service.get_product(cola.id).quantity == 8

    def test_checked_out_session_is_not_billed_again(self, tables):
        session_service.start_session(1, now=T0)
        checkout_service.checkout(1, now=_at(20))

        second = checkout_service.checkout(1, now=_at(25))

        assert second.total_amount == Decimal("0.00")
        assert second.session_id is None
        assert db.session.query(Transaction).count() == 2

    def test_gcash_with_reference(self, tables):
        session_service.start_session(2, now=T0)

        txn = checkout_service.checkout(2, "GCash", " 0917-REF ", now=_at(10))

        assert txn.payment_method == "gcash"
        assert txn.reference_number == "0917-REF"

    def test_reference_only_for_gcash(self, tables):
        session_service.start_session(2, now=T0)

        with pytest.raises(ValidationError):
            checkout_service.checkout(2, "cash", "ABC123", now=_at(10))

        assert db.session.query(Transaction).count() == 0
        assert get_table(2).status == "occupied"

    def test_unknown_payment_method(self, tables):
        with pytest.raises(ValidationError):
            checkout_service.checkout(1, "card", now=T0)

    def test_unknown_table(self, tables):
        with pytest.raises(NotFoundError):
            checkout_service.checkout(99, now=T0)

    def test_inactive_table(self, tables):
        session_service.start_session(4, now=T0)
        checkout_service.checkout(4, now=_at(5))
        set_table_count(3)

        with pytest.raises(InvalidStateError):
            checkout_service.checkout(4, now=_at(10))

    def test_standalone_checkout(self, tables, make_product):
        cola = make_product()
        order_service.place_order(None, ProductRef(cola.id), 2, now=T0)
        order_service.place_order(1, ProductRef(cola.id), 1, now=T0)

        txn = checkout_service.checkout(None, "gcash", "REF-1", now=T0)

        assert txn.table_id is None
        assert txn.total_amount == Decimal("100.00")
        assert txn.time_cost == Decimal("0.00")
        assert order_service.list_orders(None) == []
        assert len(order_service.list_orders(1)) == 1

    def test_publishes_transaction_completed(self, tables):
        session_service.start_session(1, now=T0)
        received = []

        def receiver(sender, **payload):
            received.append(payload["transaction"])

        with events.transaction_completed.connected_to(receiver):
            txn = checkout_service.checkout(1, now=_at(10))

        assert [t["id"] for t in received] == [txn.id]
        assert received[0]["total_amount"] == "100.00"
        assert received[0]["table_name"] == "Table 1"


class TestTransactionQueries:

    def test_list_by_window(self, tables):
        session_service.start_session(1, now=T0)
        first = checkout_service.checkout(1, now=_at(10))
        session_service.start_session(1, now=_at(60))
        second = checkout_service.checkout(1, now=_at(120))

        assert [t.id for t in checkout_service.list_transactions()] == [second.id, first.id]
        assert [t.id for t in checkout_service.list_transactions(start=_at(60))] == [second.id]
        assert [t.id for t in checkout_service.list_transactions(end=_at(10))] == [first.id]

    def test_get_transaction(self, tables):
        txn = checkout_service.checkout(1, now=T0)
        assert checkout_service.get_transaction(txn.id).id == txn.id
        with pytest.raises(NotFoundError):
            checkout_service.get_transaction(txn.id + 100)
