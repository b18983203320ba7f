from datetime import timedelta

import pytest

from billiard_pos.errors import InvalidStateError, NotFoundError, ValidationError
from billiard_pos.models import ProductRef, Setting, Table
from billiard_pos.services import checkout_service, order_service, session_service, table_service
from billiard_pos.extensions import db

from conftest import T0


class TestProvisioning:

    def test_creates_numbered_tables(self, db_session):
        result = table_service.set_table_count(3)

        assert result["count"] == 3
        assert result["changes"]["created"] == [1, 2, 3]
        assert [t["name"] for t in result["tables"]] == ["Table 1", "Table 2", "Table 3"]
        assert all(t["status"] == "available" for t in result["tables"])
        assert db.session.get(Setting, "table_count").value == "3"

    def test_shrinking_deletes_unused_tables(self, tables):
        result = table_service.set_table_count(2)

        assert result["changes"]["deleted"] == [3, 4]
        assert db.session.get(Table, 3) is None
        assert [t["id"] for t in table_service.list_tables()] == [1, 2]

    def test_shrinking_retires_tables_with_history(self, tables):
        session_service.start_session(3, now=T0)
        checkout_service.checkout(3, now=T0 + timedelta(minutes=40))

        result = table_service.set_table_count(2)

        assert result["changes"]["retired"] == [3]
        assert result["changes"]["deleted"] == [4]
        assert table_service.get_table(3).status == "inactive"
        assert [t["id"] for t in table_service.list_tables()] == [1, 2]

    def test_growing_reactivates_retired_tables(self, tables):
        session_service.start_session(3, now=T0)
        session_service.reset_table(3, now=T0 + timedelta(minutes=5))
        table_service.set_table_count(2)

        result = table_service.set_table_count(4)

        assert result["changes"]["reactivated"] == [3]
        assert result["changes"]["created"] == [4]
        assert table_service.get_table(3).status == "available"

    def test_cannot_retire_occupied_table(self, tables):
        session_service.start_session(4, now=T0)

        with pytest.raises(InvalidStateError) as exc:
            table_service.set_table_count(2)

        assert exc.value.details["table_ids"] == [4]
        assert table_service.get_table(3) is not None
        assert table_service.get_table(4).status == "occupied"

    def test_cannot_retire_table_with_pending_orders(self, tables, make_product):
        cola = make_product()
        order_service.place_order(3, ProductRef(cola.id), 1, now=T0)

        with pytest.raises(InvalidStateError):
            table_service.set_table_count(2)

    @pytest.mark.parametrize("count", [0, -1, 21, "abc", 2.5])
    def test_count_bounds(self, db_session, count):
        with pytest.raises(ValidationError):
            table_service.set_table_count(count)


class TestTableViews:

    def test_get_table_not_found(self, tables):
        with pytest.raises(NotFoundError):
            table_service.get_table(42)

    def test_view_without_session(self, tables):
        view = table_service.list_tables()[0]

        assert view["is_active"] is False
        assert view["session_id"] is None
        assert view["remaining_seconds"] is None

    def test_countdown_view_has_remaining_time(self, tables):
        session_service.start_session(1, "countdown", 1800, now=T0)

        view = table_service.list_tables(now=T0 + timedelta(seconds=600))[0]

        assert view["is_active"] is True
        assert view["mode"] == "countdown"
        assert view["elapsed_seconds"] == 600
        assert view["total_allocated_seconds"] == 1800
        assert view["remaining_seconds"] == 1200

    def test_detail_includes_orders_and_totals(self, tables, make_product):
        cola = make_product()
        session_service.start_session(1, now=T0)
        order_service.place_order(1, ProductRef(cola.id), 2, now=T0)

        detail = table_service.get_table_detail(1, now=T0 + timedelta(minutes=45))

        assert len(detail["orders"]) == 1
        assert detail["totals"]["time_cost"] == "150.00"
        assert detail["totals"]["product_cost"] == "100.00"
        assert detail["totals"]["total"] == "250.00"
