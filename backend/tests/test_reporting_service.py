from datetime import date, timedelta

import pytest

from billiard_pos.errors import ValidationError
from billiard_pos.models import ProductRef
from billiard_pos.services import checkout_service, order_service, reporting_service, session_service

from conftest import T0

DAY = T0.date()


@pytest.fixture
def business_day(tables, make_product):
    """
    One table checkout (90 min open time + 3 colas, cash) and one standalone
    gcash sale where one of two colas was handed back.
    """
    cola = make_product(price="50.00", cost="20.00")

    session_service.start_session(1, now=T0)
    order_service.place_order(1, ProductRef(cola.id), 3, now=T0)
    checkout_service.checkout(1, "cash", now=T0 + timedelta(minutes=90))

    line = order_service.place_order(None, ProductRef(cola.id), 2, now=T0)
    order_service.change_order_quantity(line.id, 1, now=T0)
    checkout_service.checkout(None, "gcash", "GC-1", now=T0 + timedelta(minutes=5))
    return cola


class TestDailyReport:

    def test_summary(self, business_day):
        report = reporting_service.daily_report(DAY)

        assert report["date"] == "2026-03-07"
        assert report["summary"] == {
            "total_revenue": "450.00",
            "time_revenue": "250.00",
            "product_revenue": "200.00",
            "transaction_count": 2,
            "cash_payments": "400.00",
            "gcash_payments": "50.00",
            "gross_income": "450.00",
            "cogs": "80.00",
            "net_income": "370.00",
            "profit_margin": "82.22",
        }

    def test_top_products_net_reversals(self, business_day):
        top = reporting_service.daily_report(DAY)["top_products"]

        assert top == [{
            "product_id": business_day.id,
            "product_name": "Cola",
            "category": "drink",
            "quantity": 4,
            "revenue": "200.00",
            "cogs": "80.00",
            "profit": "120.00",
        }]

    def test_table_income_skips_standalone(self, business_day):
        income = reporting_service.daily_report(DAY)["table_income"]

        assert income == [{
            "table_id": 1,
            "table_name": "Table 1",
            "session_count": 1,
            "time_revenue": "250.00",
            "product_revenue": "150.00",
            "total_revenue": "400.00",
        }]

    def test_transactions_newest_first(self, business_day):
        txns = reporting_service.daily_report(DAY)["transactions"]
        assert [t["table_id"] for t in txns] == [1, None]

    def test_empty_day(self, db_session):
        report = reporting_service.daily_report(date(2026, 1, 1))

        assert report["summary"]["total_revenue"] == "0.00"
        assert report["summary"]["profit_margin"] == "0.00"
        assert report["top_products"] == []
        assert report["transactions"] == []


class TestRangeReport:

    def test_one_row_per_day(self, business_day):
        report = reporting_service.range_report(DAY - timedelta(days=1), DAY + timedelta(days=1))

        assert [d["date"] for d in report["days"]] == ["2026-03-06", "2026-03-07", "2026-03-08"]
        assert [d["transaction_count"] for d in report["days"]] == [0, 2, 0]
        assert report["totals"]["total_revenue"] == "450.00"
        assert report["totals"]["cogs"] == "80.00"
        assert len(report["table_income"]) == 1

    def test_product_sales(self, business_day):
        rows = reporting_service.product_sales(DAY, DAY)
        assert [(r["product_name"], r["quantity"]) for r in rows] == [("Cola", 4)]

    def test_reversed_range_rejected(self, db_session):
        with pytest.raises(ValidationError):
            reporting_service.range_report(DAY, DAY - timedelta(days=1))

    def test_range_limit(self, db_session):
        with pytest.raises(ValidationError):
            reporting_service.range_report(DAY, DAY + timedelta(days=366))
        # 366 days inclusive is allowed
        reporting_service.range_report(DAY, DAY + timedelta(days=365))

    @pytest.mark.parametrize("value", [None, "", "2026-13-01", "yesterday"])
    def test_parse_report_date(self, value):
        with pytest.raises(ValidationError):
            reporting_service.parse_report_date(value)
