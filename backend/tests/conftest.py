"""
Pytest fixtures for billiard POS backend tests.

Provides an in-memory application, per-test data wipe, test client and
small factories for tables, products and combos.
"""

from datetime import datetime
from decimal import Decimal

import pytest
from billiard_pos import create_app
from billiard_pos.extensions import db
from billiard_pos.services import combo_service, products_service, table_service

# Fixed wall clock for state-machine tests; services accept now=...
T0 = datetime(2026, 3, 7, 18, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def tables(db_session):
    """Four available tables, ids 1..4."""
    return table_service.set_table_count(4)["tables"]


@pytest.fixture(scope='function')
def make_product(db_session):
    def _make(name="Cola", price="50.00", quantity=20, cost="20.00", category="drink"):
        return products_service.create_product(patch={
            "name": name,
            "price": Decimal(price),
            "cost": Decimal(cost),
            "quantity": quantity,
            "category": category,
        })
    return _make


@pytest.fixture(scope='function')
def make_combo(db_session):
    def _make(components, name="Bucket Deal", price="180.00"):
        return combo_service.create_combo(
            patch={"name": name, "price": Decimal(price)},
            components=[(p.id, qty) for p, qty in components],
        )
    return _make
