"""
Pytest fixtures for ERP backend tests.

Provides the application on in-memory SQLite, a per-test table wipe, request-free
ledgers for service tests, and role headers for API tests.
"""

import pytest

from erp import create_app
from erp.config import TestConfig
from erp.extensions import db
from erp.services import build_ledgers


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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
def ledgers(app, db_session):
    """Ledgers wired the way a request gets them (materials not consumed)."""
    return build_ledgers(app.config)


@pytest.fixture(scope='function')
def make_item(ledgers):
    """Factory for inventory items with sensible defaults."""
    counter = {"n": 0}

    def _make(name=None, **fields):
        counter["n"] += 1
        payload = {
            "name": name or f"Item {counter['n']}",
            "unit_of_measure": "pieces",
            "purchase_cost_cents": 100,
            "selling_price_cents": 250,
        }
        payload.update(fields)
        return ledgers.inventory.create_item(payload)

    return _make


@pytest.fixture(scope='function')
def manager_headers():
    return {"X-User-Role": "manager", "X-User-Name": "Morgan Manager"}


@pytest.fixture(scope='function')
def employee_headers():
    return {"X-User-Role": "employee", "X-User-Name": "Eli Employee"}
