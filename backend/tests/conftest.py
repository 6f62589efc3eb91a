"""
Pytest fixtures for Watchcraft backend tests.

Provides the test app (in-memory SQLite), a per-test clean database,
a test client, and small factories for items, customers and services.
"""

import pytest
from watchcraft import create_app
from watchcraft.extensions import db
from watchcraft.services import customer_service, inventory_service, service_lifecycle

ACTOR_ID = 7


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'REQUIRE_ACTOR_HEADER': True,
        'LOW_STOCK_THRESHOLD': 2,
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


@pytest.fixture
def make_item(db_session):
    """Factory: create an inventory item (committed) with sensible defaults."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "code": f"itm-{counter['n']:03d}",
            "type": "Watch",
            "brand": "Titan",
            "model": f"Model {counter['n']}",
            "price_cents": 10000,
            "quantity": 5,
            "outlet": "Semmancheri",
        }
        data.update(overrides)
        return inventory_service.create_item(data, ACTOR_ID)

    return _make


@pytest.fixture
def make_customer(db_session):
    """Factory: create a customer (committed) with unique contact details."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "name": f"Customer {counter['n']}",
            "email": f"customer{counter['n']}@example.com",
            "phone": f"98765432{counter['n']:02d}",
        }
        data.update(overrides)
        return customer_service.create_customer(data, ACTOR_ID)

    return _make


@pytest.fixture
def make_service(db_session):
    """Factory: open a pending service ticket for a customer."""
    def _make(customer_id: int, **overrides):
        data = {
            "customer_id": customer_id,
            "brand": "Seiko",
            "model": "5 Sports",
            "dial_color": "Black",
            "movement_no": "4R36",
            "gender": "Male",
            "case_type": "Steel",
            "strap_type": "Steel",
            "issue": "Crown stuck",
            "cost_cents": 50000,
        }
        data.update(overrides)
        return service_lifecycle.create_service(data, ACTOR_ID)

    return _make


def actor_headers(actor_id: int = ACTOR_ID) -> dict:
    """Helper to create the actor attribution header."""
    return {'X-Actor-Id': str(actor_id)}
