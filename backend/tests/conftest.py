"""
Pytest fixtures for stockscan backend tests.

Provides an application on in-memory SQLite, per-test table wipe, a test
client and store/product factories.
"""

import pytest

from stockscan import create_app
from stockscan.extensions import db
from stockscan.models import Store
from stockscan.services import catalog_service
from stockscan.services.persistence import SqlStockRepository


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CAMERA_RETRY_BACKOFF_SECONDS': 0,
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
        app.extensions["scan_sessions"].close_all()

        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        app.extensions["scan_sessions"].close_all()


@pytest.fixture(scope='function')
def repo(db_session):
    return SqlStockRepository(",")


@pytest.fixture(scope='function')
def store(db_session):
    store = Store(name="Main Store", code="MAIN")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def other_store(db_session):
    store = Store(name="Branch Store", code="BRANCH")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def make_product(db_session, store):
    """Factory: create a product (inventory seeded from purchase_qty or the code count)."""
    def _make(name, codes=(), tags=None, price_cents=10_000, purchase_qty=None, store_id=None):
        return catalog_service.create_product(
            store_id or store.id,
            name,
            selling_price_cents=price_cents,
            codes=list(codes),
            tags=tags,
            purchase_qty=purchase_qty,
        )
    return _make


@pytest.fixture(scope='function')
def phone_x(make_product):
    return make_product(
        "Phone X",
        codes=["A1", "A2", "A3", "A4", "A5"],
        tags=["128GB", "128GB", "256GB", "", ""],
        price_cents=45_000_00,
        purchase_qty=10,
    )


@pytest.fixture(scope='function')
def phone_y(make_product):
    return make_product("Phone Y", codes=["B1", "B2", "B3"], price_cents=38_000_00, purchase_qty=10)
