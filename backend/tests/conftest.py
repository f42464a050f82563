"""
Pytest fixtures for MediStore backend tests.

Provides test database setup, store/stock fixtures, and test client.
"""

from datetime import datetime

import pytest
from medistore import create_app
from medistore.extensions import db, analytics_cache
from medistore.models import Store, StockEntry
from medistore.services.billing_service import create_billing


STORE_EMAIL = "store@example.com"
OTHER_EMAIL = "other@example.com"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BILLING_RETRY_BACKOFF': 0,
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
        analytics_cache.clear()
        app.config['STOCK_MATCH_POLICY'] = 'medicine'

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def store(db_session):
    """Create the primary test store."""
    store = Store(email=STORE_EMAIL, name="Test Pharmacy", address="1 Main St")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def other_store(db_session):
    """Create a second, unrelated store."""
    store = Store(email=OTHER_EMAIL, name="Other Pharmacy", address="2 High St")
    db_session.add(store)
    db_session.commit()
    return store


def add_entry(session, store, med_id, quantity, unit_price_cents=500, batch_number="", name=None, expiry_date=None):
    entry = StockEntry(
        store_id=store.id,
        med_id=med_id,
        name=name or f"{med_id} name",
        unit_price_cents=unit_price_cents,
        quantity=quantity,
        batch_number=batch_number,
        expiry_date=expiry_date,
    )
    session.add(entry)
    session.commit()
    return entry


@pytest.fixture(scope='function')
def stocked_store(db_session, store):
    """Store with PARA500 x10 @ 5.00 and AMOX500 x20 @ 10.00."""
    add_entry(db_session, store, "PARA500", 10, 500, name="Paracetamol 500mg")
    add_entry(db_session, store, "AMOX500", 20, 1000, name="Amoxicillin 500mg")
    return store


CUSTOMER = {"name": "Jane Doe", "age": 34, "phone": "555-0100"}


def bill(med_quantities, *, at=None, email=STORE_EMAIL, total=None):
    """Create a bill for [(med_id, qty), ...] at a fixed UTC time."""
    return create_billing(
        email,
        CUSTOMER,
        [{"med_id": med_id, "quantity": qty} for med_id, qty in med_quantities],
        total,
        now=at or datetime(2024, 3, 1, 10, 0),
    )


def stock_snapshot(session, store):
    entries = session.query(StockEntry).filter_by(store_id=store.id).order_by(StockEntry.id).all()
    return [entry.to_dict() for entry in entries]
