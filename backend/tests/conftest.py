"""
Pytest fixtures for laundry backend tests.

Provides an in-memory database app, per-test table wipe, hotel (tenant)
and item factories, and a recorder for transition events.
"""

import pytest

from laundry import create_app
from laundry.extensions import db, events
from laundry.events import WILDCARD
from laundry.services import item_service, pickup_service, tenant_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ACCOUNTING_SYNC_URL': None,
        'ACCOUNTING_SYNC_ASYNC': False,
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
        events.discard_pending()


@pytest.fixture(scope='function')
def recorded_events(db_session):
    """Every transition event dispatched during the test, in order."""
    seen = []

    def _record(event):
        seen.append(event)

    events.subscribe(WILDCARD, _record)
    yield seen
    events.unsubscribe(WILDCARD, _record)


@pytest.fixture(scope='function')
def hotel_a(db_session):
    """Hotel A with coordinates (proximity check enabled)."""
    return tenant_service.create_tenant(
        "Hotel A - Grand",
        email="ops@grand.example",
        latitude=41.0082,
        longitude=28.9784,
    )


@pytest.fixture(scope='function')
def hotel_b(db_session):
    """Hotel B without coordinates."""
    return tenant_service.create_tenant("Hotel B - Harbour", email="desk@harbour.example")


@pytest.fixture(scope='function')
def make_items(db_session):
    """Factory: register n items for a tenant, tags PREFIX-0001..."""
    def _make(tenant, n, *, prefix=None, item_type_id=1):
        prefix = prefix or f"T{tenant.id}"
        return [
            item_service.register_item(tenant.id, item_type_id, f"{prefix}-{i:04d}")
            for i in range(1, n + 1)
        ]
    return _make


@pytest.fixture(scope='function')
def ready_items(db_session, make_items):
    """Factory: items taken through pickup, reception and mark_clean (ready_for_delivery, wash_count 1)."""
    def _make(tenant, n, *, prefix=None, item_type_id=1):
        items = make_items(tenant, n, prefix=prefix, item_type_id=item_type_id)
        ids = [item.id for item in items]
        pickup = pickup_service.create_pickup(tenant.id, f"BAG-{prefix or tenant.id}-{n}", ids)
        pickup_service.receive_pickup(pickup.id)
        item_service.mark_clean(ids)
        return items
    return _make
