"""
Pytest fixtures for inbound reconciliation tests.

Provides the app against in-memory SQLite, per-test table wipe, master data,
a recording publisher and a controllable clock.
"""

from datetime import datetime, timedelta

import pytest

from inbound import create_app
from inbound.extensions import db
from inbound.models import Item, PurchaseOrder, PurchaseOrderLine, Location, User, TagRegistration


class RecordingPublisher:
    """Keeps every published (channel, payload) pair in memory."""

    def __init__(self):
        self.events = []

    def publish(self, channel, payload):
        self.events.append((channel, payload))

    def channels(self):
        return [channel for channel, _ in self.events]

    def clear(self):
        self.events.clear()


class FailingPublisher:
    def __init__(self):
        self.calls = 0

    def publish(self, channel, payload):
        self.calls += 1
        raise ConnectionError("broker unavailable")


class FakeClock:
    """Callable clock; advance() moves it forward."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 15, 8, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SQLALCHEMY_TRACK_MODIFICATIONS': False,
            'PRESENCE_COOLDOWN_SECONDS': 60,
        },
        publisher=RecordingPublisher(),
    )

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
def publisher(app):
    """Fresh recording publisher installed on the app for one test."""
    previous = app.extensions["event_publisher"]
    recorder = RecordingPublisher()
    app.extensions["event_publisher"] = recorder
    yield recorder
    app.extensions["event_publisher"] = previous


@pytest.fixture(scope='function')
def clock(app):
    """Controllable clock used by reconcilers built for the app."""
    fake = FakeClock()
    app.extensions["scan_clock"] = fake
    yield fake
    app.extensions.pop("scan_clock", None)


@pytest.fixture(scope='function')
def dock(db_session):
    location = Location(location_code="DOCK-1", location_name="Receiving Dock 1", device_id="READER-01")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def staging(db_session):
    location = Location(location_code="STAGE-1", location_name="Staging Area", device_id="READER-02")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def receiver(db_session, dock):
    """Active user stationed at the receiving dock."""
    user = User(name="Dock Receiver", username="receiver", location_id=dock.id)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def items(db_session):
    rows = [
        Item(item_number="ITEM-A", item_description="Widget A", uom="EA"),
        Item(item_number="ITEM-B", item_description="Widget B", uom="EA"),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


@pytest.fixture(scope='function')
def po_single_line(db_session, items):
    """P1: one line, ITEM-A x10."""
    po = PurchaseOrder(po_number="P1", supplier_name="Acme Supply")
    po.lines = [PurchaseOrderLine(item_number="ITEM-A", quantity=10)]
    db_session.add(po)
    db_session.commit()
    return po


@pytest.fixture(scope='function')
def po_two_lines(db_session, items):
    """P2: ITEM-A x10, ITEM-B x5."""
    po = PurchaseOrder(po_number="P2", supplier_name="Acme Supply")
    po.lines = [
        PurchaseOrderLine(item_number="ITEM-A", quantity=10),
        PurchaseOrderLine(item_number="ITEM-B", quantity=5),
    ]
    db_session.add(po)
    db_session.commit()
    return po


@pytest.fixture(scope='function')
def tag(db_session):
    """Factory: insert a tag registration directly."""
    def _register(code, po_number, item_number, quantity, lot_no="LOT-1"):
        registration = TagRegistration(
            code=code,
            po_number=po_number,
            lot_no=lot_no,
            item_number=item_number,
            quantity=quantity,
        )
        db_session.add(registration)
        db_session.commit()
        return registration
    return _register


@pytest.fixture(scope='function')
def failing_publisher(app):
    """Publisher that raises on every publish, installed on the app for one test."""
    previous = app.extensions["event_publisher"]
    failing = FailingPublisher()
    app.extensions["event_publisher"] = failing
    yield failing
    app.extensions["event_publisher"] = previous


@pytest.fixture(scope='function')
def reconciler(app, db_session, publisher, clock):
    """Reconciler wired from the test app (recording publisher, fake clock)."""
    from inbound.services.scan_service import reconciler_for_app
    return reconciler_for_app(app)
