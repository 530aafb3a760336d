"""Shared test fixtures for the slotpay test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, rate limits off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: a capacity-1 slot priced 20.00 and a customer holding 500 credits
- auth_headers / make_token: bearer tokens signed with the test secret
- make_checkout_event: Stripe-shaped checkout.session.completed payloads
- slot_factory / grant_credits: helpers for extra slots and balances
- file_app: app on a file-backed SQLite database for threaded tests
- signed_headers: a real Stripe-Signature header for a payload
"""

import hashlib
import hmac
import time
import uuid
from decimal import Decimal

import jwt
import pytest
from sqlalchemy import event

from slotpay import create_app
from slotpay.config import TestConfig, config_by_name
from slotpay.extensions import db as _db
from slotpay.models.ledger import LedgerSource
from slotpay.models.slot import Slot
from slotpay.services.ledger_service import EntrySpec, append_entries

CUSTOMER_ID = "8b1f0c52-5d0e-4f5e-9a43-7f0d2f1c0a11"
OTHER_CUSTOMER_ID = "d3c1a9e0-2b47-4a55-8f16-0c9e5b7a2d33"
LISTING_ID = "4e6a2f10-9c3b-4d8e-a1f7-5b2c8d9e0f12"


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def make_token(app):
    """Return a function that signs a bearer token for a user id."""

    def _make(user_id=CUSTOMER_ID, secret=None, audience=None, expires_in=3600):
        claims = {
            "sub": user_id,
            "email": f"{user_id[:8]}@example.com",
            "aud": audience or app.config["AUTH_JWT_AUDIENCE"],
            "exp": int(time.time()) + expires_in,
        }
        return jwt.encode(
            claims, secret or app.config["AUTH_JWT_SECRET"], algorithm="HS256"
        )

    return _make


@pytest.fixture
def auth_headers(make_token):
    """Authorization header for the seeded customer."""
    return {"Authorization": f"Bearer {make_token()}"}


def create_slot(capacity=1, booked_count=0, price="20.00", listing_id=LISTING_ID):
    slot = Slot(
        listing_id=listing_id,
        label="Cut & finish",
        price=Decimal(price),
        capacity=capacity,
        booked_count=booked_count,
    )
    _db.session.add(slot)
    _db.session.commit()
    return slot


def grant(user_id, amount):
    append_entries(_db.session, user_id, [EntrySpec(amount, LedgerSource.MANUAL_GRANT)])
    _db.session.commit()


@pytest.fixture
def seed_data(app, db_session):
    """Seed a capacity-1 slot (price 20.00) and give the customer 500 credits.

    Returns plain ids so tests can use them after objects expire.
    """
    slot = create_slot()
    grant(CUSTOMER_ID, 500)
    return {
        "slot": slot,
        "slot_id": slot.id,
        "listing_id": LISTING_ID,
        "user_id": CUSTOMER_ID,
        "other_user_id": OTHER_CUSTOMER_ID,
    }


@pytest.fixture
def make_checkout_event():
    """Build a checkout.session.completed event as Stripe would send it."""

    def _make(slot_id, user_id=CUSTOMER_ID, listing_id=LISTING_ID,
              price_minor_units=2000, redeem_amount=500, amount_total=None,
              event_id=None, event_type="checkout.session.completed",
              payment_status="paid", session_id=None):
        if amount_total is None:
            amount_total = max(50, price_minor_units - redeem_amount)
        return {
            "id": event_id or f"evt_{uuid.uuid4().hex[:24]}",
            "object": "event",
            "type": event_type,
            "data": {
                "object": {
                    "id": session_id or f"cs_test_{uuid.uuid4().hex[:24]}",
                    "object": "checkout.session",
                    "amount_total": amount_total,
                    "client_reference_id": user_id,
                    "payment_status": payment_status,
                    "metadata": {
                        "user_id": user_id,
                        "listing_id": listing_id,
                        "slot_id": slot_id,
                        "price_minor_units": str(price_minor_units),
                        "redeem_amount": str(redeem_amount),
                    },
                }
            },
        }

    return _make


@pytest.fixture
def slot_factory(db_session):
    """Create and commit extra slots."""
    return create_slot


@pytest.fixture
def grant_credits(db_session):
    """Append a committed manual_grant entry for a user."""
    return grant


def signed_headers(secret, payload, timestamp=None):
    """Stripe-Signature header for payload, computed the way Stripe signs."""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return {"Stripe-Signature": f"t={timestamp},v1={signature}"}


@pytest.fixture
def file_app(tmp_path, monkeypatch):
    """App on a file-backed SQLite database, for tests that use threads.

    Every thread gets its own app context, session and connection. Each
    transaction opens with BEGIN IMMEDIATE so concurrent writers queue on
    the database lock rather than failing a lock upgrade.
    """

    class FileTestConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'settlement.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30}}

    monkeypatch.setitem(config_by_name, "file_testing", FileTestConfig)
    app = create_app("file_testing")

    with app.app_context():
        engine = _db.engine

        @event.listens_for(engine, "connect")
        def _disable_driver_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        _db.create_all()

    yield app

    with app.app_context():
        _db.session.remove()
        _db.drop_all()
        _db.engine.dispose()
