"""
Pytest fixtures for CodeMarket backend tests.

Provides an in-memory database, test client, users with session tokens,
and a scripted payment gateway in place of Paystack.
"""

from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from codemarket import create_app
from codemarket.extensions import db
from codemarket.models import CatalogItem, User, ROLE_ADMIN, ROLE_USER
from codemarket.services import session_service
from codemarket.services.access_service import Identity
from codemarket.services.auth_service import hash_password
from codemarket.services.paystack_client import GatewayTransaction, PaymentGateway


TEST_PASSWORD = "Password123!"

# bcrypt at 12 rounds is slow; hash once for every fixture user
_PASSWORD_HASH = hash_password(TEST_PASSWORD)


class FakeGateway(PaymentGateway):
    """Returns scripted transactions (or raises scripted errors) per reference."""

    def __init__(self):
        self.transactions = {}
        self.calls = []

    def succeed(self, reference, amount_minor, currency="GHS", status="success"):
        self.transactions[reference] = GatewayTransaction(
            reference=reference,
            status=status,
            amount_minor=amount_minor,
            currency=currency,
        )

    def fail_with(self, reference, exc):
        self.transactions[reference] = exc

    def fetch_transaction(self, reference):
        self.calls.append(reference)
        result = self.transactions.get(reference)
        if result is None:
            return GatewayTransaction(reference=reference, status="failed", amount_minor=0, currency="GHS")
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PAYSTACK_SECRET_KEY': 'sk_test_dummy',
        'PAYSTACK_CURRENCY': 'GHS',
        'CHECKOUT_ENFORCE_CATALOG_TOTAL': False,
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
def gateway(app):
    """Install a FakeGateway for the duration of one test."""
    fake = FakeGateway()
    previous = app.extensions.get("payment_gateway")
    app.extensions["payment_gateway"] = fake
    yield fake
    app.extensions["payment_gateway"] = previous


def _make_user(db_session, name, email, role):
    user = User(name=name, email=email, password_hash=_PASSWORD_HASH, role=role)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, "Site Admin", "admin@codemarket.test", ROLE_ADMIN)


@pytest.fixture(scope='function')
def buyer(db_session):
    return _make_user(db_session, "Kofi Buyer", "kofi@codemarket.test", ROLE_USER)


@pytest.fixture(scope='function')
def other_buyer(db_session):
    return _make_user(db_session, "Ama Buyer", "ama@codemarket.test", ROLE_USER)


@pytest.fixture(scope='function')
def admin_identity(admin_user):
    return Identity(user_id=admin_user.id, role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def buyer_identity(buyer):
    return Identity(user_id=buyer.id, role=ROLE_USER)


@pytest.fixture(scope='function')
def other_identity(other_buyer):
    return Identity(user_id=other_buyer.id, role=ROLE_USER)


def _headers_for(user):
    _, token = session_service.create_session(user_id=user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return _headers_for(admin_user)


@pytest.fixture(scope='function')
def buyer_headers(buyer):
    return _headers_for(buyer)


@pytest.fixture(scope='function')
def make_game(db_session):
    """Factory for live catalog items."""
    def _make(code="ABC123", price="25.00", **fields):
        game = CatalogItem(
            title=fields.pop("title", f"Booking Code: {code}"),
            booking_code=code,
            price=Decimal(price),
            **fields,
        )
        db_session.add(game)
        db_session.commit()
        return game

    return _make


@pytest.fixture(scope='function')
def database_down(db_session):
    """
    Make statements fail as if the database file were unreachable.

    database_down() breaks every statement; database_down("recovery_games")
    only those that mention that table. Removed at teardown.
    """
    engine = db.engine
    listeners = []

    def _install(table=None):
        def _fail(conn, cursor, statement, parameters, context, executemany):
            if table is None or table in statement.lower():
                raise OperationalError(statement, parameters, Exception("unable to open database file"))

        event.listen(engine, "before_cursor_execute", _fail)
        listeners.append(_fail)

    yield _install

    for listener in listeners:
        event.remove(engine, "before_cursor_execute", listener)
