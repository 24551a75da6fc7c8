# prosite/conftest.py
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from prosite.core.auth import create_access_token
from prosite.core.config import Settings
from prosite.core.database import Database
from prosite.features.billing.order_store import OrderStore
from prosite.features.billing.service import BillingService
from prosite.features.invoices.sequencer import InvoiceSequencer
from prosite.features.notifications.service import OutboxNotifier
from prosite.features.users.service import AccountStore
from prosite.tests.mocks import FakeEmailSender, FakeRenderer, FrozenClock

ADMIN_KEY = "test-admin-key"
START = datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        _env_file=None,
        ENV="test",
        DATABASE_URL=f"sqlite:///{tmp_path / 'prosite-test.db'}",
        JWT_SECRET="test-secret",
        ADMIN_KEY=ADMIN_KEY,
        UPI_PAYEE_ID="prosite@okaxis",
        UPI_PAYEE_NAME="ProSite",
        NOTIFICATIONS_ENABLED=False,
    )


@pytest.fixture
def database(test_settings):
    """Isolated SQLite database per test."""
    db = Database(test_settings.DATABASE_URL)
    db.create_all()
    yield db
    db.drop_all()
    db.dispose()


@pytest.fixture
def accounts(database, clock):
    return AccountStore(database, clock=clock)


@pytest.fixture
def orders(clock):
    return OrderStore(payee_id="prosite@okaxis", payee_name="ProSite", clock=clock)


@pytest.fixture
def sequencer(database, clock):
    return InvoiceSequencer(database, clock=clock)


@pytest.fixture
def notifier(database, clock):
    return OutboxNotifier(database, clock=clock)


@pytest.fixture
def billing(database, orders, sequencer, accounts, notifier, clock):
    return BillingService(database, orders, sequencer, accounts, notifier, clock=clock)


@pytest.fixture
def alice(accounts):
    return accounts.create_user("alice", "wonderland", email="alice@example.com", name="Alice")


@pytest.fixture
def bob(accounts):
    return accounts.create_user("bob", "builder1", email="bob@example.com", name="Bob")


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def app(test_settings, database, clock, email_sender, renderer):
    from prosite.main import create_app

    return create_app(
        test_settings,
        database=database,
        email_sender=email_sender,
        invoice_renderer=renderer,
        clock=clock,
    )


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers(test_settings):
    def _headers(user):
        token = create_access_token(user.user_id, test_settings)
        return {"Authorization": f"Bearer {token}"}

    return _headers
