"""Tests for the notification outbox and dispatcher."""

from datetime import timedelta

from prosite.features.notifications import outbox
from prosite.features.notifications.dispatcher import NotificationDispatcher
from prosite.features.notifications.service import OutboxNotifier
from prosite.tests.mocks import FakeEmailSender


def _confirmed_invoice(billing, user):
    order_id = billing.create_order(user.user_id, "pro", "INR").order.order_id
    return billing.confirm_payment(user.user_id, order_id).invoice


def test_backoff_floor_and_cap():
    assert outbox.compute_backoff(1) == timedelta(seconds=30)
    assert outbox.compute_backoff(6) == timedelta(seconds=64)
    assert outbox.compute_backoff(20) == timedelta(hours=1)


def test_enqueue_is_idempotent_per_invoice(database, clock):
    assert outbox.enqueue(database, outbox.KIND_PAYMENT_CONFIRMED, "inv-1", "a@example.com", now=clock())
    assert not outbox.enqueue(database, outbox.KIND_PAYMENT_CONFIRMED, "inv-1", "a@example.com", now=clock())
    assert len(outbox.list_rows(database)) == 1


def test_notifier_skips_empty_email(database, clock, billing, accounts):
    user = accounts.create_user("noemail", "secret99")
    _confirmed_invoice(billing, user)
    assert outbox.list_rows(database) == []


def test_notifier_swallows_storage_errors(clock, billing, alice, database, monkeypatch):
    invoice = _confirmed_invoice(billing, alice)

    def boom(*args, **kwargs):
        raise RuntimeError("db gone")

    monkeypatch.setattr(outbox, "enqueue", boom)
    OutboxNotifier(database, clock=clock).notify_payment_confirmed(invoice, "alice@example.com")


def test_dispatcher_sends_payment_email(database, clock, billing, alice):
    invoice = _confirmed_invoice(billing, alice)
    sender = FakeEmailSender()
    dispatcher = NotificationDispatcher(database, sender, clock=clock)

    assert dispatcher.run_once() == 1
    to, subject, html = sender.sent[0]
    assert to == "alice@example.com"
    assert invoice.invoice_number in subject
    assert "Professional" in html
    assert "₹499" in html

    rows = outbox.list_rows(database)
    assert rows[0]["status"] == "sent"
    assert rows[0]["attempt_count"] == 1
    # Nothing left to send.
    assert dispatcher.run_once() == 0


def test_dispatcher_retries_with_backoff(database, clock, billing, alice):
    _confirmed_invoice(billing, alice)
    sender = FakeEmailSender(fail_times=1)
    dispatcher = NotificationDispatcher(database, sender, clock=clock)

    assert dispatcher.run_once() == 0
    row = outbox.list_rows(database)[0]
    assert row["status"] == "pending"
    assert row["attempt_count"] == 1
    assert "smtp unavailable" in row["last_error"]

    # Not due yet.
    clock.advance(seconds=10)
    assert dispatcher.run_once() == 0

    clock.advance(seconds=30)
    assert dispatcher.run_once() == 1
    assert outbox.list_rows(database)[0]["status"] == "sent"


def test_dispatcher_parks_after_max_attempts(database, clock, billing, alice):
    _confirmed_invoice(billing, alice)
    sender = FakeEmailSender(fail_times=10)
    dispatcher = NotificationDispatcher(database, sender, clock=clock, max_attempts=2)

    dispatcher.run_once()
    clock.advance(minutes=5)
    dispatcher.run_once()

    row = outbox.list_rows(database)[0]
    assert row["status"] == "failed"
    assert row["attempt_count"] == 2


def test_unconfigured_sender_skips(database, clock, billing, alice):
    _confirmed_invoice(billing, alice)
    dispatcher = NotificationDispatcher(database, FakeEmailSender(configured=False), clock=clock)

    assert dispatcher.run_once() == 0
    assert outbox.list_rows(database)[0]["status"] == "skipped"


def test_stale_claims_are_released(database, clock, billing, alice):
    _confirmed_invoice(billing, alice)
    claimed = outbox.claim_due(database, 10, now=clock(), owner="crashed")
    assert len(claimed) == 1

    sender = FakeEmailSender()
    dispatcher = NotificationDispatcher(database, sender, clock=clock)
    assert dispatcher.run_once() == 0

    clock.advance(minutes=11)
    assert dispatcher.run_once() == 1
    assert len(sender.sent) == 1
