"""Tests for admin billing routes."""

import pytest

from prosite.conftest import ADMIN_KEY
from prosite.tests.mocks import FailingSequencer

ADMIN = {"X-Admin-Key": ADMIN_KEY}


@pytest.fixture
def deferred_invoice(app, alice):
    """A confirmed order whose invoice could not be issued."""
    billing = app.state.billing
    real = billing.sequencer
    billing.sequencer = FailingSequencer(RuntimeError("invoices table locked"))
    order_id = billing.create_order(alice.user_id, "pro", "INR").order.order_id
    billing.confirm_payment(alice.user_id, order_id, "UTR-5")
    billing.sequencer = real
    return order_id


@pytest.mark.parametrize("headers", [{}, {"X-Admin-Key": "wrong"}])
def test_admin_key_required(client, headers):
    resp = client.get("/api/admin/billing/backlog", headers=headers)
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "admin_required"


def test_admin_disabled_without_configured_key(test_settings, database, clock):
    from fastapi.testclient import TestClient

    from prosite.main import create_app

    app = create_app(test_settings.model_copy(update={"ADMIN_KEY": None}), database=database, clock=clock)
    resp = TestClient(app).get("/api/admin/billing/backlog", headers={"X-Admin-Key": ""})
    assert resp.status_code == 403


def test_backlog_lists_deferred_invoices(client, deferred_invoice):
    body = client.get("/api/admin/billing/backlog", headers=ADMIN).json()
    assert body["count"] == 1
    item = body["items"][0]
    assert item["order_id"] == deferred_invoice
    assert item["status"] == "pending"
    assert "locked" in item["last_error"]


def test_reconcile_then_dispatch(client, deferred_invoice, email_sender, alice, auth_headers):
    resp = client.post("/api/admin/billing/reconcile", headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json()["invoice_numbers"] == ["INV-001"]

    pending = client.get("/api/admin/billing/backlog", params={"status": "pending"}, headers=ADMIN).json()
    assert pending["count"] == 0

    invoices = client.get("/api/billing/invoices", headers=auth_headers(alice)).json()["invoices"]
    assert [i["invoiceNumber"] for i in invoices] == ["INV-001"]

    sent = client.post("/api/admin/billing/notifications/dispatch", headers=ADMIN)
    assert sent.json() == {"sent": 1}
    assert email_sender.sent[0][0] == "alice@example.com"
