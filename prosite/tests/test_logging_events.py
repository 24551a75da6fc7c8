"""Tests for structured billing events and their formatting."""

import json
import logging

from prosite.core.logging import (
    CONTEXT_VALUE_LIMIT,
    JsonFormatter,
    PrettyFormatter,
    log_event,
    request_id_ctx_var,
)

events = logging.getLogger("prosite.tests.events")


def _last(caplog, msg):
    return [r for r in caplog.records if r.getMessage() == msg][-1]


def test_named_fields_become_record_attributes(caplog):
    with caplog.at_level(logging.INFO, logger="prosite.tests.events"):
        log_event(events, "info", "billing.order.created", user_id="u1", order_id="ORD-1",
                  event_type="order.created", amount=499, plan="pro")

    record = _last(caplog, "billing.order.created")
    assert record.name == "prosite.tests.events"
    assert record.levelno == logging.INFO
    assert record.user_id == "u1"
    assert record.order_id == "ORD-1"
    assert record.event_type == "order.created"
    assert record.context == {"amount": 499, "plan": "pro"}
    assert not hasattr(record, "error_code")


def test_long_context_values_are_clipped(caplog):
    with caplog.at_level(logging.ERROR, logger="prosite.tests.events"):
        log_event(events, "error", "billing.invoice.deferred",
                  error=RuntimeError("x" * (CONTEXT_VALUE_LIMIT + 20)))

    value = _last(caplog, "billing.invoice.deferred").context["error"]
    assert value.startswith("RuntimeError: xxx")
    assert value.endswith("...(+34 chars)")


def test_request_id_taken_from_context(caplog):
    token = request_id_ctx_var.set("rid-123")
    try:
        with caplog.at_level(logging.INFO, logger="prosite.tests.events"):
            log_event(events, "info", "billing.payment.confirmed", order_id="ORD-2")
    finally:
        request_id_ctx_var.reset(token)

    assert _last(caplog, "billing.payment.confirmed").request_id == "rid-123"


def test_formatters_render_context(caplog):
    with caplog.at_level(logging.WARNING, logger="prosite.tests.events"):
        log_event(events, "warning", "billing.notification.failed",
                  error_code="notification_failed", attempt=3)
    record = _last(caplog, "billing.notification.failed")

    payload = json.loads(JsonFormatter().format(record))
    assert payload["level"] == "WARNING"
    assert payload["error_code"] == "notification_failed"
    assert payload["context"] == {"attempt": 3}

    assert PrettyFormatter().format(record).endswith("billing.notification.failed attempt=3")


def test_billing_service_logs_order_creation(billing, alice, caplog):
    with caplog.at_level(logging.INFO, logger="prosite.billing"):
        created = billing.create_order(alice.user_id, "pro", "INR")

    record = _last(caplog, "billing.order.created")
    assert record.name == "prosite.billing"
    assert record.order_id == created.order.order_id
    assert record.context == {"plan": "pro", "amount": 499, "currency": "INR"}
