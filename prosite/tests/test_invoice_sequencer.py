"""Tests for invoice number allocation."""

import threading
from datetime import timedelta

import pytest
from sqlalchemy import insert, select

from prosite.core.database import invoice_sequences, invoices
from prosite.core.errors import InvoiceAllocationConflictError
from prosite.features.invoices import repository
from prosite.features.invoices.sequencer import (
    InvoiceSequencer,
    format_invoice_number,
    parse_invoice_number,
)


def _issue(sequencer, order_id, user_id="u1"):
    return sequencer.issue(
        user_id=user_id,
        order_id=order_id,
        plan_id="pro",
        plan_name="Professional",
        amount=499,
        currency="INR",
        external_transaction_ref="UTR123",
        user_email="a@example.com",
        user_name="A",
    )


def _insert_raw_invoice(database, number, created_at, order_id):
    with database.session() as session:
        session.execute(insert(invoices).values(
            id=f"raw-{number}",
            invoice_number=number,
            user_id="legacy",
            order_id=order_id,
            plan_id="starter",
            plan_name="Starter",
            amount=199,
            currency="INR",
            payment_method="upi",
            external_transaction_ref="",
            status="paid",
            user_email="",
            user_name="",
            created_at=created_at,
        ))


def test_format_and_parse():
    assert format_invoice_number("INV", 1) == "INV-001"
    assert format_invoice_number("INV", 999) == "INV-999"
    assert format_invoice_number("INV", 1000) == "INV-1000"
    assert parse_invoice_number("INV-042") == 42
    assert parse_invoice_number("INV-1000") == 1000
    assert parse_invoice_number(None) is None
    assert parse_invoice_number("garbage") is None


def test_first_number_on_empty_history(sequencer):
    assert sequencer.next_invoice_number() == "INV-001"


def test_sequential_numbers_strictly_increase(sequencer):
    numbers = [sequencer.next_invoice_number() for _ in range(5)]
    assert numbers == ["INV-001", "INV-002", "INV-003", "INV-004", "INV-005"]


def test_issue_persists_invoice(sequencer, database, clock):
    invoice = _issue(sequencer, "ORD-1")
    assert invoice.invoice_number == "INV-001"
    assert invoice.amount == 499
    with database.session() as session:
        row = session.execute(select(invoices).where(invoices.c.id == invoice.id)).first()
    assert row.order_id == "ORD-1"
    assert row.status == "paid"
    assert invoice.paid_at == invoice.created_at == clock()


def test_issue_keeps_given_payment_time(sequencer, clock):
    paid = clock() - timedelta(days=2)
    invoice = sequencer.issue(
        user_id="u1",
        order_id="ORD-LATE",
        plan_id="pro",
        plan_name="Professional",
        amount=499,
        currency="INR",
        paid_at=paid,
    )
    assert invoice.paid_at == paid
    assert invoice.created_at == clock()


def test_issue_is_idempotent_per_order(sequencer):
    first = _issue(sequencer, "ORD-1")
    again = _issue(sequencer, "ORD-1")
    assert again.id == first.id
    assert _issue(sequencer, "ORD-2").invoice_number == "INV-002"


def test_counter_seeded_from_latest_invoice(database, clock):
    _insert_raw_invoice(database, "INV-007", clock() - timedelta(days=2), "OLD-7")
    _insert_raw_invoice(database, "INV-012", clock() - timedelta(days=1), "OLD-12")

    sequencer = InvoiceSequencer(database, clock=clock)
    assert sequencer.next_invoice_number() == "INV-013"


def test_number_grows_past_padding(database, clock):
    with database.session() as session:
        session.execute(insert(invoice_sequences).values(name="INV", last_value=999, updated_at=clock()))
    sequencer = InvoiceSequencer(database, clock=clock)
    assert sequencer.next_invoice_number() == "INV-1000"


def test_same_instant_orders_longer_number_first(database, clock):
    _insert_raw_invoice(database, "INV-999", clock(), "OLD-999")
    _insert_raw_invoice(database, "INV-1000", clock(), "OLD-1000")

    with database.session() as session:
        assert repository.latest_invoice_number(session) == "INV-1000"
        listed = repository.list_for_user(session, "legacy")
    assert [inv.invoice_number for inv in listed] == ["INV-1000", "INV-999"]

    sequencer = InvoiceSequencer(database, clock=clock)
    assert sequencer.next_invoice_number() == "INV-1001"


def test_conflict_with_taken_number_is_retried(database, clock, sequencer):
    assert _issue(sequencer, "ORD-1").invoice_number == "INV-001"
    # A writer that bypasses the counter takes the next two numbers.
    _insert_raw_invoice(database, "INV-002", clock(), "RAW-2")
    _insert_raw_invoice(database, "INV-003", clock(), "RAW-3")

    invoice = _issue(sequencer, "ORD-2")
    assert invoice.invoice_number == "INV-004"


def test_conflict_exhausts_attempts(database, clock):
    sequencer = InvoiceSequencer(database, clock=clock, max_attempts=2)
    calls = []

    def always_taken(session):
        calls.append(1)
        _insert_raw_invoice(database, f"INV-X{len(calls)}", clock(), f"RAW-DUP-{len(calls)}")
        session.execute(insert(invoices).values(
            id=f"dup-{len(calls)}",
            invoice_number=f"INV-X{len(calls)}",
            user_id="u",
            order_id=f"DUP-{len(calls)}",
            plan_id="pro",
            plan_name="Professional",
            amount=1,
            currency="INR",
            payment_method="upi",
            external_transaction_ref="",
            status="paid",
            user_email="",
            user_name="",
            created_at=clock(),
        ))

    with pytest.raises(InvoiceAllocationConflictError) as exc:
        sequencer._with_retries(always_taken, order_id=None)
    assert exc.value.status_code == 409
    assert len(calls) == 2


def test_concurrent_issue_yields_unique_numbers(database, clock):
    sequencer = InvoiceSequencer(database, clock=clock)
    barrier = threading.Barrier(10)
    results, errors = [], []

    def worker(i):
        barrier.wait()
        try:
            results.append(_issue(sequencer, f"ORD-{i}").invoice_number)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert sorted(results) == [format_invoice_number("INV", n) for n in range(1, 11)]


def test_two_sequencers_share_the_durable_counter(database, clock):
    a = InvoiceSequencer(database, clock=clock)
    b = InvoiceSequencer(database, clock=clock)
    assert _issue(a, "ORD-A").invoice_number == "INV-001"
    assert _issue(b, "ORD-B").invoice_number == "INV-002"
    assert _issue(a, "ORD-C").invoice_number == "INV-003"
