"""Tests for the invoice HTML used by the PDF renderer and the payment email."""

from datetime import datetime, timezone

import pytest

from prosite.features.invoices.pdf import InvoiceRenderer
from prosite.features.notifications.email import build_payment_email
from prosite.models.invoice import Invoice


def _invoice(**overrides):
    data = dict(
        id="inv-1",
        invoice_number="INV-007",
        user_id="u1",
        order_id="ORD-1",
        plan_id="pro",
        plan_name="Professional",
        amount=29,
        currency="USD",
        user_email="alice@example.com",
        user_name="Alice <script>",
        created_at=datetime(2026, 3, 4, 10, 0, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return Invoice(**data)


def test_invoice_html_contents():
    html = InvoiceRenderer().render_html(_invoice())
    assert "INV-007" in html
    assert "$29" in html
    assert "4 March 2026" in html
    assert "PAID" in html


def test_invoice_html_escapes_user_fields():
    html = InvoiceRenderer().render_html(_invoice())
    assert "<script>" not in html
    assert "&lt;script&gt;" in html


def test_unknown_currency_symbol_falls_back_to_code():
    html = InvoiceRenderer().render_html(_invoice(currency="JPY", amount=1000))
    assert "JPY 1000" in html


def test_payment_email():
    subject, html = build_payment_email(_invoice(currency="INR", amount=499))
    assert subject == "Payment Confirmation - INV-007 | ProSite"
    assert "₹499" in html
    assert "Professional" in html


def test_paid_date_shown_separately_from_issue_date():
    invoice = _invoice(paid_at=datetime(2026, 3, 1, 23, 0, tzinfo=timezone.utc))
    html = InvoiceRenderer().render_html(invoice)
    assert "1 March 2026" in html
    assert "4 March 2026" in html

    _, email_html = build_payment_email(invoice)
    assert "1 March 2026" in email_html


def test_render_invoice_produces_pdf():
    pytest.importorskip("weasyprint")
    pdf = InvoiceRenderer().render_invoice(_invoice())
    assert pdf.startswith(b"%PDF")
