"""
Payment confirmation email.

Delivery goes through the Resend API. Without RESEND_API_KEY the sender
reports itself unconfigured and the dispatcher skips the message.
"""
import logging
from typing import Optional, Protocol, Tuple

import resend

from prosite.core.templates import get_template_env, long_date
from prosite.features.plans.catalog import CURRENCY_SYMBOLS
from prosite.models.invoice import Invoice

logger = logging.getLogger("prosite.notifications.email")


class EmailSender(Protocol):
    @property
    def is_configured(self) -> bool:
        ...

    def send(self, to: str, subject: str, html: str) -> Optional[str]:
        """Send one message and return the provider message id, if any."""
        ...


class ResendEmailSender:
    def __init__(self, api_key: Optional[str], from_address: str):
        self.api_key = api_key
        self.from_address = from_address

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def send(self, to: str, subject: str, html: str) -> Optional[str]:
        resend.api_key = self.api_key
        response = resend.Emails.send({
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "html": html,
        })
        message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        logger.info(f"email.sent to={to} id={message_id}")
        return message_id


def build_payment_email(invoice: Invoice) -> Tuple[str, str]:
    subject = f"Payment Confirmation - {invoice.invoice_number} | ProSite"
    html = get_template_env().get_template("payment_email.html").render(
        invoice=invoice,
        symbol=CURRENCY_SYMBOLS.get(invoice.currency, invoice.currency + " "),
        issued_on=long_date(invoice.created_at),
        paid_on=long_date(invoice.paid_at or invoice.created_at),
    )
    return subject, html
