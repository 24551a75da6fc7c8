"""Notifier used by billing on the confirmation path.

Calling it only writes an outbox row; sending happens in the dispatcher. Any
failure here is logged and swallowed so it never affects the confirmation.
"""
import logging
from typing import Protocol

from prosite.core.clock import Clock, utc_now
from prosite.core.database import Database
from prosite.core.logging import log_event
from prosite.features.notifications import outbox
from prosite.models.invoice import Invoice

logger = logging.getLogger("prosite.notifications")


class Notifier(Protocol):
    def notify_payment_confirmed(self, invoice: Invoice, email: str) -> None:
        ...


class OutboxNotifier:
    def __init__(self, database: Database, clock: Clock = utc_now):
        self.db = database
        self._clock = clock

    def notify_payment_confirmed(self, invoice: Invoice, email: str) -> None:
        if not email:
            logger.info(f"notification.skipped invoice={invoice.invoice_number} reason=no_email")
            return
        try:
            queued = outbox.enqueue(
                self.db,
                outbox.KIND_PAYMENT_CONFIRMED,
                invoice.id,
                email,
                now=self._clock(),
            )
        except Exception as exc:
            log_event(
                logger,
                "error",
                "billing.notification.failed",
                user_id=invoice.user_id,
                order_id=invoice.order_id,
                event_type="notification.enqueue",
                error_code="notification_failed",
                error=exc,
            )
            return
        if queued:
            logger.info(f"notification.queued invoice={invoice.invoice_number}")
