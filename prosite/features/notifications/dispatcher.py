"""
Notification dispatcher.

Drains the outbox outside any request. Runs either as a detached asyncio task
in the API process (`start` / `stop`) or from the worker CLI
(`python -m prosite.workers.notification_delivery`).
"""
import asyncio
import logging
from datetime import timedelta
from typing import Optional

from prosite.core.clock import Clock, utc_now
from prosite.core.database import Database
from prosite.core.errors import NotificationFailedError
from prosite.features.invoices import repository
from prosite.features.notifications import outbox
from prosite.features.notifications.email import EmailSender, build_payment_email

logger = logging.getLogger("prosite.notifications.dispatcher")

STALE_CLAIM_AFTER = timedelta(minutes=10)


class NotificationDispatcher:
    def __init__(
        self,
        database: Database,
        sender: EmailSender,
        *,
        clock: Clock = utc_now,
        max_attempts: int = outbox.MAX_ATTEMPTS_DEFAULT,
        batch_size: int = 20,
        owner: str = "dispatcher",
    ):
        self.db = database
        self.sender = sender
        self._clock = clock
        self.max_attempts = max_attempts
        self.batch_size = batch_size
        self.owner = owner
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None

    def run_once(self) -> int:
        """Process one batch of due rows. Returns how many were sent."""
        now = self._clock()
        outbox.release_stale_claims(self.db, STALE_CLAIM_AFTER, now=now)
        rows = outbox.claim_due(self.db, self.batch_size, now=now, owner=self.owner)
        sent = 0
        for row in rows:
            if self._deliver(row):
                sent += 1
        return sent

    def _deliver(self, row) -> bool:
        now = self._clock()
        if not self.sender.is_configured:
            logger.warning("Email not configured (RESEND_API_KEY not set), skipping notification")
            outbox.mark_skipped(self.db, row, "email_not_configured", now=now)
            return False

        try:
            with self.db.session() as session:
                invoice = repository.get_invoice(session, row['invoice_id'])
            if invoice is None:
                raise NotificationFailedError(f"Invoice {row['invoice_id']} not found")
            subject, html = build_payment_email(invoice)
            self.sender.send(row['recipient'], subject, html)
        except Exception as exc:
            status = outbox.record_failure(self.db, row, str(exc), max_attempts=self.max_attempts, now=now)
            logger.warning(
                f"notification.delivery_failed id={row['id']} attempt={row['attempt_count'] + 1} next={status}: {exc}",
                extra={"error_code": "notification_failed"},
            )
            return False

        outbox.mark_sent(self.db, row, now=now)
        logger.info(f"notification.sent id={row['id']} invoice={invoice.invoice_number}")
        return True

    async def _loop(self, interval: float) -> None:
        assert self._stopping is not None
        while not self._stopping.is_set():
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.error("notification.dispatch_loop_error", exc_info=True)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    def start(self, interval: float = 5.0) -> None:
        if self._task is not None:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop(interval), name="notification-dispatcher")
        logger.info(f"notification.dispatcher_started interval={interval}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
        logger.info("notification.dispatcher_stopped")
