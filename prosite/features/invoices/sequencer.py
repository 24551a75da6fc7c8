"""
Invoice number allocation.

Numbers look like INV-001, INV-002, ... and keep growing past the padding width
(INV-1000). Allocation is serialized twice over:

- an in-process lock, so request threads of one worker never interleave, and
- a durable counter row in `invoice_sequences`, incremented by UPDATE inside the
  same transaction that inserts the invoice, so concurrent workers queue on the
  row lock and a number is consumed only if its invoice commits.

The unique constraint on `invoices.invoice_number` is the last line: a conflict
(e.g. a row inserted by hand or by a legacy writer) advances the counter past
the taken number and the insert is retried up to `max_attempts` times.
"""
import logging
import re
import threading
import uuid
from datetime import datetime
from typing import Callable, Optional, TypeVar

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from prosite.core.clock import Clock, utc_now
from prosite.core.database import Database, invoices, invoice_sequences
from prosite.core.errors import InvoiceAllocationConflictError
from prosite.features.invoices import repository
from prosite.models.invoice import Invoice, InvoiceStatus

logger = logging.getLogger("prosite.billing.invoices")

T = TypeVar("T")

_SUFFIX_RE = re.compile(r"(\d+)$")


def format_invoice_number(prefix: str, value: int, width: int = 3) -> str:
    return f"{prefix}-{value:0{width}d}"


def parse_invoice_number(number: Optional[str]) -> Optional[int]:
    if not number:
        return None
    match = _SUFFIX_RE.search(number)
    return int(match.group(1)) if match else None


class InvoiceSequencer:
    def __init__(
        self,
        database: Database,
        *,
        prefix: str = "INV",
        width: int = 3,
        max_attempts: int = 5,
        clock: Clock = utc_now,
    ):
        self.db = database
        self.prefix = prefix
        self.width = width
        self.max_attempts = max(1, max_attempts)
        self._clock = clock
        self._lock = threading.Lock()

    def next_invoice_number(self) -> str:
        """Allocate and consume the next number without writing an invoice."""
        def allocate(session: Session) -> str:
            return self._format(self._allocate(session))

        return self._with_retries(allocate, order_id=None)

    def issue(
        self,
        *,
        user_id: str,
        order_id: str,
        plan_id: str,
        plan_name: str,
        amount: int,
        currency: str,
        external_transaction_ref: str = "",
        user_email: str = "",
        user_name: str = "",
        payment_method: str = "upi",
        status: InvoiceStatus = InvoiceStatus.PAID,
        paid_at: Optional[datetime] = None,
    ) -> Invoice:
        """
        Number and persist the invoice for an order.

        Idempotent per order: if the order already has an invoice it is
        returned unchanged and no number is consumed.
        `paid_at` defaults to the issue time.
        """
        def write(session: Session) -> Invoice:
            existing = repository.find_by_order(session, order_id)
            if existing:
                return existing

            number = self._format(self._allocate(session))
            created_at = self._clock()
            invoice = Invoice(
                id=str(uuid.uuid4()),
                invoice_number=number,
                user_id=user_id,
                order_id=order_id,
                plan_id=plan_id,
                plan_name=plan_name,
                amount=amount,
                currency=currency,
                payment_method=payment_method,
                external_transaction_ref=external_transaction_ref or "",
                status=status,
                user_email=user_email or "",
                user_name=user_name or "",
                created_at=created_at,
                paid_at=paid_at or created_at,
            )
            session.execute(
                insert(invoices).values(
                    id=invoice.id,
                    invoice_number=invoice.invoice_number,
                    user_id=invoice.user_id,
                    order_id=invoice.order_id,
                    plan_id=invoice.plan_id.value,
                    plan_name=invoice.plan_name,
                    amount=invoice.amount,
                    currency=invoice.currency,
                    payment_method=invoice.payment_method,
                    external_transaction_ref=invoice.external_transaction_ref,
                    status=invoice.status.value,
                    user_email=invoice.user_email,
                    user_name=invoice.user_name,
                    paid_at=invoice.paid_at,
                    created_at=invoice.created_at,
                )
            )
            return invoice

        return self._with_retries(write, order_id=order_id)

    def _with_retries(self, fn: Callable[[Session], T], order_id: Optional[str]) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                with self._lock:
                    with self.db.session() as session:
                        return fn(session)
            except IntegrityError as exc:
                recovered = self._recover_from_conflict(order_id)
                if recovered is not None:
                    return recovered
                if attempt >= self.max_attempts:
                    logger.error(
                        f"billing.invoice.allocation_conflict attempts={attempt}",
                        extra={"order_id": order_id, "error_code": "invoice_allocation_conflict"},
                    )
                    raise InvoiceAllocationConflictError(
                        f"Could not allocate a unique invoice number after {attempt} attempts"
                    ) from exc
                logger.warning(
                    f"billing.invoice.allocation_retry attempt={attempt}",
                    extra={"order_id": order_id},
                )

    def _recover_from_conflict(self, order_id: Optional[str]):
        """After a rolled-back insert: return the order's invoice if another
        writer issued it, otherwise advance the counter past any taken number."""
        with self._lock:
            with self.db.session() as session:
                if order_id:
                    existing = repository.find_by_order(session, order_id)
                    if existing:
                        return existing
                current = self._current_value(session)
                if current is None:
                    # Lost a race seeding the counter row; the retry will see it.
                    return None
                candidate = current + 1
                while repository.number_taken(session, self._format(candidate)):
                    candidate += 1
                if candidate - 1 > current:
                    session.execute(
                        update(invoice_sequences)
                        .where(invoice_sequences.c.name == self.prefix)
                        .where(invoice_sequences.c.last_value < candidate - 1)
                        .values(last_value=candidate - 1, updated_at=self._clock())
                    )
        return None

    def _allocate(self, session: Session) -> int:
        now = self._clock()
        result = session.execute(
            update(invoice_sequences)
            .where(invoice_sequences.c.name == self.prefix)
            .values(last_value=invoice_sequences.c.last_value + 1, updated_at=now)
        )
        if result.rowcount:
            return self._current_value(session)

        # First allocation: continue from whatever history exists
        seed = parse_invoice_number(repository.latest_invoice_number(session)) or 0
        session.execute(
            insert(invoice_sequences).values(name=self.prefix, last_value=seed + 1, updated_at=now)
        )
        return seed + 1

    def _current_value(self, session: Session) -> Optional[int]:
        return session.execute(
            select(invoice_sequences.c.last_value).where(invoice_sequences.c.name == self.prefix)
        ).scalar_one_or_none()

    def _format(self, value: int) -> str:
        return format_invoice_number(self.prefix, value, self.width)
