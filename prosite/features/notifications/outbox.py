"""
Notification outbox.

Deterministic, idempotent retry scheduling for outgoing notifications. Rows are
written on payment confirmation and drained by the dispatcher; a failed send is
rescheduled with exponential backoff until `max_attempts`, then parked as
'failed' for an operator to look at.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional, Dict, Any
from sqlalchemy import select, update, insert
from sqlalchemy.exc import IntegrityError

from prosite.core.clock import utc_now
from prosite.core.database import Database, notification_outbox


MAX_ATTEMPTS_DEFAULT = 5

KIND_PAYMENT_CONFIRMED = "payment_confirmed"


def compute_backoff(attempt_count: int) -> timedelta:
    """Exponential backoff with floor 30s and cap 1 hour."""
    base = max(30, 2 ** attempt_count)
    seconds = min(base, 3600)
    return timedelta(seconds=seconds)


def enqueue(db: Database, kind: str, invoice_id: str, recipient: str, now: Optional[datetime] = None) -> bool:
    """Insert a pending row due immediately.

    Returns False when the same (kind, invoice) is already queued.
    """
    ts = now or utc_now()
    try:
        with db.session() as session:
            session.execute(
                insert(notification_outbox).values(
                    kind=kind,
                    invoice_id=invoice_id,
                    recipient=recipient,
                    status='pending',
                    attempt_count=0,
                    next_attempt_at=ts,
                    created_at=ts,
                    updated_at=ts,
                )
            )
    except IntegrityError:
        return False
    return True


def claim_due(db: Database, limit: int, now: Optional[datetime] = None, owner: str = "dispatcher") -> List[Dict[str, Any]]:
    """Claim due rows by marking them processing.

    The status guard on the UPDATE makes a claim stick for one claimant only
    when several dispatchers share the table.
    """
    ts = now or utc_now()
    claimed = []
    with db.session() as session:
        rows = session.execute(
            select(
                notification_outbox.c.id,
                notification_outbox.c.kind,
                notification_outbox.c.invoice_id,
                notification_outbox.c.recipient,
                notification_outbox.c.attempt_count,
            )
            .where(notification_outbox.c.status == 'pending')
            .where(notification_outbox.c.next_attempt_at <= ts)
            .order_by(notification_outbox.c.next_attempt_at.asc(), notification_outbox.c.id.asc())
            .limit(limit)
        ).fetchall()

        for r in rows:
            result = session.execute(
                update(notification_outbox)
                .where(notification_outbox.c.id == r.id)
                .where(notification_outbox.c.status == 'pending')
                .values(status='processing', locked_at=ts, lock_owner=owner, updated_at=ts)
            )
            if not result.rowcount:
                continue
            claimed.append({
                'id': r.id,
                'kind': r.kind,
                'invoice_id': r.invoice_id,
                'recipient': r.recipient,
                'attempt_count': int(r.attempt_count or 0),
            })
    return claimed


def _finish(db: Database, row_id: int, status: str, attempt_count: int, ts: datetime, error: Optional[str] = None) -> None:
    with db.session() as session:
        session.execute(
            update(notification_outbox)
            .where(notification_outbox.c.id == row_id)
            .values(status=status, attempt_count=attempt_count, last_error=error, locked_at=None, lock_owner=None, updated_at=ts)
        )


def mark_sent(db: Database, row: Dict[str, Any], now: Optional[datetime] = None) -> None:
    _finish(db, row['id'], 'sent', row['attempt_count'] + 1, now or utc_now())


def mark_skipped(db: Database, row: Dict[str, Any], reason: str, now: Optional[datetime] = None) -> None:
    _finish(db, row['id'], 'skipped', row['attempt_count'], now or utc_now(), error=reason)


def record_failure(
    db: Database,
    row: Dict[str, Any],
    error: str,
    max_attempts: int = MAX_ATTEMPTS_DEFAULT,
    now: Optional[datetime] = None,
) -> str:
    """Reschedule or park a failed row. Returns the new status."""
    ts = now or utc_now()
    new_attempt = int(row['attempt_count'] or 0) + 1
    if new_attempt >= max_attempts:
        _finish(db, row['id'], 'failed', new_attempt, ts, error=error)
        return 'failed'

    with db.session() as session:
        session.execute(
            update(notification_outbox)
            .where(notification_outbox.c.id == row['id'])
            .values(
                status='pending',
                attempt_count=new_attempt,
                next_attempt_at=ts + compute_backoff(new_attempt),
                last_error=error,
                locked_at=None,
                lock_owner=None,
                updated_at=ts,
            )
        )
    return 'pending'


def release_stale_claims(db: Database, older_than: timedelta, now: Optional[datetime] = None) -> int:
    """Return rows stuck in 'processing' (dispatcher died mid-send) to the queue."""
    ts = now or utc_now()
    with db.session() as session:
        result = session.execute(
            update(notification_outbox)
            .where(notification_outbox.c.status == 'processing')
            .where(notification_outbox.c.locked_at < ts - older_than)
            .values(status='pending', locked_at=None, lock_owner=None, next_attempt_at=ts, updated_at=ts)
        )
        return result.rowcount or 0


def list_rows(db: Database, status: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
    with db.session() as session:
        query = select(notification_outbox).order_by(notification_outbox.c.id.desc()).limit(limit)
        if status:
            query = query.where(notification_outbox.c.status == status)
        return [dict(r._mapping) for r in session.execute(query).fetchall()]
