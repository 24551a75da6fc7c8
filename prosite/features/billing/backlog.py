"""
Invoice backlog.

A confirmed payment whose invoice could not be issued is recorded here instead
of being dropped. The reconcile job issues the missing invoices later.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from prosite.core.clock import utc_now
from prosite.core.database import Database, invoice_backlog
from prosite.models.order import Order


def record_missing_invoice(
    db: Database,
    order: Order,
    external_transaction_ref: str,
    error: str,
    now: Optional[datetime] = None,
) -> None:
    """Upsert the backlog row for an order (one row per order)."""
    ts = now or utc_now()
    try:
        with db.session() as session:
            session.execute(
                insert(invoice_backlog).values(
                    order_id=order.order_id,
                    user_id=order.user_id,
                    plan_id=order.plan_id.value,
                    amount=order.amount,
                    currency=order.currency,
                    external_transaction_ref=external_transaction_ref or "",
                    status='pending',
                    attempt_count=0,
                    last_error=error,
                    paid_at=order.completed_at or ts,
                    created_at=ts,
                    updated_at=ts,
                )
            )
    except IntegrityError:
        with db.session() as session:
            session.execute(
                update(invoice_backlog)
                .where(invoice_backlog.c.order_id == order.order_id)
                .values(status='pending', last_error=error, updated_at=ts)
            )


def pending_rows(db: Database, limit: int = 100) -> List[Dict[str, Any]]:
    with db.session() as session:
        rows = session.execute(
            select(invoice_backlog)
            .where(invoice_backlog.c.status == 'pending')
            .order_by(invoice_backlog.c.created_at.asc(), invoice_backlog.c.id.asc())
            .limit(limit)
        ).fetchall()
        return [dict(r._mapping) for r in rows]


def list_rows(db: Database, status: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
    with db.session() as session:
        query = select(invoice_backlog).order_by(invoice_backlog.c.id.desc()).limit(limit)
        if status:
            query = query.where(invoice_backlog.c.status == status)
        return [dict(r._mapping) for r in session.execute(query).fetchall()]


def mark_resolved(db: Database, row_id: int, invoice_id: str, attempt_count: int, now: Optional[datetime] = None) -> None:
    ts = now or utc_now()
    with db.session() as session:
        session.execute(
            update(invoice_backlog)
            .where(invoice_backlog.c.id == row_id)
            .values(status='resolved', invoice_id=invoice_id, attempt_count=attempt_count, last_error=None, updated_at=ts)
        )


def record_attempt_failure(db: Database, row_id: int, error: str, attempt_count: int, now: Optional[datetime] = None) -> None:
    ts = now or utc_now()
    with db.session() as session:
        session.execute(
            update(invoice_backlog)
            .where(invoice_backlog.c.id == row_id)
            .values(attempt_count=attempt_count, last_error=error, updated_at=ts)
        )
