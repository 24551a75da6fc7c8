"""
Invoice reconciliation job.

Issues the invoices that confirmation had to defer, writing a job-run row per
execution. Safe to re-run: the sequencer returns the existing invoice when an
order already has one.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import insert

from prosite.core.clock import Clock, as_utc, utc_now
from prosite.core.database import Database, billing_job_runs
from prosite.features.billing import backlog
from prosite.features.invoices.sequencer import InvoiceSequencer
from prosite.features.notifications.service import Notifier
from prosite.features.plans import catalog
from prosite.features.users.service import AccountStore

logger = logging.getLogger("prosite.billing.reconcile")


def run_reconcile_job(
    db: Database,
    sequencer: InvoiceSequencer,
    accounts: AccountStore,
    now: datetime,
    limit: int = 100,
    notifier: Optional[Notifier] = None,
    clock: Clock = utc_now,
) -> Dict[str, Any]:
    issued = []
    failures = 0

    for row in backlog.pending_rows(db, limit=limit):
        attempt = int(row['attempt_count'] or 0) + 1
        try:
            user = accounts.get_user(row['user_id'])
            plan = catalog.get_plan(row['plan_id'])
            invoice = sequencer.issue(
                user_id=row['user_id'],
                order_id=row['order_id'],
                plan_id=plan.id.value,
                plan_name=plan.name,
                amount=row['amount'],
                currency=row['currency'],
                external_transaction_ref=row['external_transaction_ref'],
                user_email=user.email if user else "",
                user_name=(user.name or user.username) if user else "",
                paid_at=as_utc(row['paid_at']),
            )
        except Exception as exc:
            failures += 1
            backlog.record_attempt_failure(db, row['id'], str(exc), attempt, now=now)
            logger.warning(f"billing.reconcile.issue_failed order={row['order_id']}: {exc}")
            continue

        backlog.mark_resolved(db, row['id'], invoice.id, attempt, now=now)
        issued.append(invoice.invoice_number)
        if notifier is not None and user is not None:
            notifier.notify_payment_confirmed(invoice, user.email)

    stats = {
        "invoices_issued": len(issued),
        "failures": failures,
    }
    with db.session() as session:
        session.execute(
            insert(billing_job_runs).values(
                job_name="billing.reconcile_invoices",
                started_at=now,
                finished_at=clock(),
                status="success" if not failures else "partial",
                stats_json=stats,
            )
        )
    logger.info(f"billing.reconcile.finished issued={len(issued)} failures={failures}")

    return {
        **stats,
        "invoice_numbers": issued,
        "timestamp": now.isoformat(),
    }
