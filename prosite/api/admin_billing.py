"""
Admin-only billing operations router.
Requires X-Admin-Key header for all endpoints.
Inspects the invoice backlog, runs the reconcile job and drains notifications.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from prosite.api.deps import get_accounts, get_database, get_dispatcher, get_sequencer
from prosite.core.admin_auth import AdminActor, require_admin
from prosite.core.database import Database
from prosite.features.billing import backlog
from prosite.features.billing.reconcile_job import run_reconcile_job
from prosite.features.invoices.sequencer import InvoiceSequencer
from prosite.features.notifications.dispatcher import NotificationDispatcher
from prosite.features.users.service import AccountStore

logger = logging.getLogger("prosite.admin_billing")

router = APIRouter(prefix="/api/admin/billing", tags=["admin-billing"])


class BacklogItem(BaseModel):
    id: int
    order_id: str
    user_id: str
    plan_id: str
    amount: int
    currency: str
    status: str
    attempt_count: int
    last_error: Optional[str] = None
    invoice_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class BacklogResponse(BaseModel):
    items: List[BacklogItem]
    count: int


class ReconcileResponse(BaseModel):
    invoices_issued: int
    failures: int
    invoice_numbers: List[str]
    timestamp: str


class DispatchResponse(BaseModel):
    sent: int


@router.get("/backlog", response_model=BacklogResponse)
def list_backlog(
    status: Optional[str] = Query(None, description="pending | resolved"),
    limit: int = Query(100, ge=1, le=500),
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_database),
):
    rows = backlog.list_rows(db, status=status, limit=limit)
    items = [BacklogItem(**row) for row in rows]
    return BacklogResponse(items=items, count=len(items))


@router.post("/reconcile", response_model=ReconcileResponse)
def reconcile(
    request: Request,
    limit: int = Query(100, ge=1, le=500),
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_database),
    sequencer: InvoiceSequencer = Depends(get_sequencer),
    accounts: AccountStore = Depends(get_accounts),
):
    """Issue invoices for every pending backlog row (up to `limit`)."""
    result: Dict[str, Any] = run_reconcile_job(
        db,
        sequencer,
        accounts,
        now=request.app.state.clock(),
        limit=limit,
        notifier=request.app.state.notifier,
        clock=request.app.state.clock,
    )
    logger.info(f"admin.reconcile actor={actor.actor_id} issued={result['invoices_issued']}")
    return ReconcileResponse(**result)


@router.post("/notifications/dispatch", response_model=DispatchResponse)
def dispatch_notifications(
    actor: AdminActor = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    sent = dispatcher.run_once()
    logger.info(f"admin.notifications_dispatch actor={actor.actor_id} sent={sent}")
    return DispatchResponse(sent=sent)
