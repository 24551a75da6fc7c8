"""Read helpers over the invoices table. All take an open session."""
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from prosite.core.clock import as_utc
from prosite.core.database import invoices
from prosite.models.invoice import Invoice

# Numbers outgrow their padding (INV-999 < INV-1000), so longer sorts first on ties.
_NEWEST_FIRST = (
    invoices.c.created_at.desc(),
    func.length(invoices.c.invoice_number).desc(),
    invoices.c.invoice_number.desc(),
)


def row_to_invoice(row) -> Invoice:
    return Invoice(
        id=row.id,
        invoice_number=row.invoice_number,
        user_id=row.user_id,
        order_id=row.order_id,
        plan_id=row.plan_id,
        plan_name=row.plan_name,
        amount=row.amount,
        currency=row.currency,
        payment_method=row.payment_method,
        external_transaction_ref=row.external_transaction_ref or "",
        status=row.status,
        user_email=row.user_email or "",
        user_name=row.user_name or "",
        created_at=as_utc(row.created_at),
        paid_at=as_utc(row.paid_at),
    )


def get_invoice(session: Session, invoice_id: str) -> Optional[Invoice]:
    row = session.execute(select(invoices).where(invoices.c.id == invoice_id)).first()
    return row_to_invoice(row) if row else None


def find_by_order(session: Session, order_id: str) -> Optional[Invoice]:
    row = session.execute(select(invoices).where(invoices.c.order_id == order_id)).first()
    return row_to_invoice(row) if row else None


def number_taken(session: Session, invoice_number: str) -> bool:
    row = session.execute(
        select(invoices.c.id).where(invoices.c.invoice_number == invoice_number)
    ).first()
    return row is not None


def latest_invoice_number(session: Session) -> Optional[str]:
    """Number of the most recently created invoice, by creation time."""
    row = session.execute(
        select(invoices.c.invoice_number)
        .order_by(*_NEWEST_FIRST)
        .limit(1)
    ).first()
    return row[0] if row else None


def list_for_user(session: Session, user_id: str, limit: int = 50) -> List[Invoice]:
    rows = session.execute(
        select(invoices)
        .where(invoices.c.user_id == user_id)
        .order_by(*_NEWEST_FIRST)
        .limit(limit)
    ).fetchall()
    return [row_to_invoice(r) for r in rows]
