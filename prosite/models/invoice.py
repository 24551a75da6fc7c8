"""
prosite/models/invoice.py

Durable, sequentially numbered record of a completed payment.
"""

from datetime import datetime
from typing import Optional
from enum import Enum
from pydantic import BaseModel, ConfigDict

from prosite.models.plan import PlanId


class InvoiceStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    FAILED = "failed"
    REFUNDED = "refunded"


class Invoice(BaseModel):
    """
    Invoice issued once per confirmed order and immutable afterwards.

    `order_id` is a back-reference only; orders are gone long before most
    invoices are read.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    invoice_number: str
    user_id: str
    order_id: str
    plan_id: PlanId
    plan_name: str
    amount: int
    currency: str
    payment_method: str = "upi"
    external_transaction_ref: str = ""
    status: InvoiceStatus = InvoiceStatus.PAID
    user_email: str = ""
    user_name: str = ""
    created_at: datetime
    # When the payment was confirmed; earlier than created_at for reconciled invoices.
    paid_at: Optional[datetime] = None
