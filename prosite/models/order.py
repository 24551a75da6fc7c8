"""
prosite/models/order.py

Ephemeral payment orders.

An order records the intent to pay for a plan. It lives only in the process
memory of the order store and is swept 30 minutes after creation.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict

from prosite.models.plan import PlanId


class OrderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class Order(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: str
    user_id: str
    plan_id: PlanId
    amount: int
    currency: str
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime
    completed_at: Optional[datetime] = None


class CreatedOrder(BaseModel):
    """An order plus what the client needs to pay it out-of-band."""
    model_config = ConfigDict(frozen=True)

    order: Order
    plan_name: str
    payment_link: str
    payee_id: str
