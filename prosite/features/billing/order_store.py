"""
In-memory registry of in-flight payment orders.

Orders are process-local and volatile: a restart loses every pending order and
the payer has to start again. Every mutation happens under one lock; orders are
independent so there is no cross-order coordination beyond that.

Lifecycle per order: pending -> completed (once). Orders are never removed by
confirmation, only by the TTL sweep that runs on each create call.
"""
import logging
import secrets
import threading
from datetime import timedelta
from typing import Dict, Optional, Set

from prosite.core.clock import Clock, utc_now
from prosite.core.errors import (
    AlreadyCompletedError,
    ConfirmationInProgressError,
    OrderNotFoundError,
)
from prosite.features.billing.upi import build_upi_link
from prosite.features.plans import catalog
from prosite.models.order import CreatedOrder, Order, OrderStatus

logger = logging.getLogger("prosite.billing.orders")

ORDER_TTL = timedelta(minutes=30)


def generate_order_id(now_ms: int) -> str:
    """Time-based prefix plus 64 random bits so ids cannot be guessed."""
    return f"ORD-{now_ms}-{secrets.token_hex(8).upper()}"


class OrderStore:
    def __init__(
        self,
        *,
        payee_id: str,
        payee_name: str = "ProSite",
        default_currency: str = catalog.DEFAULT_CURRENCY,
        ttl: timedelta = ORDER_TTL,
        clock: Clock = utc_now,
    ):
        self.payee_id = payee_id
        self.payee_name = payee_name
        self.default_currency = default_currency
        self.ttl = ttl
        self._clock = clock
        self._orders: Dict[str, Order] = {}
        self._confirming: Set[str] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)

    def create_order(self, user_id: str, plan_id: str, currency: Optional[str] = None) -> CreatedOrder:
        plan = catalog.get_plan(plan_id)
        amount, resolved_currency = catalog.resolve_price(plan.id, currency, self.default_currency)

        now = self._clock()
        self.sweep_expired(now)

        with self._lock:
            order_id = generate_order_id(int(now.timestamp() * 1000))
            while order_id in self._orders:
                order_id = generate_order_id(int(now.timestamp() * 1000))
            order = Order(
                order_id=order_id,
                user_id=user_id,
                plan_id=plan.id,
                amount=amount,
                currency=resolved_currency,
                status=OrderStatus.PENDING,
                created_at=now,
            )
            self._orders[order_id] = order

        link = build_upi_link(
            payee_id=self.payee_id,
            payee_name=self.payee_name,
            amount=amount,
            currency=resolved_currency,
            order_id=order_id,
            note=f"{self.payee_name} {plan.name} Plan",
        )
        return CreatedOrder(order=order, plan_name=plan.name, payment_link=link, payee_id=self.payee_id)

    def get_order(self, order_id: str) -> Order:
        """Return the order; expired orders are reported as missing even before a sweep."""
        now = self._clock()
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or self._is_expired(order, now):
                raise OrderNotFoundError("Order not found or expired")
            return order

    def begin_confirmation(self, order_id: str) -> Order:
        """
        Atomically claim a pending order for confirmation.

        Exactly one caller wins; a concurrent claimant gets
        ConfirmationInProgressError and a later one AlreadyCompletedError.
        The claim is released by `mark_completed` or `abandon_confirmation`.
        """
        now = self._clock()
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or self._is_expired(order, now):
                raise OrderNotFoundError("Order not found or expired")
            if order.status == OrderStatus.COMPLETED:
                raise AlreadyCompletedError("Order already completed")
            if order_id in self._confirming:
                raise ConfirmationInProgressError("Order confirmation already in progress")
            self._confirming.add(order_id)
            return order

    def abandon_confirmation(self, order_id: str) -> None:
        with self._lock:
            self._confirming.discard(order_id)

    def mark_completed(self, order_id: str) -> Order:
        now = self._clock()
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                self._confirming.discard(order_id)
                raise OrderNotFoundError("Order not found or expired")
            if order.status == OrderStatus.COMPLETED:
                raise AlreadyCompletedError("Order already completed")
            completed = order.model_copy(update={"status": OrderStatus.COMPLETED, "completed_at": now})
            self._orders[order_id] = completed
            self._confirming.discard(order_id)
            return completed

    def sweep_expired(self, now=None) -> int:
        """Drop every order older than the TTL regardless of status."""
        ts = now or self._clock()
        with self._lock:
            expired = [
                oid for oid, order in self._orders.items()
                if self._is_expired(order, ts) and oid not in self._confirming
            ]
            for oid in expired:
                del self._orders[oid]
        if expired:
            logger.info(f"billing.orders.swept count={len(expired)}", extra={"event_type": "orders.swept"})
        return len(expired)

    def _is_expired(self, order: Order, now) -> bool:
        return now - order.created_at > self.ttl
