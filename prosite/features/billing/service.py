"""
Billing orchestrator.

Coordinates the order store, the account store, the invoice sequencer and the
notifier:
- create_order: price a plan and hand back a UPI deep link
- confirm_payment: grant the plan, issue the invoice, queue the email
- invoices: list / fetch (owner only)
- legacy_upgrade: deprecated direct upgrade without an order

Ordering on confirmation is fixed: the plan grant is the point of no return.
Anything after it (invoice, notification) may fail without undoing the grant;
a missing invoice goes to the backlog for the reconcile job.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from prosite.core.clock import Clock, utc_now
from prosite.core.database import Database
from prosite.core.errors import (
    AccountNotFoundError,
    AlreadyCompletedError,
    InvoiceNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from prosite.core.logging import log_event
from prosite.features.billing import backlog
from prosite.features.billing.order_store import OrderStore
from prosite.features.invoices import repository
from prosite.features.invoices.sequencer import InvoiceSequencer
from prosite.features.notifications.service import Notifier
from prosite.features.plans import catalog
from prosite.features.users.service import AccountStore
from prosite.models.invoice import Invoice
from prosite.models.order import CreatedOrder, Order, OrderStatus
from prosite.models.user import PlanChange, User

logger = logging.getLogger("prosite.billing")

PLAN_DURATION = timedelta(days=30)
INVOICE_LIST_LIMIT = 50


@dataclass(frozen=True)
class ConfirmationResult:
    user: User
    order: Order
    invoice: Optional[Invoice]

    @property
    def invoice_id(self) -> Optional[str]:
        return self.invoice.id if self.invoice else None

    @property
    def invoice_number(self) -> Optional[str]:
        return self.invoice.invoice_number if self.invoice else None


class BillingService:
    def __init__(
        self,
        database: Database,
        orders: OrderStore,
        sequencer: InvoiceSequencer,
        accounts: AccountStore,
        notifier: Notifier,
        *,
        clock: Clock = utc_now,
        plan_duration: timedelta = PLAN_DURATION,
    ):
        self.db = database
        self.orders = orders
        self.sequencer = sequencer
        self.accounts = accounts
        self.notifier = notifier
        self._clock = clock
        self.plan_duration = plan_duration

    # ------------------------------------------------------------------ orders

    def create_order(self, user_id: str, plan_id: str, currency: Optional[str] = None) -> CreatedOrder:
        created = self.orders.create_order(user_id, plan_id, currency)
        order = created.order
        log_event(
            logger,
            "info",
            "billing.order.created",
            user_id=user_id,
            order_id=order.order_id,
            event_type="order.created",
            plan=order.plan_id.value,
            amount=order.amount,
            currency=order.currency,
        )
        return created

    def get_order_for_user(self, user_id: str, order_id: str) -> Order:
        order = self.orders.get_order(order_id)
        if order.user_id != user_id:
            raise UnauthorizedError("Unauthorized")
        return order

    # ------------------------------------------------------------ confirmation

    def confirm_payment(self, user_id: str, order_id: str, external_transaction_ref: str = "") -> ConfirmationResult:
        """
        Confirm an out-of-band payment for one of the caller's orders.

        Raises OrderNotFoundError, UnauthorizedError, AlreadyCompletedError or
        ConfirmationInProgressError before anything is written. Account
        failures release the claim and leave the order pending.
        """
        if not order_id:
            raise ValidationError("orderId is required")

        order = self.get_order_for_user(user_id, order_id)
        if order.status == OrderStatus.COMPLETED:
            raise AlreadyCompletedError("Order already completed")

        order = self.orders.begin_confirmation(order_id)
        now = self._clock()
        try:
            change = PlanChange(
                plan=catalog.plan_state_for(order.plan_id, expires_at=now + self.plan_duration),
                role=catalog.role_for_plan(order.plan_id),
                payment={
                    "method": "upi",
                    "orderId": order.order_id,
                    "transactionRef": external_transaction_ref or "",
                    "amount": order.amount,
                    "currency": order.currency,
                    "paidAt": now.isoformat(),
                },
            )
            user = self.accounts.apply_plan_change(user_id, change)
        except Exception:
            self.orders.abandon_confirmation(order_id)
            raise

        order = self.orders.mark_completed(order_id)
        log_event(
            logger,
            "info",
            "billing.payment.confirmed",
            user_id=user_id,
            order_id=order_id,
            event_type="payment.confirmed",
            plan=order.plan_id.value,
            amount=order.amount,
            currency=order.currency,
        )

        invoice = self._issue_invoice(order, user, external_transaction_ref)
        if invoice is not None:
            self._notify(invoice, user)
        return ConfirmationResult(user=user, order=order, invoice=invoice)

    def _issue_invoice(self, order: Order, user: User, external_transaction_ref: str) -> Optional[Invoice]:
        plan = catalog.get_plan(order.plan_id)
        try:
            return self.sequencer.issue(
                user_id=order.user_id,
                order_id=order.order_id,
                plan_id=plan.id.value,
                plan_name=plan.name,
                amount=order.amount,
                currency=order.currency,
                external_transaction_ref=external_transaction_ref,
                user_email=user.email,
                user_name=user.name or user.username,
                paid_at=order.completed_at,
            )
        except Exception as exc:
            log_event(
                logger,
                "error",
                "billing.invoice.deferred",
                user_id=order.user_id,
                order_id=order.order_id,
                event_type="invoice.deferred",
                error_code=getattr(exc, "code", "invoice_failed"),
                error=exc,
            )
            try:
                backlog.record_missing_invoice(
                    self.db, order, external_transaction_ref, str(exc), now=self._clock()
                )
            except Exception:
                logger.error(f"billing.invoice.backlog_write_failed order={order.order_id}", exc_info=True)
            return None

    def _notify(self, invoice: Invoice, user: User) -> None:
        try:
            self.notifier.notify_payment_confirmed(invoice, user.email)
        except Exception:
            logger.error(f"billing.notification.failed invoice={invoice.invoice_number}", exc_info=True)

    # ---------------------------------------------------------------- invoices

    def list_invoices(self, user_id: str, limit: int = INVOICE_LIST_LIMIT) -> List[Invoice]:
        with self.db.session() as session:
            return repository.list_for_user(session, user_id, limit=limit)

    def get_invoice_for_user(self, user_id: str, invoice_id: str) -> Invoice:
        with self.db.session() as session:
            invoice = repository.get_invoice(session, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError("Invoice not found")
        if invoice.user_id != user_id:
            raise UnauthorizedError("Unauthorized")
        return invoice

    # ------------------------------------------------------------------ legacy

    def legacy_upgrade(
        self,
        user_id: str,
        plan_id: str,
        card_last4: Optional[str] = None,
        card_brand: Optional[str] = None,
    ) -> User:
        """Direct upgrade from the old card flow. No order, no invoice."""
        plan = catalog.get_plan(plan_id)
        now = self._clock()
        change = PlanChange(
            plan=catalog.plan_state_for(plan.id, expires_at=now + self.plan_duration),
            role=catalog.role_for_plan(plan.id),
            payment={
                "method": "card",
                "cardLast4": card_last4 or "4242",
                "cardBrand": card_brand or "visa",
                "paidAt": now.isoformat(),
            },
        )
        user = self.accounts.apply_plan_change(user_id, change)
        logger.warning(
            f"billing.legacy_upgrade user_id={user_id} plan={plan.id.value}",
            extra={"event_type": "legacy.upgrade", "user_id": user_id},
        )
        return user

    def current_user(self, user_id: str) -> User:
        user = self.accounts.get_user(user_id)
        if user is None:
            raise AccountNotFoundError("User not found")
        return user
