"""Request-scoped access to the components wired in the app lifespan."""
from fastapi import Request

from prosite.core.config import Settings
from prosite.core.database import Database
from prosite.features.billing.service import BillingService
from prosite.features.invoices.pdf import InvoiceRenderer
from prosite.features.invoices.sequencer import InvoiceSequencer
from prosite.features.notifications.dispatcher import NotificationDispatcher
from prosite.features.users.service import AccountStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_accounts(request: Request) -> AccountStore:
    return request.app.state.accounts


def get_billing(request: Request) -> BillingService:
    return request.app.state.billing


def get_sequencer(request: Request) -> InvoiceSequencer:
    return request.app.state.sequencer


def get_renderer(request: Request) -> InvoiceRenderer:
    return request.app.state.invoice_renderer


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher
