import logging
import os
import secrets
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

# Load env from prosite/.env
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

from prosite import __version__
from prosite.api import admin_billing, auth, billing, health
from prosite.core.clock import Clock, utc_now
from prosite.core.config import Settings, settings, validate_config
from prosite.core.database import Database
from prosite.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from prosite.core.logging import configure_logging
from prosite.core.middleware.request_id import RequestIdMiddleware
from prosite.features.billing.order_store import OrderStore
from prosite.features.billing.service import BillingService
from prosite.features.invoices.pdf import InvoiceRenderer
from prosite.features.invoices.sequencer import InvoiceSequencer
from prosite.features.notifications.dispatcher import NotificationDispatcher
from prosite.features.notifications.email import EmailSender, ResendEmailSender
from prosite.features.notifications.service import OutboxNotifier
from prosite.features.users.service import AccountStore

logger = logging.getLogger("prosite")


@asynccontextmanager
async def lifespan(app: FastAPI):
    cfg: Settings = app.state.settings
    logger.info("Starting ProSite billing backend...")
    app.state.database.create_all()
    if cfg.NOTIFICATIONS_ENABLED:
        app.state.dispatcher.start(interval=cfg.NOTIFICATION_POLL_SECONDS)
    try:
        yield
    finally:
        await app.state.dispatcher.stop()
        app.state.database.dispose()
        logger.info("Stopping ProSite billing backend...")


def create_app(
    settings_obj: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    email_sender: Optional[EmailSender] = None,
    invoice_renderer: Optional[InvoiceRenderer] = None,
    clock: Clock = utc_now,
) -> FastAPI:
    cfg = settings_obj or settings
    configure_logging(cfg.ENV)
    validate_config(strict=cfg.CONFIG_STRICT, settings_obj=cfg)

    if not cfg.JWT_SECRET:
        logger.warning("JWT_SECRET not set; using an ephemeral secret, tokens will not survive a restart")
        cfg = cfg.model_copy(update={"JWT_SECRET": secrets.token_urlsafe(32)})

    database = database or Database.from_settings(cfg)
    accounts = AccountStore(database, clock=clock)
    orders = OrderStore(
        payee_id=cfg.UPI_PAYEE_ID or "",
        payee_name=cfg.UPI_PAYEE_NAME,
        default_currency=cfg.DEFAULT_CURRENCY,
        ttl=timedelta(minutes=cfg.ORDER_TTL_MINUTES),
        clock=clock,
    )
    sequencer = InvoiceSequencer(
        database,
        prefix=cfg.INVOICE_PREFIX,
        width=cfg.INVOICE_NUMBER_WIDTH,
        max_attempts=cfg.INVOICE_ALLOCATION_ATTEMPTS,
        clock=clock,
    )
    notifier = OutboxNotifier(database, clock=clock)
    sender = email_sender or ResendEmailSender(cfg.RESEND_API_KEY, cfg.EMAIL_FROM)

    app = FastAPI(title="ProSite - Billing", version=__version__, lifespan=lifespan)
    app.state.settings = cfg
    app.state.clock = clock
    app.state.database = database
    app.state.accounts = accounts
    app.state.orders = orders
    app.state.sequencer = sequencer
    app.state.notifier = notifier
    app.state.invoice_renderer = invoice_renderer or InvoiceRenderer()
    app.state.dispatcher = NotificationDispatcher(
        database,
        sender,
        clock=clock,
        max_attempts=cfg.NOTIFICATION_MAX_ATTEMPTS,
        batch_size=cfg.NOTIFICATION_BATCH_SIZE,
        owner=f"api-{os.getpid()}",
    )
    app.state.billing = BillingService(
        database,
        orders,
        sequencer,
        accounts,
        notifier,
        clock=clock,
        plan_duration=timedelta(days=cfg.PLAN_DURATION_DAYS),
    )

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(auth.router)
    app.include_router(billing.router)
    app.include_router(admin_billing.router)
    app.include_router(health.root_router)
    return app


app = create_app()
