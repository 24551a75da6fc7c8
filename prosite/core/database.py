"""
Database configuration and connection management.

This module provides:
- SQLAlchemy table definitions for accounts and billing
- An explicitly constructed Database handle (engine + session factory)
- Connection pooling with sane defaults
"""
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import (
    create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean,
    JSON, Text, Index, UniqueConstraint, false, text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.sql import func

from prosite.core.config import Settings, settings

logger = logging.getLogger("prosite.database")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour
SQLITE_BUSY_TIMEOUT = 30


def _build_engine(url: str, echo: bool = False) -> Engine:
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            # One shared connection, otherwise each checkout sees an empty database
            return create_engine(url, connect_args=connect_args, poolclass=StaticPool, echo=echo)
        return create_engine(url, connect_args=connect_args, echo=echo)

    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        echo=echo,
    )


class Database:
    """Owns the engine and session factory for one process.

    Constructed at application start and handed to every component that needs
    persistence; `dispose()` is called at shutdown.
    """

    def __init__(self, url: str, *, echo: bool = False):
        if not url:
            raise ValueError(
                "DATABASE_URL is not configured. "
                "Set DATABASE_URL in environment or .env file."
            )
        self.url = url
        self.engine = _build_engine(url, echo=echo)
        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
        )

    @classmethod
    def from_settings(cls, settings_obj: Optional[Settings] = None) -> "Database":
        cfg = settings_obj or settings
        return cls(cfg.DATABASE_URL)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Context manager for database sessions.

        Usage:
            with database.session() as session:
                session.execute(...)
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        """Create all tables defined in metadata (idempotent)."""
        metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        """
        Drop all tables defined in metadata.

        WARNING: This is destructive! Only use in tests or development.
        """
        metadata.drop_all(bind=self.engine)

    def check_connection(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"Database connection check failed: {e}")
            return False

    def dispose(self) -> None:
        self.engine.dispose()


# Accounts. Plan columns mirror UserPlanState; mutated only by billing.
users = Table(
    'app_users',
    metadata,
    Column('user_id', String(64), primary_key=True),
    Column('username', String(100), nullable=False, unique=True),
    Column('email', String(255), nullable=False, server_default=''),
    Column('name', String(255), nullable=False, server_default=''),
    Column('password_hash', String(255), nullable=False),
    Column('role', String(20), nullable=False, server_default='demo'),
    Column('plan_id', String(20), nullable=False, server_default='demo'),
    Column('plan_page_quota', Integer, nullable=False, server_default='2'),
    Column('plan_custom_themes', Boolean, nullable=False, server_default=false()),
    Column('plan_expires_at', DateTime(timezone=True), nullable=True),
    Column('payment', JSON, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_app_users_created_at', 'created_at'),
)

invoices = Table(
    'invoices',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('invoice_number', String(32), nullable=False),
    Column('user_id', String(64), nullable=False, index=True),
    Column('order_id', String(64), nullable=False),
    Column('plan_id', String(20), nullable=False),
    Column('plan_name', String(100), nullable=False),
    Column('amount', Integer, nullable=False),
    Column('currency', String(3), nullable=False, server_default='INR'),
    Column('payment_method', String(20), nullable=False, server_default='upi'),
    Column('external_transaction_ref', String(255), nullable=False, server_default=''),
    Column('status', String(20), nullable=False, server_default='paid'),
    Column('user_email', String(255), nullable=False, server_default=''),
    Column('user_name', String(255), nullable=False, server_default=''),
    Column('paid_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('invoice_number', name='uq_invoices_invoice_number'),
    # One order yields at most one invoice
    UniqueConstraint('order_id', name='uq_invoices_order_id'),
    Index('idx_invoices_user_created', 'user_id', 'created_at'),
    Index('idx_invoices_created_at', 'created_at'),
)

# Durable invoice counter, one row per prefix
invoice_sequences = Table(
    'invoice_sequences',
    metadata,
    Column('name', String(32), primary_key=True),
    Column('last_value', Integer, nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Confirmed payments whose invoice could not be issued
invoice_backlog = Table(
    'invoice_backlog',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('order_id', String(64), nullable=False, unique=True),
    Column('user_id', String(64), nullable=False, index=True),
    Column('plan_id', String(20), nullable=False),
    Column('amount', Integer, nullable=False),
    Column('currency', String(3), nullable=False),
    Column('external_transaction_ref', String(255), nullable=False, server_default=''),
    Column('status', String(20), nullable=False, server_default='pending'),  # pending | resolved
    Column('attempt_count', Integer, nullable=False, server_default='0'),
    Column('last_error', Text, nullable=True),
    Column('invoice_id', String(36), nullable=True),
    Column('paid_at', DateTime(timezone=True), nullable=False),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    Index('idx_invoice_backlog_status_created', 'status', 'created_at'),
)

notification_outbox = Table(
    'notification_outbox',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('kind', String(50), nullable=False),
    Column('invoice_id', String(36), nullable=False, index=True),
    Column('recipient', String(255), nullable=False),
    Column('status', String(20), nullable=False, server_default='pending'),  # pending | processing | sent | skipped | failed
    Column('attempt_count', Integer, nullable=False, server_default='0'),
    Column('next_attempt_at', DateTime(timezone=True), nullable=False),
    Column('last_error', Text, nullable=True),
    Column('locked_at', DateTime(timezone=True), nullable=True),
    Column('lock_owner', String(100), nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('kind', 'invoice_id', name='uq_notification_outbox_kind_invoice'),
    Index('idx_notification_outbox_status_next', 'status', 'next_attempt_at'),
)

billing_job_runs = Table(
    'billing_job_runs',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('job_name', String(100), nullable=False, index=True),
    Column('started_at', DateTime(timezone=True), nullable=False),
    Column('finished_at', DateTime(timezone=True), nullable=True),
    Column('status', String(20), nullable=False),
    Column('stats_json', JSON, nullable=True),
)

REQUIRED_TABLES = [t.name for t in metadata.sorted_tables]
