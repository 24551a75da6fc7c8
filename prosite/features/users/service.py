"""
Account store.
- create_user / get_user / authenticate
- apply_plan_change: the only write path for plan, role and payment fields
"""

import logging
import uuid
from typing import Optional

import bcrypt
from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from prosite.core.clock import Clock, as_utc, utc_now
from prosite.core.database import Database, users
from prosite.core.errors import (
    AccountMutationFailedError,
    AccountNotFoundError,
    ConflictError,
    ValidationError,
)
from prosite.features.plans.catalog import DEMO_PLAN_STATE, DEMO_ROLE
from prosite.models.user import PlanChange, User, UserPlanState

logger = logging.getLogger("prosite.accounts")

MIN_PASSWORD_LENGTH = 6


def _row_to_user(row) -> User:
    return User(
        user_id=row.user_id,
        username=row.username,
        email=row.email or "",
        name=row.name or "",
        role=row.role,
        plan=UserPlanState(
            plan_id=row.plan_id,
            page_quota=row.plan_page_quota,
            custom_themes_allowed=bool(row.plan_custom_themes),
            expires_at=as_utc(row.plan_expires_at),
        ),
        payment=row.payment,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class AccountStore:
    def __init__(self, database: Database, clock: Clock = utc_now):
        self.db = database
        self._clock = clock

    def create_user(self, username: str, password: str, email: str = "", name: str = "") -> User:
        username = (username or "").strip().lower()
        if not username or not password:
            raise ValidationError("Username and password are required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        now = self._clock()
        user_id = uuid.uuid4().hex
        try:
            with self.db.session() as session:
                session.execute(
                    insert(users).values(
                        user_id=user_id,
                        username=username,
                        email=(email or "").strip().lower(),
                        name=(name or "").strip(),
                        password_hash=hash_password(password),
                        role=DEMO_ROLE,
                        plan_id=DEMO_PLAN_STATE.plan_id,
                        plan_page_quota=DEMO_PLAN_STATE.page_quota,
                        plan_custom_themes=DEMO_PLAN_STATE.custom_themes_allowed,
                        plan_expires_at=None,
                        payment=None,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError:
            raise ConflictError("Username already taken", code="username_taken")

        logger.info(f"account.created user_id={user_id}")
        return self.get_user(user_id)

    def get_user(self, user_id: str) -> Optional[User]:
        with self.db.session() as session:
            row = session.execute(select(users).where(users.c.user_id == user_id)).first()
            return _row_to_user(row) if row else None

    def authenticate(self, username: str, password: str) -> Optional[User]:
        with self.db.session() as session:
            row = session.execute(
                select(users).where(users.c.username == (username or "").strip().lower())
            ).first()
        if not row or not verify_password(password or "", row.password_hash):
            return None
        return _row_to_user(row)

    def apply_plan_change(self, user_id: str, change: PlanChange) -> User:
        """
        Apply plan + role + payment metadata in one UPDATE.

        Raises AccountNotFoundError when the user is gone and
        AccountMutationFailedError on any storage failure; in both cases
        nothing was written.
        """
        plan = change.plan
        try:
            with self.db.session() as session:
                result = session.execute(
                    update(users)
                    .where(users.c.user_id == user_id)
                    .values(
                        plan_id=plan.plan_id,
                        plan_page_quota=plan.page_quota,
                        plan_custom_themes=plan.custom_themes_allowed,
                        plan_expires_at=plan.expires_at,
                        role=change.role,
                        payment=change.payment,
                        updated_at=self._clock(),
                    )
                )
                if not result.rowcount:
                    raise AccountNotFoundError("User not found")
                row = session.execute(select(users).where(users.c.user_id == user_id)).first()
        except SQLAlchemyError as exc:
            logger.error(f"account.plan_change_failed user_id={user_id}", exc_info=True)
            raise AccountMutationFailedError("Failed to update account plan") from exc
        return _row_to_user(row)
