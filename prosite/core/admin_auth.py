"""
Admin authentication for billing operations.

Admin routes are guarded by a shared secret in the X-Admin-Key header,
compared against ADMIN_KEY. With no ADMIN_KEY configured every admin route
answers 403. Every accepted call is logged with a hashed actor id.
"""
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from prosite.core.errors import PermissionError

logger = logging.getLogger("prosite.admin")


@dataclass
class AdminActor:
    """Represents an authenticated admin caller."""
    actor_id: str  # "key:<hash>"
    auth_mechanism: str = "x_admin_key"


def verify_admin_key(expected_key: Optional[str], header_key: str) -> Optional[AdminActor]:
    if not expected_key or not header_key:
        return None
    if not hmac.compare_digest(header_key.encode(), expected_key.encode()):
        return None
    key_hash = hashlib.sha256(header_key.encode()).hexdigest()[:16]
    return AdminActor(actor_id=f"key:{key_hash}")


async def require_admin(request: Request) -> AdminActor:
    expected = request.app.state.settings.ADMIN_KEY
    actor = verify_admin_key(expected, request.headers.get("X-Admin-Key", "").strip())
    if actor is None:
        raise PermissionError("Admin access required", code="admin_required")
    logger.info(f"admin.access actor={actor.actor_id} path={request.url.path}")
    return actor
