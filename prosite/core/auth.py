"""
Auth utilities for the ProSite API.

Issues and validates HS256 JWTs signed with JWT_SECRET and extracts the
user_id from the request. The X-User-Id header is accepted only when
AUTH_ALLOW_USER_ID_HEADER is on (local testing).
"""
import logging
from datetime import timedelta
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, Request

from prosite.core.clock import utc_now
from prosite.core.config import Settings, settings
from prosite.models.user import User

logger = logging.getLogger("prosite.auth")


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def create_access_token(user_id: str, settings_obj: Optional[Settings] = None, *, now=None) -> str:
    settings_obj = settings_obj or settings
    issued = now or utc_now()
    payload = {
        "sub": user_id,
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(days=settings_obj.JWT_EXPIRES_DAYS)).timestamp()),
    }
    return jwt.encode(payload, settings_obj.JWT_SECRET, algorithm=settings_obj.JWT_ALGORITHM)


def decode_access_token(token: str, settings_obj: Optional[Settings] = None) -> str:
    """
    Verify a token and return its subject.

    Raises:
        HTTPException 401: expired, malformed or unsigned token
    """
    settings_obj = settings_obj or settings
    try:
        payload = jwt.decode(
            token,
            settings_obj.JWT_SECRET,
            algorithms=[settings_obj.JWT_ALGORITHM],
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user_id


async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Local testing only"),
) -> str:
    """
    Resolve the caller.

    Priority:
    1. Bearer JWT from the Authorization header
    2. X-User-Id header, when enabled
    3. 401
    """
    settings_obj = _settings(request)
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return decode_access_token(auth_header[7:].strip(), settings_obj)

    if x_user_id and settings_obj.AUTH_ALLOW_USER_ID_HEADER:
        return x_user_id.strip()

    raise HTTPException(
        status_code=401,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(request: Request, user_id: str = Depends(get_current_user_id)) -> User:
    user = request.app.state.accounts.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user
