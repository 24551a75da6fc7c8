"""
Account API routes.

- POST /api/auth/register
- POST /api/auth/login
- GET  /api/auth/me
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from prosite.api.deps import get_accounts, get_settings
from prosite.api.schemas import LoginRequest, RegisterRequest, TokenResponse, UserOut
from prosite.core.auth import create_access_token, get_current_user
from prosite.core.config import Settings
from prosite.features.users.service import AccountStore
from prosite.models.user import User

logger = logging.getLogger("prosite.auth")

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(
    body: RegisterRequest,
    accounts: AccountStore = Depends(get_accounts),
    settings_obj: Settings = Depends(get_settings),
):
    user = accounts.create_user(body.username, body.password, email=body.email, name=body.name)
    return TokenResponse(token=create_access_token(user.user_id, settings_obj), user=UserOut.from_user(user))


@router.post("/login", response_model=TokenResponse)
def login(
    body: LoginRequest,
    accounts: AccountStore = Depends(get_accounts),
    settings_obj: Settings = Depends(get_settings),
):
    user = accounts.authenticate(body.username, body.password)
    if user is None:
        logger.info("auth.login_failed")
        raise HTTPException(status_code=401, detail="Invalid username or password")
    return TokenResponse(token=create_access_token(user.user_id, settings_obj), user=UserOut.from_user(user))


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return UserOut.from_user(user)
