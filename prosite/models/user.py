from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict


class UserPlanState(BaseModel):
    """Plan fields of an account. `plan_id` is "demo" until the first purchase."""
    model_config = ConfigDict(frozen=True)

    plan_id: str = "demo"
    page_quota: int = 2
    custom_themes_allowed: bool = False
    expires_at: Optional[datetime] = None


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    username: str
    email: str = ""
    name: str = ""
    role: str = "demo"
    plan: UserPlanState = UserPlanState()
    payment: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime


class PlanChange(BaseModel):
    """Single atomic account mutation applied on payment confirmation or legacy upgrade."""
    model_config = ConfigDict(frozen=True)

    plan: UserPlanState
    role: str
    payment: Dict[str, Any]
