"""
prosite/features/plans/catalog.py

Static plan catalog.

Pure lookup table over the purchasable plans. Billing uses it to price orders,
and quota/feature gating everywhere else reads the same definitions.
"""

from typing import Dict, List, Optional, Union

from prosite.core.errors import InvalidPlanError
from prosite.models.plan import PlanDefinition, PlanId
from prosite.models.user import UserPlanState


DEFAULT_CURRENCY = "INR"

SUPPORTED_CURRENCIES = ("INR", "USD", "EUR", "GBP")

CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$", "EUR": "€", "GBP": "£"}

# Non-paying state of every new account; not purchasable.
DEMO_PLAN_STATE = UserPlanState(plan_id="demo", page_quota=2, custom_themes_allowed=False, expires_at=None)
DEMO_ROLE = "demo"

_PLANS: Dict[PlanId, PlanDefinition] = {
    PlanId.STARTER: PlanDefinition(
        id=PlanId.STARTER,
        name="Starter",
        prices_by_currency={"INR": 199, "USD": 9, "EUR": 8, "GBP": 7},
        page_quota=3,
        custom_themes_allowed=False,
        features=("3 Pages", "6 Free Themes", "Basic Components", "Email Support"),
    ),
    PlanId.PRO: PlanDefinition(
        id=PlanId.PRO,
        name="Professional",
        prices_by_currency={"INR": 499, "USD": 29, "EUR": 27, "GBP": 23},
        page_quota=8,
        custom_themes_allowed=True,
        features=("8 Pages", "All Themes", "All Components", "Custom Theme", "Priority Support", "Analytics"),
        popular=True,
    ),
    PlanId.ENTERPRISE: PlanDefinition(
        id=PlanId.ENTERPRISE,
        name="Enterprise",
        prices_by_currency={"INR": 999, "USD": 79, "EUR": 72, "GBP": 62},
        page_quota=25,
        custom_themes_allowed=True,
        features=("25 Pages", "All Themes", "All Components", "Custom Themes", "White Label", "24/7 Support", "API Access"),
    ),
}

# Billing tier doubles as authorization role.
_ROLE_BY_PLAN = {
    PlanId.ENTERPRISE: "admin",
    PlanId.PRO: "pro",
    PlanId.STARTER: "starter",
}

for _plan in _PLANS.values():
    if _plan.price_in(DEFAULT_CURRENCY) is None:
        raise RuntimeError(f"Plan {_plan.id.value} has no {DEFAULT_CURRENCY} price")


def _coerce_plan_id(plan_id: Union[str, PlanId, None]) -> PlanId:
    if isinstance(plan_id, PlanId):
        return plan_id
    try:
        return PlanId(str(plan_id or "").strip().lower())
    except ValueError:
        raise InvalidPlanError(f"Invalid plan: {plan_id!r}")


def get_plan(plan_id: Union[str, PlanId, None]) -> PlanDefinition:
    """Return the plan definition or raise InvalidPlanError."""
    return _PLANS[_coerce_plan_id(plan_id)]


def list_plans() -> List[PlanDefinition]:
    return list(_PLANS.values())


def normalize_currency(currency: Optional[str]) -> str:
    return (currency or DEFAULT_CURRENCY).strip().upper() or DEFAULT_CURRENCY


def price_for(plan_id: Union[str, PlanId], currency: Optional[str] = None, default_currency: str = DEFAULT_CURRENCY) -> int:
    """
    Price of a plan in the requested currency.

    Falls back to the default currency's price when the plan has no price in
    the requested one. Callers that need to know which currency was used should
    call `resolve_price`.
    """
    return resolve_price(plan_id, currency, default_currency)[0]


def resolve_price(plan_id: Union[str, PlanId], currency: Optional[str] = None, default_currency: str = DEFAULT_CURRENCY) -> tuple[int, str]:
    plan = get_plan(plan_id)
    requested = normalize_currency(currency)
    amount = plan.price_in(requested)
    if amount is not None:
        return amount, requested
    fallback = normalize_currency(default_currency)
    amount = plan.price_in(fallback)
    if amount is None:
        fallback = DEFAULT_CURRENCY
        amount = plan.prices_by_currency[DEFAULT_CURRENCY]
    return amount, fallback


def role_for_plan(plan_id: Union[str, PlanId]) -> str:
    return _ROLE_BY_PLAN[_coerce_plan_id(plan_id)]


def plan_state_for(plan_id: Union[str, PlanId], expires_at=None) -> UserPlanState:
    """Quota and feature flags an account receives when it holds this plan."""
    plan = get_plan(plan_id)
    return UserPlanState(
        plan_id=plan.id.value,
        page_quota=plan.page_quota,
        custom_themes_allowed=plan.custom_themes_allowed,
        expires_at=expires_at,
    )
