"""
prosite/models/plan.py

Plan definitions: the purchasable subscription tiers.

A plan bounds the page quota and feature access of an account. Definitions are
static and immutable; the catalog in `prosite.features.plans.catalog` is the
single source of truth for them.
"""

from enum import Enum
from typing import Dict, Optional, Tuple
from pydantic import BaseModel, ConfigDict, model_validator


class PlanId(str, Enum):
    STARTER = "starter"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class PlanDefinition(BaseModel):
    """
    Static plan definition.

    Invariant: `prices_by_currency` always holds a price for the catalog's
    default currency (checked by the catalog at import time).
    """
    model_config = ConfigDict(frozen=True)

    id: PlanId
    name: str
    prices_by_currency: Dict[str, int]
    page_quota: int
    custom_themes_allowed: bool
    features: Tuple[str, ...] = ()
    popular: bool = False

    @model_validator(mode="after")
    def _prices_present(self) -> "PlanDefinition":
        if not self.prices_by_currency:
            raise ValueError(f"Plan {self.id.value} has no prices")
        return self

    def price_in(self, currency: str) -> Optional[int]:
        return self.prices_by_currency.get(currency.upper())
