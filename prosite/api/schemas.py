"""Wire models shared by the API routers. JSON is camelCase."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from prosite.models.invoice import Invoice
from prosite.models.plan import PlanDefinition
from prosite.models.user import User, UserPlanState


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PlanOut(CamelModel):
    id: str
    name: str
    prices: Dict[str, int]
    page_quota: int
    custom_themes_allowed: bool
    features: List[str]
    popular: bool = False

    @classmethod
    def from_plan(cls, plan: PlanDefinition) -> "PlanOut":
        return cls(
            id=plan.id.value,
            name=plan.name,
            prices=dict(plan.prices_by_currency),
            page_quota=plan.page_quota,
            custom_themes_allowed=plan.custom_themes_allowed,
            features=list(plan.features),
            popular=plan.popular,
        )


class UserPlanOut(CamelModel):
    id: str
    page_quota: int
    custom_themes_allowed: bool
    expires_at: Optional[datetime] = None

    @classmethod
    def from_state(cls, state: UserPlanState) -> "UserPlanOut":
        return cls(
            id=state.plan_id,
            page_quota=state.page_quota,
            custom_themes_allowed=state.custom_themes_allowed,
            expires_at=state.expires_at,
        )


class UserOut(CamelModel):
    id: str
    username: str
    name: str
    email: str
    role: str
    plan: UserPlanOut

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.user_id,
            username=user.username,
            name=user.name,
            email=user.email,
            role=user.role,
            plan=UserPlanOut.from_state(user.plan),
        )


# --- auth ------------------------------------------------------------------

class RegisterRequest(CamelModel):
    username: str = ""
    password: str = ""
    email: str = ""
    name: str = ""


class LoginRequest(CamelModel):
    username: str = ""
    password: str = ""


class TokenResponse(CamelModel):
    token: str
    user: UserOut


# --- billing ---------------------------------------------------------------

class CreateOrderRequest(CamelModel):
    plan_id: str = ""
    currency: Optional[str] = None


class CreateOrderResponse(CamelModel):
    order_id: str
    amount: int
    currency: str
    plan_name: str
    payment_link: str
    payee_id: str


class ConfirmPaymentRequest(CamelModel):
    order_id: Optional[str] = None
    # Older clients still send upiTransactionId.
    external_transaction_ref: str = Field(
        default="",
        validation_alias=AliasChoices("externalTransactionRef", "upiTransactionId", "external_transaction_ref"),
    )


class ConfirmPaymentResponse(CamelModel):
    message: str
    user: UserOut
    invoice_id: Optional[str] = None
    invoice_number: Optional[str] = None


class OrderStatusResponse(CamelModel):
    status: str
    plan_id: str


class InvoiceSummary(CamelModel):
    id: str
    invoice_number: str
    plan_id: str
    plan_name: str
    amount: int
    currency: str
    status: str
    created_at: datetime
    paid_at: Optional[datetime] = None

    @classmethod
    def from_invoice(cls, invoice: Invoice) -> "InvoiceSummary":
        return cls(
            id=invoice.id,
            invoice_number=invoice.invoice_number,
            plan_id=invoice.plan_id.value,
            plan_name=invoice.plan_name,
            amount=invoice.amount,
            currency=invoice.currency,
            status=invoice.status.value,
            created_at=invoice.created_at,
            paid_at=invoice.paid_at,
        )


class InvoiceListResponse(CamelModel):
    invoices: List[InvoiceSummary]


class BillingOverview(CamelModel):
    current_plan: UserPlanOut
    role: str
    plans: List[PlanOut]
    payment: Optional[Dict[str, Any]] = None


class UpgradeRequest(CamelModel):
    plan_id: str = ""
    card_last4: Optional[str] = None
    card_brand: Optional[str] = None


class UpgradeResponse(CamelModel):
    message: str
    user: UserOut
