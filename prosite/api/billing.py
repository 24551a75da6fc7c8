"""
Billing API routes.

- GET  /api/billing: current plan, purchasable plans, last payment
- POST /api/billing/create-order: price a plan and return a UPI link
- POST /api/billing/confirm-payment: confirm an out-of-band payment
- GET  /api/billing/order-status/{order_id}
- GET  /api/billing/invoices
- GET  /api/billing/invoices/{invoice_id}/download: PDF
- POST /api/billing/upgrade: deprecated direct upgrade

Every route requires an authenticated caller; the caller's id is the only key
used for order and invoice ownership checks.
"""
from fastapi import APIRouter, Depends, HTTPException, Response

from prosite.api.deps import get_billing, get_renderer, get_settings
from prosite.api.schemas import (
    BillingOverview,
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    CreateOrderRequest,
    CreateOrderResponse,
    InvoiceListResponse,
    InvoiceSummary,
    OrderStatusResponse,
    PlanOut,
    UpgradeRequest,
    UpgradeResponse,
    UserOut,
    UserPlanOut,
)
from prosite.core.auth import get_current_user, get_current_user_id
from prosite.core.config import Settings
from prosite.features.billing.service import BillingService
from prosite.features.invoices.pdf import InvoiceRenderer
from prosite.features.plans import catalog
from prosite.models.user import User

router = APIRouter(prefix="/api/billing", tags=["billing"])


@router.get("", response_model=BillingOverview)
def billing_overview(user: User = Depends(get_current_user)):
    return BillingOverview(
        current_plan=UserPlanOut.from_state(user.plan),
        role=user.role,
        plans=[PlanOut.from_plan(p) for p in catalog.list_plans()],
        payment=user.payment,
    )


@router.post("/create-order", response_model=CreateOrderResponse)
def create_order(
    body: CreateOrderRequest,
    user_id: str = Depends(get_current_user_id),
    billing: BillingService = Depends(get_billing),
):
    """
    Create a pending order for a plan.

    Unknown currencies fall back to the default currency; the response carries
    the currency actually charged.

    Errors:
        400: invalid plan
    """
    created = billing.create_order(user_id, body.plan_id, body.currency)
    return CreateOrderResponse(
        order_id=created.order.order_id,
        amount=created.order.amount,
        currency=created.order.currency,
        plan_name=created.plan_name,
        payment_link=created.payment_link,
        payee_id=created.payee_id,
    )


@router.post("/confirm-payment", response_model=ConfirmPaymentResponse)
def confirm_payment(
    body: ConfirmPaymentRequest,
    user_id: str = Depends(get_current_user_id),
    billing: BillingService = Depends(get_billing),
):
    """
    Confirm payment of an order and grant its plan.

    A confirmation whose invoice could not be issued still succeeds, with null
    invoice fields; the invoice is issued later by the reconcile job.

    Errors:
        400: missing orderId, order already completed
        403: order belongs to another user
        404: order not found or expired
        409: a confirmation of the same order is already running
    """
    result = billing.confirm_payment(user_id, body.order_id or "", body.external_transaction_ref)
    return ConfirmPaymentResponse(
        message="Payment confirmed",
        user=UserOut.from_user(result.user),
        invoice_id=result.invoice_id,
        invoice_number=result.invoice_number,
    )


@router.get("/order-status/{order_id}", response_model=OrderStatusResponse)
def order_status(
    order_id: str,
    user_id: str = Depends(get_current_user_id),
    billing: BillingService = Depends(get_billing),
):
    order = billing.get_order_for_user(user_id, order_id)
    return OrderStatusResponse(status=order.status.value, plan_id=order.plan_id.value)


@router.get("/invoices", response_model=InvoiceListResponse)
def list_invoices(
    user_id: str = Depends(get_current_user_id),
    billing: BillingService = Depends(get_billing),
):
    invoices = billing.list_invoices(user_id)
    return InvoiceListResponse(invoices=[InvoiceSummary.from_invoice(i) for i in invoices])


@router.get(
    "/invoices/{invoice_id}/download",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}}},
)
def download_invoice(
    invoice_id: str,
    user_id: str = Depends(get_current_user_id),
    billing: BillingService = Depends(get_billing),
    renderer: InvoiceRenderer = Depends(get_renderer),
):
    invoice = billing.get_invoice_for_user(user_id, invoice_id)
    pdf = renderer.render_invoice(invoice)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{invoice.invoice_number}.pdf"'},
    )


@router.post("/upgrade", response_model=UpgradeResponse, deprecated=True)
def legacy_upgrade(
    body: UpgradeRequest,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    billing: BillingService = Depends(get_billing),
    settings_obj: Settings = Depends(get_settings),
):
    """Direct plan upgrade without an order or invoice. Use create-order + confirm-payment."""
    if not settings_obj.LEGACY_UPGRADE_ENABLED:
        raise HTTPException(
            status_code=410,
            detail="Legacy upgrade is disabled; use create-order and confirm-payment",
            headers={"Deprecation": "true"},
        )
    user = billing.legacy_upgrade(user_id, body.plan_id, body.card_last4, body.card_brand)
    response.headers["Deprecation"] = "true"
    return UpgradeResponse(message="Plan upgraded", user=UserOut.from_user(user))
