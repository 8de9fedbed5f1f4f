"""Pydantic v2 request/response schemas for billing endpoints."""

from pydantic import BaseModel, ConfigDict, Field

# --- Request schemas ---


class CheckoutRequest(BaseModel):
    """Request to create a Stripe Checkout session."""

    plan: str  # basic, pro, business, or verification
    interval: str = Field("month", pattern="^(month|year)$")
    success_url: str | None = None
    cancel_url: str | None = None


class PortalRequest(BaseModel):
    """Request to create a Stripe Customer Portal session."""

    return_url: str | None = None


class SubscriptionInfoRequest(BaseModel):
    """Look up live subscription state by subscription or customer id."""

    model_config = ConfigDict(populate_by_name=True)

    subscription_id: str | None = Field(None, alias="subscriptionId")
    customer_id: str | None = Field(None, alias="customerId")


class CancelSubscriptionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subscription_id: str = Field(..., alias="subscriptionId")


class ResumeSubscriptionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subscription_id: str = Field(..., alias="subscriptionId")
    user_id: str = Field(..., alias="userId")


# --- Response schemas ---


class PlanResponse(BaseModel):
    """Plan details for display."""

    id: str
    display_name: str
    price_monthly_cents: int
    features: list[str]
    is_addon: bool


class PlansListResponse(BaseModel):
    """All available plans."""

    plans: list[PlanResponse]


class SubscriptionResponse(BaseModel):
    """A mirrored subscription with its derived access state."""

    id: str
    plan_id: str
    price_id: str | None = None
    interval: str
    status: str
    cancel_at_period_end: bool
    current_period_end: int | None = None
    access: str  # active, grace_period, inactive
    is_placeholder: bool


class SubscriptionsResponse(BaseModel):
    """All of the user's subscriptions plus gating flags."""

    subscriptions: list[SubscriptionResponse]
    has_active_plan: bool
    has_verification_badge: bool
    main_plan_id: str | None = None


class ProviderSubscriptionResponse(BaseModel):
    """Live subscription state as reported by Stripe."""

    id: str
    customer_id: str | None = None
    status: str
    cancel_at_period_end: bool
    current_period_end: int | None = None
    price_id: str | None = None
    interval: str | None = None
    plan_id: str | None = None
    access: str


class InvoiceResponse(BaseModel):
    id: str
    status: str | None = None
    amount_due: int
    amount_paid: int
    currency: str | None = None
    created: int | None = None
    hosted_invoice_url: str | None = None
    invoice_pdf: str | None = None


class SubscriptionInfoResponse(BaseModel):
    subscription: ProviderSubscriptionResponse | None = None
    subscriptions: list[ProviderSubscriptionResponse] = []
    invoices: list[InvoiceResponse] = []


class SubscriptionActionResponse(BaseModel):
    """Outcome of a cancel or resume request."""

    success: bool = True
    message: str


class CheckoutResponse(BaseModel):
    """Stripe Checkout session URL returned to frontend."""

    checkout_url: str
    session_id: str


class PortalResponse(BaseModel):
    """Stripe Customer Portal URL returned to frontend."""

    portal_url: str
