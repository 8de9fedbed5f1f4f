"""Billing API endpoints — subscription state, cancel/resume, Stripe Checkout, and Customer Portal."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from stripe import StripeClient

from app.api.deps import (
    get_current_active_user,
    get_current_user_with_portal_fallback,
    get_db,
    get_stripe_client,
    get_subscription_access,
)
from app.billing.plans import PLANS
from app.billing.provider import ProviderSubscription
from app.config import settings
from app.models.subscription import Subscription
from app.models.user import User
from app.schemas.billing import (
    CancelSubscriptionRequest,
    CheckoutRequest,
    CheckoutResponse,
    InvoiceResponse,
    PlanResponse,
    PlansListResponse,
    PortalRequest,
    PortalResponse,
    ProviderSubscriptionResponse,
    ResumeSubscriptionRequest,
    SubscriptionActionResponse,
    SubscriptionInfoRequest,
    SubscriptionInfoResponse,
    SubscriptionResponse,
    SubscriptionsResponse,
)
from app.services import subscription_service
from app.services.subscription_service import (
    AccessSummary,
    ProviderError,
    SubscriptionError,
    SubscriptionNotFoundError,
    SubscriptionOwnershipError,
    subscription_access,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/billing", tags=["billing"])


def _to_http(exc: SubscriptionError) -> HTTPException:
    if isinstance(exc, SubscriptionOwnershipError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, SubscriptionNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ProviderError):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))


def _mirror_response(sub: Subscription) -> SubscriptionResponse:
    return SubscriptionResponse(
        id=sub.id,
        plan_id=sub.plan_id,
        price_id=sub.price_id,
        interval=sub.interval,
        status=sub.status,
        cancel_at_period_end=sub.cancel_at_period_end,
        current_period_end=sub.current_period_end,
        access=subscription_access(sub),
        is_placeholder=sub.is_placeholder,
    )


def _provider_response(sub: ProviderSubscription) -> ProviderSubscriptionResponse:
    return ProviderSubscriptionResponse(
        id=sub.id,
        customer_id=sub.customer_id,
        status=sub.status,
        cancel_at_period_end=sub.cancel_at_period_end,
        current_period_end=sub.current_period_end,
        price_id=sub.price_id,
        interval=sub.interval,
        plan_id=sub.plan_id,
        access=subscription_access(sub),
    )


@router.get("/plans", response_model=PlansListResponse)
async def list_plans() -> PlansListResponse:
    """List available plans (public — no auth required)."""
    return PlansListResponse(
        plans=[
            PlanResponse(
                id=p.id,
                display_name=p.display_name,
                price_monthly_cents=p.price_monthly_cents,
                features=list(p.features),
                is_addon=p.is_addon,
            )
            for p in PLANS.values()
        ]
    )


@router.get("/subscriptions", response_model=SubscriptionsResponse)
async def get_subscriptions(
    summary: AccessSummary = Depends(get_subscription_access),
) -> SubscriptionsResponse:
    """All mirrored subscriptions of the current user plus gating flags."""
    return SubscriptionsResponse(
        subscriptions=[_mirror_response(s) for s in summary.subscriptions],
        has_active_plan=summary.has_active_plan,
        has_verification_badge=summary.has_verification_badge,
        main_plan_id=summary.main_plan.plan_id if summary.main_plan else None,
    )


@router.post("/subscription-info", response_model=SubscriptionInfoResponse)
async def get_subscription_info(
    body: SubscriptionInfoRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    client: StripeClient = Depends(get_stripe_client),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionInfoResponse:
    """Live subscription state and invoices from Stripe, repairing the local mirror."""
    response.headers["Cache-Control"] = "no-store, max-age=0"
    try:
        snapshot = await subscription_service.refresh_from_provider(
            db,
            client,
            current_user,
            subscription_id=body.subscription_id,
            customer_id=body.customer_id,
        )
    except SubscriptionError as e:
        raise _to_http(e) from None

    return SubscriptionInfoResponse(
        subscription=_provider_response(snapshot.subscription) if snapshot.subscription else None,
        subscriptions=[_provider_response(s) for s in snapshot.subscriptions],
        invoices=[InvoiceResponse(**vars(inv)) for inv in snapshot.invoices],
    )


@router.post("/cancel", response_model=SubscriptionActionResponse)
async def cancel_subscription(
    body: CancelSubscriptionRequest,
    db: AsyncSession = Depends(get_db),
    client: StripeClient = Depends(get_stripe_client),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionActionResponse:
    """Schedule cancellation at the end of the current billing period."""
    try:
        message = await subscription_service.cancel_subscription(
            db, client, current_user, body.subscription_id
        )
    except SubscriptionError as e:
        raise _to_http(e) from None
    return SubscriptionActionResponse(message=message)


@router.post("/resume", response_model=SubscriptionActionResponse)
async def resume_subscription(
    body: ResumeSubscriptionRequest,
    db: AsyncSession = Depends(get_db),
    client: StripeClient = Depends(get_stripe_client),
    current_user: User = Depends(get_current_user_with_portal_fallback),
) -> SubscriptionActionResponse:
    """Undo a scheduled cancellation."""
    try:
        message = await subscription_service.resume_subscription(
            db, client, current_user, body.subscription_id, body.user_id
        )
    except SubscriptionError as e:
        raise _to_http(e) from None
    return SubscriptionActionResponse(message=message)


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    body: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    client: StripeClient = Depends(get_stripe_client),
    current_user: User = Depends(get_current_active_user),
) -> CheckoutResponse:
    """Create a Stripe Checkout session for a plan."""
    success_url = (
        body.success_url
        or f"{settings.frontend_url}/billing?session_id={{CHECKOUT_SESSION_ID}}"
    )
    cancel_url = body.cancel_url or f"{settings.frontend_url}/pricing"

    try:
        session = await subscription_service.start_checkout(
            db,
            client,
            current_user,
            plan_id=body.plan,
            interval=body.interval,
            success_url=success_url,
            cancel_url=cancel_url,
        )
    except SubscriptionError as e:
        raise _to_http(e) from None

    return CheckoutResponse(
        checkout_url=session.url,
        session_id=session.id,
    )


@router.post("/portal", response_model=PortalResponse)
async def create_portal(
    body: PortalRequest,
    client: StripeClient = Depends(get_stripe_client),
    current_user: User = Depends(get_current_active_user),
) -> PortalResponse:
    """Create a Stripe Customer Portal session for subscription management."""
    return_url = body.return_url or f"{settings.frontend_url}/billing"
    try:
        portal_url = await subscription_service.open_billing_portal(client, current_user, return_url)
    except SubscriptionError as e:
        raise _to_http(e) from None
    return PortalResponse(portal_url=portal_url)
