"""Subscription reconciliation — keep the local mirror consistent with Stripe.

Stripe is the source of truth. Every Stripe read repairs the mirror row when
the two disagree, and user actions (cancel/resume) write to Stripe first and
mirror the change best-effort afterwards: a failed mirror write is logged and
never turns a successful Stripe write into an error.
"""

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import stripe
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from stripe import StripeClient

from app.billing.plans import MAIN_PLAN_IDS, get_plan
from app.billing.provider import InvoiceSummary, ProviderSubscription
from app.billing.stripe_client import (
    create_checkout_session,
    create_customer,
    create_portal_session,
    list_customer_subscriptions,
    list_invoices,
    retrieve_subscription,
    set_cancel_at_period_end,
)
from app.models.subscription import STRIPE_SUBSCRIPTION_PREFIX, VERIFICATION_PLAN_ID, Subscription
from app.models.user import User

logger = logging.getLogger(__name__)

ACTIVE_STATUSES: frozenset[str] = frozenset({"active", "trialing"})
CUSTOMER_PREFIX = "cus_"

# Values returned by subscription_access()
ACCESS_ACTIVE = "active"
ACCESS_GRACE_PERIOD = "grace_period"
ACCESS_INACTIVE = "inactive"


class SubscriptionError(Exception):
    """Base class for subscription operation failures."""


class SubscriptionValidationError(SubscriptionError):
    """Malformed identifiers or a state the operation cannot act on."""


class SubscriptionOwnershipError(SubscriptionError):
    """The subscription does not belong to the acting user."""


class SubscriptionNotFoundError(SubscriptionError):
    """No such subscription, locally or at Stripe."""


class ProviderError(SubscriptionError):
    """A Stripe call failed; the message carries Stripe's error text."""


# ---------------------------------------------------------------------------
# Access predicates
# ---------------------------------------------------------------------------


def _now() -> int:
    return int(time.time())


def subscription_access(subscription: Any, now: int | None = None) -> str:
    """Classify a subscription (mirror row or Stripe snapshot).

    ``active``: Stripe reports a live status and no scheduled cancellation.
    ``grace_period``: cancellation is scheduled but the paid period has not
    ended yet. A live status with a missing or stale period end still counts
    as ``active`` until Stripe itself reports the subscription canceled.
    Anything else is ``inactive``.
    """
    if subscription is None:
        return ACCESS_INACTIVE
    now = _now() if now is None else now
    if subscription.status in ACTIVE_STATUSES and not subscription.cancel_at_period_end:
        return ACCESS_ACTIVE
    if (
        subscription.cancel_at_period_end
        and subscription.current_period_end is not None
        and now < subscription.current_period_end
    ):
        return ACCESS_GRACE_PERIOD
    if subscription.status in ACTIVE_STATUSES:
        return ACCESS_ACTIVE
    return ACCESS_INACTIVE


def is_active(subscription: Any, now: int | None = None) -> bool:
    return subscription_access(subscription, now) != ACCESS_INACTIVE


def is_provider_subscription_id(subscription_id: str | None) -> bool:
    return bool(subscription_id) and subscription_id.startswith(STRIPE_SUBSCRIPTION_PREFIX)


@dataclass
class AccessSummary:
    """Gating view of a user's subscriptions."""

    subscriptions: list[Subscription]
    main_plan: Subscription | None
    verification: Subscription | None
    has_active_plan: bool
    has_verification_badge: bool


def _pick(subscriptions: Iterable[Subscription], plan_ids: Iterable[str], now: int) -> Subscription | None:
    """Prefer an active subscription among the given plans, else the most recent one."""
    wanted = set(plan_ids)
    candidates = [s for s in subscriptions if s.plan_id in wanted]
    for sub in candidates:
        if is_active(sub, now):
            return sub
    return candidates[0] if candidates else None


# ---------------------------------------------------------------------------
# Mirror reads
# ---------------------------------------------------------------------------


async def get_user_subscriptions(db: AsyncSession, user: User) -> list[Subscription]:
    """Return every mirrored subscription of a user.

    Looks up rows linked to the user's Stripe customer first; when there are
    none, falls back to a placeholder row stored under the user's own id.
    """
    if user.stripe_customer_id:
        result = await db.execute(
            select(Subscription)
            .where(Subscription.customer_id == user.stripe_customer_id)
            .order_by(Subscription.created_at.desc())
        )
        subscriptions = list(result.scalars().all())
        if subscriptions:
            return subscriptions

    placeholder = await db.get(Subscription, str(user.id))
    if placeholder is not None:
        logger.info("Using placeholder subscription for user %s", user.id)
        return [placeholder]

    return []


async def get_access_summary(db: AsyncSession, user: User, now: int | None = None) -> AccessSummary:
    now = _now() if now is None else now
    subscriptions = await get_user_subscriptions(db, user)
    main_plan = _pick(subscriptions, MAIN_PLAN_IDS, now)
    verification = _pick(subscriptions, [VERIFICATION_PLAN_ID], now)
    return AccessSummary(
        subscriptions=subscriptions,
        main_plan=main_plan,
        verification=verification,
        has_active_plan=is_active(main_plan, now),
        has_verification_badge=is_active(verification, now),
    )


# ---------------------------------------------------------------------------
# Mirror writes (best-effort)
# ---------------------------------------------------------------------------


async def _write_mirror(db: AsyncSession, subscription_id: str, **fields: Any) -> bool:
    """Update mirror fields inside a savepoint. Returns False if there is no mirror row."""
    async with db.begin_nested():
        mirror = await db.get(Subscription, subscription_id)
        if mirror is None:
            return False
        for name, value in fields.items():
            setattr(mirror, name, value)
    return True


async def _mirror_best_effort(db: AsyncSession, subscription_id: str, **fields: Any) -> bool:
    try:
        updated = await _write_mirror(db, subscription_id, **fields)
    except SQLAlchemyError:
        logger.exception(
            "Failed to update subscription mirror %s; Stripe remains the source of truth",
            subscription_id,
        )
        return False
    if not updated:
        logger.info("No local mirror for subscription %s, nothing to update", subscription_id)
    return updated


async def repair_mirror(db: AsyncSession, provider_sub: ProviderSubscription) -> bool:
    """Overwrite mirror fields that disagree with a fresh Stripe read."""
    mirror = await db.get(Subscription, provider_sub.id)
    if mirror is None:
        return False
    changes = provider_sub.mirror_changes(mirror)
    if not changes:
        return False
    logger.info("Syncing subscription %s mirror to Stripe: %s", provider_sub.id, changes)
    return await _mirror_best_effort(db, provider_sub.id, **changes)


# ---------------------------------------------------------------------------
# Stripe reads
# ---------------------------------------------------------------------------


def _require_customer_id(user: User) -> str:
    customer_id = user.stripe_customer_id
    if not customer_id or not customer_id.startswith(CUSTOMER_PREFIX):
        raise SubscriptionValidationError("Invalid or missing Stripe customer ID for this user.")
    return customer_id


def _require_subscription_id(subscription_id: str | None) -> str:
    if not is_provider_subscription_id(subscription_id):
        raise SubscriptionValidationError("Invalid or missing Stripe subscription ID.")
    return subscription_id  # type: ignore[return-value]


async def _retrieve_owned(
    client: StripeClient, subscription_id: str, customer_id: str
) -> ProviderSubscription:
    try:
        stripe_sub = await retrieve_subscription(client, subscription_id)
    except stripe.StripeError as e:
        logger.error("Failed to retrieve subscription %s from Stripe: %s", subscription_id, e)
        raise ProviderError(f"Failed to retrieve subscription: {e.user_message or e}") from e

    provider_sub = ProviderSubscription.from_stripe(stripe_sub)
    if provider_sub.customer_id != customer_id:
        logger.warning(
            "Subscription %s belongs to customer %s, not %s",
            subscription_id,
            provider_sub.customer_id,
            customer_id,
        )
        raise SubscriptionOwnershipError("Subscription does not belong to this user.")
    return provider_sub


@dataclass
class SubscriptionSnapshot:
    """Live Stripe view returned by a refresh."""

    subscription: ProviderSubscription | None
    subscriptions: list[ProviderSubscription] = field(default_factory=list)
    invoices: list[InvoiceSummary] = field(default_factory=list)


def _snapshot_from_mirror(mirror: Subscription) -> ProviderSubscription:
    return ProviderSubscription(
        id=mirror.id,
        customer_id=mirror.customer_id,
        status=mirror.status,
        cancel_at_period_end=mirror.cancel_at_period_end,
        current_period_end=mirror.current_period_end,
        price_id=mirror.price_id,
        interval=mirror.interval,
        plan_id=mirror.plan_id,
    )


async def _fetch_invoices(
    client: StripeClient, customer_id: str | None, subscription_id: str | None
) -> list[InvoiceSummary]:
    try:
        invoices = await list_invoices(client, customer_id=customer_id, subscription_id=subscription_id)
    except stripe.StripeError as e:
        logger.error("Error fetching invoices (customer=%s): %s", customer_id, e)
        return []
    return [InvoiceSummary.from_stripe(inv) for inv in invoices]


async def refresh_from_provider(
    db: AsyncSession,
    client: StripeClient,
    user: User,
    subscription_id: str | None = None,
    customer_id: str | None = None,
) -> SubscriptionSnapshot:
    """Fetch live subscription state and invoices, repairing the mirror on the way.

    Placeholder subscriptions (ids that are not Stripe ids) are answered from
    the mirror without calling Stripe.
    """
    if not subscription_id and not customer_id:
        raise SubscriptionValidationError("Missing customerId or subscriptionId")
    if customer_id and customer_id != user.stripe_customer_id:
        raise SubscriptionOwnershipError("Customer does not belong to this user.")

    if subscription_id and not is_provider_subscription_id(subscription_id):
        mirror = await db.get(Subscription, subscription_id)
        if mirror is None or mirror.user_id != user.id:
            raise SubscriptionNotFoundError("Placeholder subscription not found")
        return SubscriptionSnapshot(subscription=_snapshot_from_mirror(mirror))

    owner_customer = _require_customer_id(user)
    snapshot = SubscriptionSnapshot(subscription=None)

    if subscription_id:
        snapshot.subscription = await _retrieve_owned(client, subscription_id, owner_customer)
        fetched = [snapshot.subscription]
    else:
        try:
            stripe_subs = await list_customer_subscriptions(client, owner_customer)
        except stripe.StripeError as e:
            logger.error("Error listing subscriptions for customer %s: %s", owner_customer, e)
            raise ProviderError(f"Stripe error: {e.user_message or e}") from e
        snapshot.subscriptions = [ProviderSubscription.from_stripe(s) for s in stripe_subs]
        snapshot.subscription = snapshot.subscriptions[0] if snapshot.subscriptions else None
        fetched = snapshot.subscriptions

    for provider_sub in fetched:
        await repair_mirror(db, provider_sub)

    snapshot.invoices = await _fetch_invoices(
        client,
        customer_id=customer_id or owner_customer,
        subscription_id=subscription_id,
    )
    return snapshot


# ---------------------------------------------------------------------------
# User actions: Stripe first, mirror second
# ---------------------------------------------------------------------------


async def cancel_subscription(
    db: AsyncSession, client: StripeClient, user: User, subscription_id: str
) -> str:
    """Schedule cancellation at period end. Returns a user-facing message.

    Calling it on a subscription that is already canceling or canceled is a
    successful no-op.
    """
    subscription_id = _require_subscription_id(subscription_id)
    customer_id = _require_customer_id(user)
    provider_sub = await _retrieve_owned(client, subscription_id, customer_id)
    await repair_mirror(db, provider_sub)

    if provider_sub.cancel_at_period_end:
        return "Subscription is already set to cancel at period end."
    if provider_sub.status == "canceled":
        return "Subscription is already canceled."
    if provider_sub.status not in ACTIVE_STATUSES:
        raise SubscriptionValidationError(
            f"Cannot cancel subscription with status: {provider_sub.status}"
        )

    try:
        await set_cancel_at_period_end(client, subscription_id, True)
    except stripe.StripeError as e:
        logger.error("Stripe cancel failed for %s: %s", subscription_id, e)
        raise ProviderError(f"Failed to cancel subscription: {e.user_message or e}") from e

    await _mirror_best_effort(db, subscription_id, cancel_at_period_end=True)
    logger.info("Subscription %s scheduled to cancel at period end (user %s)", subscription_id, user.id)
    return "Subscription will be canceled at the end of the billing period."


async def resume_subscription(
    db: AsyncSession,
    client: StripeClient,
    user: User,
    subscription_id: str,
    user_id: str,
) -> str:
    """Undo a scheduled cancellation. Returns a user-facing message."""
    if str(user.id) != str(user_id):
        logger.warning("User ID mismatch on resume: token=%s request=%s", user.id, user_id)
        raise SubscriptionOwnershipError("User ID does not match authenticated user")

    subscription_id = _require_subscription_id(subscription_id)
    customer_id = _require_customer_id(user)
    provider_sub = await _retrieve_owned(client, subscription_id, customer_id)
    await repair_mirror(db, provider_sub)

    if not provider_sub.cancel_at_period_end:
        return "Subscription is already active and not scheduled for cancellation"

    try:
        updated = await set_cancel_at_period_end(client, subscription_id, False)
    except stripe.StripeError as e:
        logger.error("Stripe resume failed for %s: %s", subscription_id, e)
        raise ProviderError(f"Failed to update subscription in Stripe: {e.user_message or e}") from e

    fields: dict[str, Any] = {"cancel_at_period_end": False}
    status = getattr(updated, "status", None)
    if status:
        fields["status"] = status
    await _mirror_best_effort(db, subscription_id, **fields)
    logger.info("Subscription %s resumed (user %s)", subscription_id, user.id)
    return "Subscription successfully resumed"


async def open_billing_portal(client: StripeClient, user: User, return_url: str) -> str:
    """Return a Stripe-hosted portal URL scoped to the user's customer."""
    if not user.stripe_customer_id:
        raise SubscriptionValidationError("No Stripe customer found. Subscribe first.")
    try:
        session = await create_portal_session(client, user.stripe_customer_id, return_url)
    except stripe.StripeError as e:
        logger.error("Stripe portal error: %s", e)
        raise ProviderError(str(e.user_message or e)) from e
    return session.url


# ---------------------------------------------------------------------------
# Checkout and provisioning
# ---------------------------------------------------------------------------


async def ensure_stripe_customer(db: AsyncSession, client: StripeClient, user: User) -> str:
    """Ensure the user has a Stripe customer ID. Create one if missing."""
    if user.stripe_customer_id:
        return user.stripe_customer_id

    customer = await create_customer(
        client,
        email=user.email,
        name=user.name or user.email,
        user_id=str(user.id),
    )
    user.stripe_customer_id = customer.id
    await db.flush()
    logger.info("Linked Stripe customer %s to user %s", customer.id, user.id)
    return customer.id


async def start_checkout(
    db: AsyncSession,
    client: StripeClient,
    user: User,
    plan_id: str,
    interval: str,
    success_url: str,
    cancel_url: str,
) -> stripe.checkout.Session:
    plan = get_plan(plan_id)
    if plan is None:
        raise SubscriptionValidationError(f"Unknown plan: {plan_id}")
    price_id = plan.price_id_for(interval)
    if not price_id:
        raise SubscriptionValidationError(f"Stripe price not configured for {plan_id}/{interval}.")

    try:
        customer_id = await ensure_stripe_customer(db, client, user)
        return await create_checkout_session(
            client,
            customer_id=customer_id,
            price_id=price_id,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={"userId": str(user.id), "planId": plan_id},
        )
    except stripe.StripeError as e:
        logger.error("Stripe checkout error: %s", e)
        raise ProviderError(str(e.user_message or e)) from e


async def upsert_from_provider(
    db: AsyncSession,
    user: User,
    provider_sub: ProviderSubscription,
    plan_id: str,
) -> Subscription:
    """Write a Stripe subscription into the mirror (webhook path).

    A user keeps at most one main-plan row and one verification row: older
    rows of the same category are removed.
    """
    category = [VERIFICATION_PLAN_ID] if plan_id == VERIFICATION_PLAN_ID else sorted(MAIN_PLAN_IDS)
    await db.execute(
        delete(Subscription).where(
            Subscription.user_id == user.id,
            Subscription.plan_id.in_(category),
            Subscription.id != provider_sub.id,
        )
    )

    mirror = await db.get(Subscription, provider_sub.id)
    if mirror is None:
        mirror = Subscription(id=provider_sub.id, user_id=user.id)
        db.add(mirror)

    mirror.customer_id = provider_sub.customer_id
    mirror.plan_id = plan_id
    mirror.price_id = provider_sub.price_id
    mirror.interval = provider_sub.interval or "month"
    mirror.status = provider_sub.status
    mirror.cancel_at_period_end = provider_sub.cancel_at_period_end
    mirror.current_period_end = provider_sub.current_period_end
    await db.flush()

    if plan_id == VERIFICATION_PLAN_ID:
        apply_verification_badge(user, provider_sub)
        await db.flush()

    logger.info(
        "Mirrored subscription %s for user %s: plan=%s, status=%s",
        provider_sub.id,
        user.id,
        plan_id,
        provider_sub.status,
    )
    return mirror


def apply_verification_badge(user: User, provider_sub: ProviderSubscription) -> None:
    """Refresh the badge summary stored on the user."""
    user.verification_badge = {
        "active": provider_sub.status in ACTIVE_STATUSES,
        "subscription_id": provider_sub.id,
        "price_id": provider_sub.price_id,
        "interval": provider_sub.interval,
        "current_period_end": provider_sub.current_period_end,
        "status": provider_sub.status,
    }
