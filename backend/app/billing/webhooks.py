"""Stripe webhook event handlers — keep the subscription mirror in step with Stripe."""

import logging
import uuid
from typing import Any

import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from stripe import StripeClient

from app.billing.provider import ProviderSubscription, get_customer_id, get_metadata_value
from app.billing.stripe_client import retrieve_subscription
from app.models.subscription import VERIFICATION_PLAN_ID, Subscription
from app.models.user import User
from app.services.subscription_service import apply_verification_badge, upsert_from_provider

logger = logging.getLogger(__name__)


async def _get_user_by_customer(db: AsyncSession, customer_id: str | None) -> User | None:
    if not customer_id:
        return None
    result = await db.execute(select(User).where(User.stripe_customer_id == customer_id))
    return result.scalar_one_or_none()


async def _resolve_user(db: AsyncSession, stripe_obj: Any) -> User | None:
    """Find the ServSwap user from ``metadata.userId``, falling back to the customer id."""
    user_id = get_metadata_value(stripe_obj, "userId")
    if user_id:
        try:
            user = await db.get(User, uuid.UUID(user_id))
        except ValueError:
            logger.warning("Ignoring malformed userId metadata %r", user_id)
            user = None
        if user is not None:
            return user
    return await _get_user_by_customer(db, get_customer_id(stripe_obj))


def _invoice_subscription_id(invoice: Any) -> str | None:
    """Subscription id of an invoice, top-level or under ``parent`` (API 2025-03+)."""
    subscription_id = getattr(invoice, "subscription", None)
    if subscription_id:
        return subscription_id if isinstance(subscription_id, str) else subscription_id.id
    parent = getattr(invoice, "parent", None)
    details = getattr(parent, "subscription_details", None) if parent else None
    subscription_id = getattr(details, "subscription", None) if details else None
    if subscription_id and not isinstance(subscription_id, str):
        return subscription_id.id
    return subscription_id


async def handle_checkout_session_completed(
    db: AsyncSession, client: StripeClient, event: stripe.Event
) -> None:
    """Handle checkout.session.completed — mirror the newly created subscription."""
    session = event.data.object
    subscription_id = getattr(session, "subscription", None)

    if not subscription_id:
        logger.info("Checkout session %s has no subscription (one-time?), skipping", session.id)
        return

    user = await _resolve_user(db, session)
    if user is None:
        logger.warning(
            "No user found for checkout session %s (customer %s)",
            session.id,
            get_customer_id(session),
        )
        return

    customer_id = get_customer_id(session)
    if customer_id and not user.stripe_customer_id:
        user.stripe_customer_id = customer_id

    # Fetch full subscription from Stripe to get price and period info
    stripe_sub = await retrieve_subscription(client, subscription_id)
    provider_sub = ProviderSubscription.from_stripe(stripe_sub)
    plan_id = provider_sub.plan_id or get_metadata_value(session, "planId")
    if plan_id is None:
        logger.warning(
            "Unknown price ID %s in subscription %s, not mirrored",
            provider_sub.price_id,
            subscription_id,
        )
        return

    await upsert_from_provider(db, user, provider_sub, plan_id)
    logger.info("Checkout completed: subscription %s active on plan %s", subscription_id, plan_id)


async def handle_subscription_updated(
    db: AsyncSession, client: StripeClient, event: stripe.Event
) -> None:
    """Handle customer.subscription.updated — overwrite the mirror with Stripe's view."""
    provider_sub = ProviderSubscription.from_stripe(event.data.object)
    mirror = await db.get(Subscription, provider_sub.id)

    if mirror is None:
        user = await _resolve_user(db, event.data.object)
        if user is None or provider_sub.plan_id is None:
            logger.warning(
                "No local subscription found for Stripe subscription %s (customer %s)",
                provider_sub.id,
                provider_sub.customer_id,
            )
            return
        await upsert_from_provider(db, user, provider_sub, provider_sub.plan_id)
        return

    mirror.status = provider_sub.status
    mirror.cancel_at_period_end = provider_sub.cancel_at_period_end
    if provider_sub.current_period_end is not None:
        mirror.current_period_end = provider_sub.current_period_end
    if provider_sub.price_id:
        mirror.price_id = provider_sub.price_id
    if provider_sub.interval:
        mirror.interval = provider_sub.interval
    if provider_sub.plan_id:
        mirror.plan_id = provider_sub.plan_id
    await db.flush()

    if mirror.is_verification:
        user = await db.get(User, mirror.user_id)
        if user is not None:
            apply_verification_badge(user, provider_sub)
            await db.flush()

    logger.info(
        "Subscription updated: %s → plan=%s, status=%s, cancel_at_period_end=%s",
        provider_sub.id,
        mirror.plan_id,
        provider_sub.status,
        provider_sub.cancel_at_period_end,
    )


async def handle_subscription_deleted(
    db: AsyncSession, client: StripeClient, event: stripe.Event
) -> None:
    """Handle customer.subscription.deleted — mark the mirror canceled."""
    stripe_sub = event.data.object
    mirror = await db.get(Subscription, stripe_sub.id)
    if mirror is None:
        logger.warning(
            "No local subscription found for Stripe subscription %s (delete event)",
            stripe_sub.id,
        )
        return

    mirror.status = "canceled"
    mirror.cancel_at_period_end = False
    await db.flush()

    if mirror.plan_id == VERIFICATION_PLAN_ID:
        user = await db.get(User, mirror.user_id)
        if user is not None and user.verification_badge:
            user.verification_badge = {**user.verification_badge, "active": False, "status": "canceled"}
            await db.flush()

    logger.info("Subscription deleted: %s marked canceled", stripe_sub.id)


async def handle_invoice_payment_failed(
    db: AsyncSession, client: StripeClient, event: stripe.Event
) -> None:
    """Handle invoice.payment_failed — mark subscription as past_due."""
    invoice = event.data.object
    subscription_id = _invoice_subscription_id(invoice)

    if not subscription_id:
        logger.info(
            "Invoice %s has no subscription (one-time), skipping payment failure",
            invoice.id,
        )
        return

    mirror = await db.get(Subscription, subscription_id)
    if mirror is None:
        logger.warning(
            "No local subscription found for Stripe subscription %s (payment failed)",
            subscription_id,
        )
        return

    mirror.status = "past_due"
    await db.flush()
    logger.info(
        "Payment failed: subscription %s marked as past_due",
        subscription_id,
    )
