"""Async Stripe API wrapper for ServSwap.

Every call takes an explicitly constructed :class:`StripeClient`; routes get
one through the :func:`get_stripe_client` dependency.
"""

import logging

import stripe
from stripe import StripeClient

from app.config import settings

logger = logging.getLogger(__name__)


def get_stripe_client() -> StripeClient:
    """Create a StripeClient instance with async HTTP support."""
    return StripeClient(
        settings.stripe_secret_key,
        http_client=stripe.HTTPXClient(),
    )


async def create_customer(
    client: StripeClient, email: str, name: str, user_id: str
) -> stripe.Customer:
    """Create a Stripe customer linked to a ServSwap user."""
    logger.info("Creating Stripe customer for user %s (%s)", user_id, email)
    customer = await client.v1.customers.create_async(
        params={
            "email": email,
            "name": name,
            "metadata": {"userId": user_id},
        }
    )
    logger.info("Created Stripe customer %s for user %s", customer.id, user_id)
    return customer


async def create_checkout_session(
    client: StripeClient,
    customer_id: str,
    price_id: str,
    success_url: str,
    cancel_url: str,
    metadata: dict[str, str],
) -> stripe.checkout.Session:
    """Create a Stripe Checkout Session for a new subscription."""
    logger.info(
        "Creating checkout session for customer %s, price %s",
        customer_id,
        price_id,
    )
    return await client.v1.checkout.sessions.create_async(
        params={
            "mode": "subscription",
            "customer": customer_id,
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
        }
    )


async def create_portal_session(
    client: StripeClient, customer_id: str, return_url: str
) -> stripe.billing_portal.Session:
    """Create a Stripe Customer Portal session for subscription management."""
    logger.info("Creating portal session for customer %s", customer_id)
    return await client.v1.billing_portal.sessions.create_async(
        params={
            "customer": customer_id,
            "return_url": return_url,
        }
    )


async def retrieve_subscription(client: StripeClient, subscription_id: str) -> stripe.Subscription:
    """Retrieve a live Stripe subscription by ID."""
    return await client.v1.subscriptions.retrieve_async(subscription_id)


async def list_customer_subscriptions(
    client: StripeClient, customer_id: str
) -> list[stripe.Subscription]:
    """List every subscription of a customer, most recent first."""
    result = await client.v1.subscriptions.list_async(
        params={"customer": customer_id, "status": "all", "limit": 100}
    )
    return list(result.data)


async def set_cancel_at_period_end(
    client: StripeClient, subscription_id: str, cancel: bool
) -> stripe.Subscription:
    """Schedule (or unschedule) cancellation at the end of the billing period."""
    logger.info("Setting cancel_at_period_end=%s on subscription %s", cancel, subscription_id)
    return await client.v1.subscriptions.update_async(
        subscription_id,
        params={"cancel_at_period_end": cancel},
    )


async def list_invoices(
    client: StripeClient,
    customer_id: str | None = None,
    subscription_id: str | None = None,
) -> list[stripe.Invoice]:
    """List invoices for a customer, or for a single subscription."""
    params: dict = {"limit": 100}
    if customer_id:
        params["customer"] = customer_id
    elif subscription_id:
        params["subscription"] = subscription_id
    result = await client.v1.invoices.list_async(params=params)
    return list(result.data)


def construct_webhook_event(client: StripeClient, payload: bytes, sig_header: str) -> stripe.Event:
    """Verify and construct a Stripe webhook event (synchronous)."""
    return client.construct_event(payload, sig_header, settings.stripe_webhook_secret)
