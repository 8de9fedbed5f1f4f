"""Plain snapshots of Stripe objects.

Stripe objects are read through attribute access with bracket notation for
``items`` (Stripe API 2025-08-27 "basil" collides ``items`` with dict
``.items()``), and period fields are read from the first subscription item
first, falling back to the subscription itself for older API versions.
"""

from dataclasses import dataclass
from typing import Any

import stripe

from app.billing.plans import get_plan_by_price_id


def _first_item(stripe_sub: stripe.Subscription) -> Any | None:
    try:
        sub_items = stripe_sub["items"]
    except (KeyError, AttributeError):
        return None
    if sub_items and sub_items.data:
        return sub_items.data[0]
    return None


def get_price_id(stripe_sub: stripe.Subscription) -> str | None:
    """Extract the first price ID from a Stripe subscription's items."""
    item = _first_item(stripe_sub)
    price = getattr(item, "price", None) if item else None
    return getattr(price, "id", None) if price else None


def get_interval(stripe_sub: stripe.Subscription) -> str | None:
    item = _first_item(stripe_sub)
    price = getattr(item, "price", None) if item else None
    recurring = getattr(price, "recurring", None) if price else None
    return getattr(recurring, "interval", None) if recurring else None


def get_period_end(stripe_sub: stripe.Subscription) -> int | None:
    """Current period end (epoch seconds), item-level first."""
    item = _first_item(stripe_sub)
    if item is not None:
        value = getattr(item, "current_period_end", None)
        if value is not None:
            return int(value)
    value = getattr(stripe_sub, "current_period_end", None)
    return int(value) if value is not None else None


def get_customer_id(stripe_obj: Any) -> str | None:
    """Customer id from a Stripe object whose ``customer`` may be expanded."""
    customer = getattr(stripe_obj, "customer", None)
    if customer is None or isinstance(customer, str):
        return customer
    return getattr(customer, "id", None)


def get_metadata_value(stripe_obj: Any, key: str) -> str | None:
    """Read one metadata key, tolerating absent or empty metadata."""
    metadata = getattr(stripe_obj, "metadata", None)
    if not metadata:
        return None
    try:
        return metadata[key]
    except (KeyError, TypeError, AttributeError):
        return None


@dataclass
class ProviderSubscription:
    """What Stripe reports for one subscription."""

    id: str
    customer_id: str | None
    status: str
    cancel_at_period_end: bool
    current_period_end: int | None
    price_id: str | None
    interval: str | None
    plan_id: str | None

    @classmethod
    def from_stripe(cls, stripe_sub: stripe.Subscription) -> "ProviderSubscription":
        price_id = get_price_id(stripe_sub)
        plan = get_plan_by_price_id(price_id) if price_id else None
        plan_id = plan[0] if plan else get_metadata_value(stripe_sub, "planId")
        interval = get_interval(stripe_sub) or (plan[1] if plan else None)
        return cls(
            id=stripe_sub.id,
            customer_id=get_customer_id(stripe_sub),
            status=stripe_sub.status,
            cancel_at_period_end=bool(getattr(stripe_sub, "cancel_at_period_end", False)),
            current_period_end=get_period_end(stripe_sub),
            price_id=price_id,
            interval=interval,
            plan_id=plan_id,
        )

    def mirror_changes(self, mirror: Any) -> dict[str, Any]:
        """Fields where the local mirror disagrees with Stripe."""
        changes: dict[str, Any] = {}
        if mirror.cancel_at_period_end != self.cancel_at_period_end:
            changes["cancel_at_period_end"] = self.cancel_at_period_end
        if self.current_period_end is not None and mirror.current_period_end != self.current_period_end:
            changes["current_period_end"] = self.current_period_end
        if mirror.status != self.status:
            changes["status"] = self.status
        return changes


@dataclass
class InvoiceSummary:
    id: str
    status: str | None
    amount_due: int
    amount_paid: int
    currency: str | None
    created: int | None
    hosted_invoice_url: str | None
    invoice_pdf: str | None

    @classmethod
    def from_stripe(cls, invoice: stripe.Invoice) -> "InvoiceSummary":
        return cls(
            id=invoice.id,
            status=getattr(invoice, "status", None),
            amount_due=getattr(invoice, "amount_due", 0) or 0,
            amount_paid=getattr(invoice, "amount_paid", 0) or 0,
            currency=getattr(invoice, "currency", None),
            created=getattr(invoice, "created", None),
            hosted_invoice_url=getattr(invoice, "hosted_invoice_url", None),
            invoice_pdf=getattr(invoice, "invoice_pdf", None),
        )
