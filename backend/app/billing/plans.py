"""Plan catalog — subscription tiers and their Stripe prices."""

from dataclasses import dataclass

from app.config import settings

VALID_INTERVALS: tuple[str, ...] = ("month", "year")


@dataclass(frozen=True)
class Plan:
    """A purchasable plan.

    The ``verification`` plan is an add-on badge; the others are mutually
    exclusive "main" plans that gate access to the app.
    """

    id: str
    display_name: str
    price_monthly_cents: int
    features: tuple[str, ...]
    stripe_price_monthly: str | None
    stripe_price_annual: str | None
    is_addon: bool = False

    def price_id_for(self, interval: str) -> str | None:
        return self.stripe_price_annual if interval == "year" else self.stripe_price_monthly


PLANS: dict[str, Plan] = {
    "basic": Plan(
        id="basic",
        display_name="Basic",
        price_monthly_cents=999,
        features=(
            "Create up to 5 service listings",
            "Access to SwapFeed",
            "Basic user profile",
        ),
        stripe_price_monthly=settings.stripe_price_basic_monthly or None,
        stripe_price_annual=settings.stripe_price_basic_annual or None,
    ),
    "pro": Plan(
        id="pro",
        display_name="Professional",
        price_monthly_cents=1999,
        features=(
            "Create up to 15 service listings",
            "Access to SwapFeed",
            "Enhanced user profile with analytics",
            "Priority in search results",
        ),
        stripe_price_monthly=settings.stripe_price_pro_monthly or None,
        stripe_price_annual=settings.stripe_price_pro_annual or None,
    ),
    "business": Plan(
        id="business",
        display_name="Business",
        price_monthly_cents=3999,
        features=(
            "Unlimited service listings",
            "Access to SwapFeed",
            "Full user profile with advanced analytics",
            "Top placement in search results",
            "White-glove customer support",
        ),
        stripe_price_monthly=settings.stripe_price_business_monthly or None,
        stripe_price_annual=settings.stripe_price_business_annual or None,
    ),
    "verification": Plan(
        id="verification",
        display_name="Verification Badge",
        price_monthly_cents=500,
        features=(
            "Verified badge on your profile",
            "Increased trust with other users",
            "Priority in search results",
        ),
        stripe_price_monthly=settings.stripe_price_verification_monthly or None,
        stripe_price_annual=settings.stripe_price_verification_annual or None,
        is_addon=True,
    ),
}

MAIN_PLAN_IDS: frozenset[str] = frozenset(p.id for p in PLANS.values() if not p.is_addon)


def get_plan(plan_id: str) -> Plan | None:
    return PLANS.get(plan_id)


def get_plan_by_price_id(price_id: str) -> tuple[str, str] | None:
    """Reverse lookup: Stripe price ID -> (plan id, interval). Returns None if not found."""
    for plan in PLANS.values():
        if plan.stripe_price_monthly and plan.stripe_price_monthly == price_id:
            return plan.id, "month"
        if plan.stripe_price_annual and plan.stripe_price_annual == price_id:
            return plan.id, "year"
    return None
