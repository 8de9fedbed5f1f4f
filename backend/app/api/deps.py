"""Shared API dependencies — single import point for all routers.

Re-exports database session, authentication, billing, and Stripe client
dependencies so that router modules can import everything they need from
one place::

    from app.api.deps import get_db, get_current_active_user
"""

from app.auth.dependencies import (
    get_current_active_user,
    get_current_user,
    get_current_user_with_portal_fallback,
)
from app.billing.dependencies import get_subscription_access, require_active_plan
from app.billing.stripe_client import get_stripe_client
from app.database import get_db

__all__ = [
    "get_db",
    "get_current_user",
    "get_current_active_user",
    "get_current_user_with_portal_fallback",
    "get_subscription_access",
    "require_active_plan",
    "get_stripe_client",
]
