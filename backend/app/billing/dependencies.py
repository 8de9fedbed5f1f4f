"""Plan gating dependencies — enforce access based on the user's subscriptions."""

import logging

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_active_user
from app.database import get_db
from app.models.user import User
from app.services.subscription_service import AccessSummary, get_access_summary

logger = logging.getLogger(__name__)


async def get_subscription_access(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> AccessSummary:
    """Return the user's subscriptions and gating flags."""
    return await get_access_summary(db, user)


async def require_active_plan(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> None:
    """Raise 402 unless the user has an active (or grace-period) main plan."""
    summary = await get_access_summary(db, user)
    if summary.has_active_plan:
        return

    logger.info("User %s blocked: no active plan", user.id)
    raise HTTPException(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        detail={
            "message": "An active subscription is required to propose swaps.",
            "plan": summary.main_plan.plan_id if summary.main_plan else None,
            "upgrade_url": "/pricing",
        },
    )
