"""Notification service — create and read per-user notifications."""

import logging
import uuid

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.notification import Notification
from app.models.user import User

logger = logging.getLogger(__name__)


async def create_notification(
    db: AsyncSession,
    user_id: uuid.UUID,
    type: str,
    sender: User,
    message: str | None = None,
    service_title: str | None = None,
    swap_id: uuid.UUID | None = None,
) -> Notification:
    """Queue a notification for ``user_id`` in the current unit of work."""
    notification = Notification(
        user_id=user_id,
        type=type,
        sender_id=sender.id,
        sender_name=sender.name or "User",
        message=message,
        service_title=service_title,
        swap_id=swap_id,
    )
    db.add(notification)
    await db.flush()
    logger.debug("Created %s notification for user %s", type, user_id)
    return notification


async def list_notifications(
    db: AsyncSession,
    user: User,
    unread_only: bool = False,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[Notification], int]:
    query = select(Notification).where(Notification.user_id == user.id)
    count_query = select(func.count()).select_from(Notification).where(Notification.user_id == user.id)
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
        count_query = count_query.where(Notification.is_read.is_(False))

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(
        query.order_by(Notification.created_at.desc(), Notification.id).offset(skip).limit(limit)
    )
    return list(result.scalars().all()), total


async def mark_notification_read(db: AsyncSession, user: User, notification_id: uuid.UUID) -> bool:
    """Mark one of the user's notifications as read. Returns False if not found."""
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user.id)
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
