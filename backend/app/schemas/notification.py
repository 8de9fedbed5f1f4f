"""Pydantic v2 response schemas for notification endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class NotificationResponse(BaseModel):
    id: uuid.UUID
    type: str
    sender_id: uuid.UUID | None = None
    sender_name: str
    message: str | None = None
    service_title: str | None = None
    swap_id: uuid.UUID | None = None
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationListResponse(BaseModel):
    """Paginated list of notifications."""

    items: list[NotificationResponse]
    total: int
    skip: int
    limit: int
