"""Pydantic v2 request/response schemas for swap endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class SwapCreate(BaseModel):
    """Propose trading one of your services for someone else's."""

    provider_service_id: uuid.UUID
    receiver_service_id: uuid.UUID
    message: str | None = Field(None, max_length=2000)


class SwapMessageCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class SwapResponse(BaseModel):
    """A swap as seen by one of its parties."""

    id: uuid.UUID
    provider_id: uuid.UUID
    receiver_id: uuid.UUID
    provider_service_id: uuid.UUID | None = None
    receiver_service_id: uuid.UUID | None = None
    provider_service: str
    receiver_service: str
    message: str | None = None
    status: str
    provider_marked_complete: bool
    receiver_marked_complete: bool
    read: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SwapListResponse(BaseModel):
    """Paginated list of swaps."""

    items: list[SwapResponse]
    total: int
    skip: int
    limit: int


class SwapMessageResponse(BaseModel):
    id: uuid.UUID
    swap_id: uuid.UUID
    sender_id: uuid.UUID | None = None
    sender_name: str
    text: str
    read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
