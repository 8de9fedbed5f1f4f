"""Pydantic v2 schemas for accounts: registration, login, tokens, and member profiles."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    """JWT access/refresh pair."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class VerificationBadgeResponse(BaseModel):
    """Badge summary kept on the member by the Stripe webhooks."""

    active: bool = False
    status: str | None = None
    interval: str | None = None
    current_period_end: int | None = None


class UserResponse(BaseModel):
    """A ServSwap member as shown to themselves.

    ``stripe_customer_id`` is exposed so the billing page can ask for live
    subscription state by customer.
    """

    id: uuid.UUID
    email: str
    name: str
    avatar_url: str | None = None
    is_active: bool
    is_verified: bool
    verification_badge: VerificationBadgeResponse | None = None
    stripe_customer_id: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProfileResponse(UserResponse):
    """``/auth/me``: the member plus what gates swapping."""

    has_active_plan: bool
    main_plan_id: str | None = None
    service_count: int


class AuthResponse(BaseModel):
    user: UserResponse
    tokens: TokenResponse


class MessageResponse(BaseModel):
    message: str
