"""Account routes: sign up, sign in, token refresh, and the member's own profile."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_active_user
from app.auth.jwt import TokenVerificationError, create_token_pair, verify_token
from app.auth.passwords import hash_password, verify_password
from app.billing.dependencies import get_subscription_access
from app.database import get_db
from app.models.service import Service
from app.models.user import User
from app.schemas.auth import (
    AuthResponse,
    LoginRequest,
    ProfileResponse,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from app.services.subscription_service import AccessSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _signed_in(user: User) -> AuthResponse:
    return AuthResponse(
        user=UserResponse.model_validate(user),
        tokens=TokenResponse(**create_token_pair(str(user.id))),
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)) -> AuthResponse:
    """Create a member account. A plan is bought separately through checkout."""
    taken = await db.scalar(select(func.count()).select_from(User).where(User.email == body.email))
    if taken:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    member = User(email=body.email, hashed_password=hash_password(body.password), name=body.name)
    db.add(member)
    await db.flush()
    await db.refresh(member)
    logger.info("New member %s joined", member.id)
    return _signed_in(member)


@router.post("/login", response_model=AuthResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)) -> AuthResponse:
    member = (await db.execute(select(User).where(User.email == body.email))).scalar_one_or_none()
    if member is None or not member.hashed_password or not verify_password(body.password, member.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not member.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")
    return _signed_in(member)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, db: AsyncSession = Depends(get_db)) -> TokenResponse:
    """Trade a refresh token for a fresh pair. Access tokens are refused here."""
    try:
        member_id = verify_token(body.refresh_token, expected_type="refresh")
    except TokenVerificationError as e:
        logger.info("Refresh rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    member = await db.get(User, member_id)
    if member is None or not member.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return TokenResponse(**create_token_pair(str(member.id)))


@router.get("/me", response_model=ProfileResponse)
async def me(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    access: AccessSummary = Depends(get_subscription_access),
) -> ProfileResponse:
    """The signed-in member, their badge, plan gating, and listing count."""
    service_count = await db.scalar(
        select(func.count()).select_from(Service).where(Service.user_id == current_user.id)
    )
    return ProfileResponse(
        **UserResponse.model_validate(current_user).model_dump(),
        has_active_plan=access.has_active_plan,
        main_plan_id=access.main_plan.plan_id if access.main_plan else None,
        service_count=service_count or 0,
    )
