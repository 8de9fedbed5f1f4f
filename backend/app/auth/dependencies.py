"""FastAPI authentication dependencies for route protection."""

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import TokenVerificationError, verify_token
from app.config import settings
from app.database import get_db
from app.models.user import User

logger = logging.getLogger(__name__)

# Missing credentials are reported by the dependencies below as 401
_bearer_scheme = HTTPBearer(auto_error=False)

BILLING_PORTAL_SUGGESTION = (
    'Please use the "Manage Subscription" button instead, which opens the Stripe Customer Portal'
)


async def _authenticate(
    credentials: HTTPAuthorizationCredentials | None,
    db: AsyncSession,
) -> User:
    """Resolve the bearer token to a user.

    Raises:
        TokenVerificationError: If the token is missing, invalid, or names no known account.
    """
    if credentials is None or not credentials.credentials:
        raise TokenVerificationError("Missing authorization header")

    user_id = verify_token(credentials.credentials)

    user = await db.get(User, user_id)
    if user is None:
        raise TokenVerificationError("User not found")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the Bearer token, then return the authenticated user.

    Raises:
        HTTPException 401: If the token is missing, invalid, expired, or the user is unknown.
    """
    try:
        return await _authenticate(credentials, db)
    except TokenVerificationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e) if credentials is None else "Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None


async def get_current_active_user(
    user: User = Depends(get_current_user),
) -> User:
    """Return the current user only if their account is active.

    Raises:
        HTTPException 403: If the user account is inactive.
    """
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )
    return user


async def get_current_user_with_portal_fallback(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Authenticate like :func:`get_current_user`, but point failures at the billing portal.

    Used by subscription-management endpoints: when the token cannot be
    verified the caller still gets a 401, with a ``suggestion`` steering the
    user to the self-service portal instead of a dead end.
    """
    try:
        user = await _authenticate(credentials, db)
        if not user.is_active:
            raise TokenVerificationError("User account is inactive")
        return user
    except TokenVerificationError as e:
        logger.warning("Token verification failed for billing action: %s", e)
        if settings.is_production:
            message = f"Auth verification failed: {e}. Please try again or use the Stripe Portal directly."
        else:
            message = f"Invalid or expired auth token: {e}"
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": message, "suggestion": BILLING_PORTAL_SUGGESTION},
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
