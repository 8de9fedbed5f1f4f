"""Bearer identity tokens — issue and verify JWT access/refresh tokens."""

import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from app.config import settings


class TokenVerificationError(Exception):
    """Raised when a bearer token cannot be verified."""


def _encode(data: dict, token_type: str, lifetime: timedelta) -> str:
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    to_encode.update({"exp": now + lifetime, "iat": now, "type": token_type})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a short-lived access token.

    ``data`` must include ``sub`` (the user UUID as a string).
    """
    return _encode(
        data,
        "access",
        expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes),
    )


def create_refresh_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a long-lived refresh token."""
    return _encode(
        data,
        "refresh",
        expires_delta or timedelta(days=settings.jwt_refresh_token_expire_days),
    )


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Raises:
        jose.JWTError: If the token is invalid, expired, or malformed.
    """
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


def verify_token(token: str, expected_type: str = "access") -> uuid.UUID:
    """Verify a bearer token and return the stable user id it was issued for.

    Raises:
        TokenVerificationError: With a human-readable reason.
    """
    try:
        payload = decode_token(token)
    except JWTError as e:
        raise TokenVerificationError(str(e) or "Invalid token") from None

    if payload.get("type") != expected_type:
        raise TokenVerificationError("Invalid token type")

    sub: str | None = payload.get("sub")
    if sub is None:
        raise TokenVerificationError("Token has no subject")

    try:
        return uuid.UUID(sub)
    except ValueError:
        raise TokenVerificationError("Token subject is not a user id") from None


def create_token_pair(user_id: str) -> dict[str, str]:
    """Create both access and refresh tokens for a user."""
    payload = {"sub": user_id}
    return {
        "access_token": create_access_token(payload),
        "refresh_token": create_refresh_token(payload),
        "token_type": "bearer",
    }
