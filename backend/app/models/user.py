"""User model — authentication, profile, and Stripe customer linkage."""

from typing import Any

from sqlalchemy import JSON, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A ServSwap member who lists services and trades them."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str | None] = mapped_column(String(255), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Stripe customer (cus_...), set on first checkout
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)

    # Summary of the verification badge subscription, written by webhooks
    verification_badge: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Relationships
    services: Mapped[list["Service"]] = relationship(  # type: ignore[name-defined]  # noqa: F821
        "Service", back_populates="owner", lazy="selectin"
    )

    @property
    def is_verified(self) -> bool:
        return bool(self.verification_badge and self.verification_badge.get("active"))

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"
