"""Subscription model — local mirror of a Stripe subscription."""

import uuid

from sqlalchemy import BigInteger, Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, TimestampMixin

VERIFICATION_PLAN_ID = "verification"
STRIPE_SUBSCRIPTION_PREFIX = "sub_"


class Subscription(TimestampMixin, Base):
    """Mirror of a user's Stripe subscription.

    The primary key is the Stripe subscription id (``sub_...``). Subscriptions
    provisioned out-of-band are stored under the owning user's id instead and
    are never looked up at Stripe.
    """

    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    # Plan: basic, pro, business, or verification
    plan_id: Mapped[str] = mapped_column(String(50), nullable=False)
    price_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    interval: Mapped[str] = mapped_column(String(10), nullable=False, default="month")  # month, year

    # Mirrored from Stripe; Stripe wins on disagreement
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    current_period_end: Mapped[int | None] = mapped_column(BigInteger, nullable=True)  # epoch seconds

    @property
    def is_placeholder(self) -> bool:
        return not self.id.startswith(STRIPE_SUBSCRIPTION_PREFIX)

    @property
    def is_verification(self) -> bool:
        return self.plan_id == VERIFICATION_PLAN_ID

    def __repr__(self) -> str:
        return (
            f"<Subscription(id={self.id}, user_id={self.user_id}, plan_id={self.plan_id}, "
            f"status={self.status}, cancel_at_period_end={self.cancel_at_period_end})>"
        )
