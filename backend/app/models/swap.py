"""Swap models — exchange proposals between two users and their message thread."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow


class SwapStatus(str, enum.Enum):
    """Lifecycle states of a swap."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class Swap(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A proposed exchange of services.

    ``provider_id`` is the user who proposed the swap and offers
    ``provider_service``; ``receiver_id`` owns the requested listing and
    receives the proposal.
    """

    __tablename__ = "swaps"

    provider_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    receiver_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Listing references are informational; titles are copied at proposal time
    provider_service_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("services.id", ondelete="SET NULL"),
        nullable=True,
    )
    receiver_service_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("services.id", ondelete="SET NULL"),
        nullable=True,
    )
    provider_service: Mapped[str] = mapped_column(String(255), nullable=False)
    receiver_service: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=SwapStatus.PENDING.value,
        nullable=False,
        index=True,
    )  # pending, accepted, completed, declined, cancelled
    provider_marked_complete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    receiver_marked_complete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Receiver-side unread indicator
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def party_role(self, user_id: uuid.UUID) -> str | None:
        """Return ``"provider"``, ``"receiver"`` or None for a non-party."""
        if user_id == self.provider_id:
            return "provider"
        if user_id == self.receiver_id:
            return "receiver"
        return None

    def counterparty_id(self, user_id: uuid.UUID) -> uuid.UUID:
        return self.receiver_id if user_id == self.provider_id else self.provider_id

    def __repr__(self) -> str:
        return (
            f"<Swap(id={self.id}, provider_id={self.provider_id}, "
            f"receiver_id={self.receiver_id}, status={self.status})>"
        )


class SwapMessage(UUIDPrimaryKeyMixin, Base):
    """A chat message in a swap's conversation thread.

    ``sender_id`` is NULL for system messages.
    """

    __tablename__ = "swap_messages"

    swap_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("swaps.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    sender_name: Mapped[str] = mapped_column(String(255), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Each message is flushed on its own, so the thread sorts by posting order
    created_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now())

    __table_args__ = (Index("ix_swap_messages_swap_id_created_at", "swap_id", "created_at"),)

    def __repr__(self) -> str:
        return f"<SwapMessage(id={self.id}, swap_id={self.swap_id}, sender={self.sender_name!r})>"
