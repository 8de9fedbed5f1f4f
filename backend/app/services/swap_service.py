"""Swap lifecycle — proposals, accept/decline/cancel, and two-party completion.

State machine::

    pending  -> accepted | declined | cancelled
    accepted -> completed (both parties marked complete) | cancelled

``completed``, ``declined`` and ``cancelled`` are terminal. Every transition
is a single conditional UPDATE guarded by the expected current status, so a
concurrent change makes the losing request fail instead of overwriting it.
"""

import logging
import uuid
from typing import Any

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.service import Service
from app.models.swap import Swap, SwapMessage, SwapStatus
from app.models.user import User
from app.services.notification_service import create_notification

logger = logging.getLogger(__name__)

SYSTEM_SENDER_NAME = "System"

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    SwapStatus.PENDING.value: frozenset(
        {SwapStatus.ACCEPTED.value, SwapStatus.DECLINED.value, SwapStatus.CANCELLED.value}
    ),
    SwapStatus.ACCEPTED.value: frozenset({SwapStatus.COMPLETED.value, SwapStatus.CANCELLED.value}),
}


class SwapError(Exception):
    """Base class for swap lifecycle failures."""


class SwapNotFoundError(SwapError):
    def __init__(self, message: str = "Swap not found") -> None:
        super().__init__(message)


class ServiceNotFoundError(SwapError):
    """A referenced service listing does not exist."""


class SwapPermissionError(SwapError):
    """The acting user may not perform this action on the swap."""


class InvalidSwapError(SwapError):
    """A proposal that can never be valid (e.g. swapping with yourself)."""


class InvalidSwapTransitionError(SwapError):
    """The swap's current status does not allow the requested transition."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot change swap from '{current}' to '{target}'")
        self.current = current
        self.target = target


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def _display_name(user: User) -> str:
    return user.name or "User"


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_swap(db: AsyncSession, swap_id: uuid.UUID) -> Swap:
    swap = await db.get(Swap, swap_id, populate_existing=True)
    if swap is None:
        raise SwapNotFoundError()
    return swap


async def get_swap_for_party(db: AsyncSession, swap_id: uuid.UUID, user: User) -> Swap:
    """Fetch a swap the user takes part in."""
    swap = await get_swap(db, swap_id)
    if swap.party_role(user.id) is None:
        raise SwapPermissionError("You are not a party to this swap")
    return swap


async def list_swaps_for_user(
    db: AsyncSession,
    user: User,
    order_by: str = "created",
    status: str | None = None,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[Swap], int]:
    """Swaps where the user is provider or receiver, newest first.

    ``order_by="created"`` sorts by creation time (dashboard),
    ``order_by="updated"`` by last activity (inbox).
    """
    participant = or_(Swap.provider_id == user.id, Swap.receiver_id == user.id)
    query = select(Swap).where(participant)
    count_query = select(func.count()).select_from(Swap).where(participant)
    if status is not None:
        query = query.where(Swap.status == status)
        count_query = count_query.where(Swap.status == status)

    sort_column = Swap.updated_at if order_by == "updated" else Swap.created_at
    query = query.order_by(sort_column.desc(), Swap.id).offset(skip).limit(limit)

    total = (await db.execute(count_query)).scalar_one()
    items = list((await db.execute(query)).scalars().all())
    return items, total


async def list_messages(db: AsyncSession, swap: Swap) -> list[SwapMessage]:
    result = await db.execute(
        select(SwapMessage)
        .where(SwapMessage.swap_id == swap.id)
        .order_by(SwapMessage.created_at, SwapMessage.id)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Side effects
# ---------------------------------------------------------------------------


async def add_message(
    db: AsyncSession,
    swap_id: uuid.UUID,
    text: str,
    sender: User | None = None,
) -> SwapMessage:
    """Append a message to a swap's thread. ``sender=None`` posts as the system."""
    message = SwapMessage(
        swap_id=swap_id,
        sender_id=sender.id if sender is not None else None,
        sender_name=_display_name(sender) if sender is not None else SYSTEM_SENDER_NAME,
        text=text,
    )
    db.add(message)
    await db.flush()
    await db.refresh(message)
    return message


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


async def _conditional_update(
    db: AsyncSession,
    swap_id: uuid.UUID,
    expected_status: str,
    values: dict[Any, Any],
    *extra_conditions: Any,
) -> bool:
    """Apply ``values`` only if the swap still has ``expected_status``.

    Returns True when a row was updated.
    """
    stmt = (
        update(Swap)
        .where(Swap.id == swap_id, Swap.status == expected_status, *extra_conditions)
        .values({**values, Swap.updated_at: func.now()})
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


async def _transition(
    db: AsyncSession,
    swap: Swap,
    target: str,
) -> Swap:
    if not can_transition(swap.status, target):
        raise InvalidSwapTransitionError(swap.status, target)
    updated = await _conditional_update(db, swap.id, swap.status, {Swap.status: target})
    if not updated:
        # Lost a race with another request; report against the fresh state
        fresh = await get_swap(db, swap.id)
        raise InvalidSwapTransitionError(fresh.status, target)
    return await get_swap(db, swap.id)


async def propose_swap(
    db: AsyncSession,
    proposer: User,
    provider_service_id: uuid.UUID,
    receiver_service_id: uuid.UUID,
    message: str | None = None,
) -> Swap:
    """Propose trading the proposer's service for another user's service."""
    offered = await db.get(Service, provider_service_id)
    if offered is None:
        raise ServiceNotFoundError("Offered service not found")
    if offered.user_id != proposer.id:
        raise SwapPermissionError("You can only offer your own services")

    requested = await db.get(Service, receiver_service_id)
    if requested is None:
        raise ServiceNotFoundError("Requested service not found")
    if requested.user_id == proposer.id:
        raise InvalidSwapError("You cannot propose a swap with yourself")

    swap = Swap(
        provider_id=proposer.id,
        receiver_id=requested.user_id,
        provider_service_id=offered.id,
        receiver_service_id=requested.id,
        provider_service=offered.title,
        receiver_service=requested.title,
        message=message,
        status=SwapStatus.PENDING.value,
        provider_marked_complete=False,
        receiver_marked_complete=False,
        read=False,
    )
    db.add(swap)
    await db.flush()

    await add_message(
        db,
        swap.id,
        f'I\'d like to swap my "{offered.title}" service for your "{requested.title}" service.',
        sender=proposer,
    )
    await create_notification(
        db,
        user_id=requested.user_id,
        type="swap_request",
        sender=proposer,
        service_title=requested.title,
        swap_id=swap.id,
    )
    logger.info("Swap %s proposed by %s to %s", swap.id, proposer.id, requested.user_id)
    return await get_swap(db, swap.id)


async def _respond(db: AsyncSession, swap_id: uuid.UUID, actor: User, target: str) -> Swap:
    swap = await get_swap(db, swap_id)
    if actor.id != swap.receiver_id:
        raise SwapPermissionError("Only the recipient of a swap request can respond to it")
    return await _transition(db, swap, target)


async def accept_swap(db: AsyncSession, swap_id: uuid.UUID, actor: User) -> Swap:
    """Accept a pending proposal. Only the receiver may accept."""
    swap = await _respond(db, swap_id, actor, SwapStatus.ACCEPTED.value)
    await add_message(db, swap.id, "I accept your swap request!", sender=actor)
    await create_notification(
        db,
        user_id=swap.provider_id,
        type="swap_accept",
        sender=actor,
        service_title=swap.provider_service,
        swap_id=swap.id,
    )
    logger.info("Swap %s accepted by %s", swap.id, actor.id)
    return swap


async def decline_swap(db: AsyncSession, swap_id: uuid.UUID, actor: User) -> Swap:
    """Decline a pending proposal. Only the receiver may decline."""
    swap = await _respond(db, swap_id, actor, SwapStatus.DECLINED.value)
    await add_message(db, swap.id, "I decline your swap request.", sender=actor)
    await create_notification(
        db,
        user_id=swap.provider_id,
        type="swap_reject",
        sender=actor,
        service_title=swap.provider_service,
        swap_id=swap.id,
    )
    logger.info("Swap %s declined by %s", swap.id, actor.id)
    return swap


async def cancel_swap(db: AsyncSession, swap_id: uuid.UUID, actor: User) -> Swap:
    """Cancel a pending or accepted swap. Either party may cancel."""
    swap = await get_swap_for_party(db, swap_id, actor)
    swap = await _transition(db, swap, SwapStatus.CANCELLED.value)

    text = f"{_display_name(actor)} has cancelled the swap."
    await add_message(db, swap.id, text)
    await create_notification(
        db,
        user_id=swap.counterparty_id(actor.id),
        type="swap_cancel",
        sender=actor,
        message=text,
        swap_id=swap.id,
    )
    logger.info("Swap %s cancelled by %s", swap.id, actor.id)
    return swap


async def mark_complete(db: AsyncSession, swap_id: uuid.UUID, actor: User) -> Swap:
    """Record the actor's completion confirmation.

    The actor's flag and, when the counterparty has already confirmed, the
    ``completed`` status are written by one UPDATE statement, so two parties
    confirming at the same time cannot both miss each other's flag.
    """
    swap = await get_swap(db, swap_id)
    role = swap.party_role(actor.id)
    if role is None:
        raise SwapPermissionError("You are not a party to this swap")
    if swap.status != SwapStatus.ACCEPTED.value:
        raise InvalidSwapTransitionError(swap.status, SwapStatus.COMPLETED.value)

    if role == "provider":
        own_flag, other_flag = Swap.provider_marked_complete, Swap.receiver_marked_complete
    else:
        own_flag, other_flag = Swap.receiver_marked_complete, Swap.provider_marked_complete

    updated = await _conditional_update(
        db,
        swap.id,
        SwapStatus.ACCEPTED.value,
        {
            own_flag: True,
            Swap.status: case(
                (other_flag.is_(True), SwapStatus.COMPLETED.value),
                else_=Swap.status,
            ),
        },
        own_flag.is_(False),
    )
    swap = await get_swap(db, swap.id)

    if not updated:
        own_marked = swap.provider_marked_complete if role == "provider" else swap.receiver_marked_complete
        if own_marked:
            # Already confirmed earlier; nothing new to announce
            return swap
        raise InvalidSwapTransitionError(swap.status, SwapStatus.COMPLETED.value)

    completed = swap.status == SwapStatus.COMPLETED.value
    party_text = f"{_display_name(actor)} has marked the swap as complete."
    await add_message(
        db,
        swap.id,
        "Both parties have marked the swap as complete!" if completed else party_text,
    )
    await create_notification(
        db,
        user_id=swap.counterparty_id(actor.id),
        type="swap_complete",
        sender=actor,
        message="The swap has been completed!" if completed else party_text,
        swap_id=swap.id,
    )
    logger.info(
        "Swap %s marked complete by %s (%s)%s",
        swap.id,
        actor.id,
        role,
        "; quorum reached" if completed else "",
    )
    return swap


async def mark_read(db: AsyncSession, swap_id: uuid.UUID, actor: User) -> Swap:
    """Clear the receiver's unread indicator."""
    swap = await get_swap(db, swap_id)
    if actor.id != swap.receiver_id:
        raise SwapPermissionError("Only the recipient can mark a swap as read")
    if not swap.read:
        swap.read = True
        await db.flush()
        await db.refresh(swap)
    return swap


async def post_message(db: AsyncSession, swap_id: uuid.UUID, sender: User, text: str) -> SwapMessage:
    """Post a chat message from one party and notify the other."""
    swap = await get_swap_for_party(db, swap_id, sender)
    message = await add_message(db, swap.id, text, sender=sender)
    await create_notification(
        db,
        user_id=swap.counterparty_id(sender.id),
        type="message",
        sender=sender,
        message=text,
        swap_id=swap.id,
    )
    return message
