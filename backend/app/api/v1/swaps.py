"""Swap API routes — proposals, lifecycle actions, and the per-swap message thread."""

import logging
import uuid
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_active_user, get_db, require_active_plan
from app.models.swap import SwapStatus
from app.models.user import User
from app.schemas.swap import (
    SwapCreate,
    SwapListResponse,
    SwapMessageCreate,
    SwapMessageResponse,
    SwapResponse,
)
from app.services import swap_service
from app.services.swap_service import (
    InvalidSwapError,
    InvalidSwapTransitionError,
    ServiceNotFoundError,
    SwapError,
    SwapNotFoundError,
    SwapPermissionError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/swaps", tags=["swaps"])

_ERROR_STATUS: dict[type[SwapError], int] = {
    SwapNotFoundError: status.HTTP_404_NOT_FOUND,
    ServiceNotFoundError: status.HTTP_404_NOT_FOUND,
    SwapPermissionError: status.HTTP_403_FORBIDDEN,
    InvalidSwapError: status.HTTP_400_BAD_REQUEST,
    InvalidSwapTransitionError: status.HTTP_409_CONFLICT,
}


def _to_http(exc: SwapError) -> HTTPException:
    return HTTPException(
        status_code=_ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST),
        detail=str(exc),
    )


# ---------------------------------------------------------------------------
# Propose / query
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=SwapResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Propose a swap",
)
async def propose_swap(
    body: SwapCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    _plan_check: None = Depends(require_active_plan),  # Plan gating
) -> SwapResponse:
    """Offer one of your services in exchange for another user's service."""
    try:
        swap = await swap_service.propose_swap(
            db,
            current_user,
            provider_service_id=body.provider_service_id,
            receiver_service_id=body.receiver_service_id,
            message=body.message,
        )
    except SwapError as e:
        raise _to_http(e) from None
    return SwapResponse.model_validate(swap)


@router.get(
    "",
    response_model=SwapListResponse,
    summary="List swaps the current user takes part in",
)
async def list_swaps(
    order: Literal["created", "updated"] = Query("created"),
    status_filter: SwapStatus | None = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SwapListResponse:
    """Dashboard (``order=created``) or inbox (``order=updated``) view."""
    items, total = await swap_service.list_swaps_for_user(
        db,
        current_user,
        order_by=order,
        status=status_filter.value if status_filter is not None else None,
        skip=skip,
        limit=limit,
    )
    return SwapListResponse(
        items=[SwapResponse.model_validate(s) for s in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/{swap_id}",
    response_model=SwapResponse,
    summary="Get a swap by ID",
)
async def get_swap(
    swap_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SwapResponse:
    try:
        swap = await swap_service.get_swap_for_party(db, swap_id, current_user)
    except SwapError as e:
        raise _to_http(e) from None
    return SwapResponse.model_validate(swap)


# ---------------------------------------------------------------------------
# Lifecycle mutations
# ---------------------------------------------------------------------------


@router.post("/{swap_id}/accept", response_model=SwapResponse, summary="Accept a swap request")
async def accept_swap(
    swap_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SwapResponse:
    try:
        swap = await swap_service.accept_swap(db, swap_id, current_user)
    except SwapError as e:
        raise _to_http(e) from None
    return SwapResponse.model_validate(swap)


@router.post("/{swap_id}/decline", response_model=SwapResponse, summary="Decline a swap request")
async def decline_swap(
    swap_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SwapResponse:
    try:
        swap = await swap_service.decline_swap(db, swap_id, current_user)
    except SwapError as e:
        raise _to_http(e) from None
    return SwapResponse.model_validate(swap)


@router.post("/{swap_id}/cancel", response_model=SwapResponse, summary="Cancel a swap")
async def cancel_swap(
    swap_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SwapResponse:
    try:
        swap = await swap_service.cancel_swap(db, swap_id, current_user)
    except SwapError as e:
        raise _to_http(e) from None
    return SwapResponse.model_validate(swap)


@router.post("/{swap_id}/complete", response_model=SwapResponse, summary="Mark your side of a swap complete")
async def complete_swap(
    swap_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SwapResponse:
    """Record the caller's confirmation; the swap completes once both parties confirm."""
    try:
        swap = await swap_service.mark_complete(db, swap_id, current_user)
    except SwapError as e:
        raise _to_http(e) from None
    return SwapResponse.model_validate(swap)


@router.post("/{swap_id}/read", response_model=SwapResponse, summary="Mark a swap request as read")
async def mark_swap_read(
    swap_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SwapResponse:
    try:
        swap = await swap_service.mark_read(db, swap_id, current_user)
    except SwapError as e:
        raise _to_http(e) from None
    return SwapResponse.model_validate(swap)


# ---------------------------------------------------------------------------
# Message thread
# ---------------------------------------------------------------------------


@router.get(
    "/{swap_id}/messages",
    response_model=list[SwapMessageResponse],
    summary="List a swap's messages",
)
async def list_swap_messages(
    swap_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> list[SwapMessageResponse]:
    """Return the thread oldest first. Readable in any status."""
    try:
        swap = await swap_service.get_swap_for_party(db, swap_id, current_user)
    except SwapError as e:
        raise _to_http(e) from None
    messages = await swap_service.list_messages(db, swap)
    return [SwapMessageResponse.model_validate(m) for m in messages]


@router.post(
    "/{swap_id}/messages",
    response_model=SwapMessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a message to a swap",
)
async def post_swap_message(
    swap_id: uuid.UUID,
    body: SwapMessageCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SwapMessageResponse:
    try:
        message = await swap_service.post_message(db, swap_id, current_user, body.text)
    except SwapError as e:
        raise _to_http(e) from None
    return SwapMessageResponse.model_validate(message)
