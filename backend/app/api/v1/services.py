"""Service listing API routes — create, browse, and remove barter listings."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_active_user, get_db
from app.models.service import Service
from app.models.user import User
from app.schemas.auth import MessageResponse
from app.schemas.service import ServiceCreate, ServiceListResponse, ServiceResponse

router = APIRouter(prefix="/api/v1/services", tags=["services"])


@router.post(
    "",
    response_model=ServiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="List a new service",
)
async def create_service(
    body: ServiceCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ServiceResponse:
    """Create a service listing owned by the authenticated user."""
    service = Service(user_id=current_user.id, **body.model_dump())
    db.add(service)
    await db.flush()
    await db.refresh(service)
    return ServiceResponse.model_validate(service)


@router.get(
    "",
    response_model=ServiceListResponse,
    summary="Browse service listings",
)
async def list_services(
    category: str | None = Query(None),
    owner_id: uuid.UUID | None = Query(None),
    mine: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ServiceListResponse:
    """Return paginated listings, optionally filtered by category or owner."""
    filters = []
    if mine:
        filters.append(Service.user_id == current_user.id)
    elif owner_id is not None:
        filters.append(Service.user_id == owner_id)
    if category is not None:
        filters.append(Service.category == category)

    count_query = select(func.count()).select_from(Service).where(*filters)
    total = (await db.execute(count_query)).scalar_one()

    items_query = select(Service).where(*filters).order_by(Service.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(items_query)
    items = list(result.scalars().all())

    return ServiceListResponse(
        items=[ServiceResponse.model_validate(s) for s in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/{service_id}",
    response_model=ServiceResponse,
    summary="Get a service listing by ID",
)
async def get_service(
    service_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ServiceResponse:
    service = await db.get(Service, service_id)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Service not found",
        )
    return ServiceResponse.model_validate(service)


@router.delete(
    "/{service_id}",
    response_model=MessageResponse,
    summary="Remove a service listing",
)
async def delete_service(
    service_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> MessageResponse:
    """Delete one of the current user's listings. Existing swaps keep their copied titles."""
    service = await db.get(Service, service_id)
    if service is None or service.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Service not found",
        )

    await db.delete(service)
    await db.flush()
    return MessageResponse(message="Service deleted")
