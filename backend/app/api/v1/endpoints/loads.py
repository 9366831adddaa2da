"""
Load API Endpoints.

Create, read, edit and delete loads, move them through their lifecycle
and read or extend their tracking history.
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.models.enums import UserRole
from backend.app.models.load import Load
from backend.app.models.load_enums import LoadStatus
from backend.app.schemas.load import (
    LoadCreate, LoadUpdate, LoadResponse, LoadListResponse, TransitionRequest
)
from backend.app.schemas.tracking import (
    TrackingEventCreate, TrackingEventResponse, TrackingEventListResponse
)
from backend.app.services.load_lifecycle import LoadLifecycleService
from backend.app.services.event_log import EventLog, add_tracking_event
from backend.app.core.guards import require_role, CompanyScopeGuard, actor_of

router = APIRouter(prefix="/loads", tags=["Loads"])

company_guard = CompanyScopeGuard()

ALL_ROLES = [UserRole.DISPATCHER, UserRole.DRIVER]


async def get_scoped_load(db: AsyncSession, load_id: int, current_user: dict) -> Load:
    """Fetch a load and apply tenant / driver scoping."""
    load = await LoadLifecycleService.get_load(db, load_id)
    company_guard.enforce(load, current_user)
    return load


@router.post("", response_model=LoadResponse, status_code=status.HTTP_201_CREATED)
async def create_load(
    load_in: LoadCreate,
    current_user: dict = Depends(require_role([UserRole.DISPATCHER])),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a load (Dispatcher/Admin).

    The load starts pending with a `created` tracking event.
    Non-admin callers always create loads in their own company.
    """
    company_id = company_guard.filter_by_company(current_user)
    if company_id is None:
        company_id = load_in.company_id
    return await LoadLifecycleService.create_load(db, load_in, actor_of(current_user), company_id=company_id)


@router.get("", response_model=LoadListResponse)
async def list_loads(
    load_status: Optional[LoadStatus] = Query(None, alias="status"),
    driver_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """List loads visible to the caller. Drivers only see their own."""
    if current_user["role"] == UserRole.DRIVER.value:
        driver_id = current_user["driver_id"]

    loads, total = await LoadLifecycleService.list_loads(
        db,
        status=load_status,
        driver_id=driver_id,
        company_id=company_guard.filter_by_company(current_user),
        limit=limit,
        offset=offset,
    )
    return LoadListResponse(
        loads=[LoadResponse.model_validate(load) for load in loads],
        total=total
    )


@router.get("/{load_id}", response_model=LoadResponse)
async def get_load(
    load_id: int = Path(..., description="Load ID"),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    return await get_scoped_load(db, load_id, current_user)


@router.patch("/{load_id}", response_model=LoadResponse)
async def update_load(
    updates: LoadUpdate,
    load_id: int = Path(..., description="Load ID"),
    current_user: dict = Depends(require_role([UserRole.DISPATCHER])),
    db: AsyncSession = Depends(get_db)
):
    """Edit freight, charge and date fields of a non-terminal load."""
    await get_scoped_load(db, load_id, current_user)
    return await LoadLifecycleService.update_load(db, load_id, updates, actor_of(current_user))


@router.delete("/{load_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_load(
    load_id: int = Path(..., description="Load ID"),
    current_user: dict = Depends(require_role([UserRole.DISPATCHER])),
    db: AsyncSession = Depends(get_db)
):
    """Remove a pending or cancelled load together with its history."""
    await get_scoped_load(db, load_id, current_user)
    await LoadLifecycleService.delete_load(db, load_id)


@router.post("/{load_id}/transition", response_model=LoadResponse)
async def transition_load(
    request: TransitionRequest,
    load_id: int = Path(..., description="Load ID"),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """
    Move a load to its next status, or cancel it.

    Only dispatchers may cancel; drivers advance their own loads.
    """
    await get_scoped_load(db, load_id, current_user)
    if request.target_status == LoadStatus.CANCELLED and current_user["role"] == UserRole.DRIVER.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Drivers cannot cancel loads"
        )
    return await LoadLifecycleService.transition(db, load_id, request.target_status, actor_of(current_user))


@router.get("/{load_id}/events", response_model=TrackingEventListResponse)
async def list_load_events(
    load_id: int = Path(..., description="Load ID"),
    order: str = Query("insertion", pattern="^(insertion|timestamp)$"),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """Tracking history in insertion order, or by event timestamp."""
    await get_scoped_load(db, load_id, current_user)
    if order == "timestamp":
        events = await EventLog.history(db, load_id)
    else:
        events = await EventLog.list_events(db, load_id)
    return TrackingEventListResponse(
        events=[TrackingEventResponse.model_validate(event) for event in events],
        total=len(events)
    )


@router.post("/{load_id}/events", response_model=TrackingEventResponse, status_code=status.HTTP_201_CREATED)
async def create_load_event(
    event_in: TrackingEventCreate,
    load_id: int = Path(..., description="Load ID"),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """Record a user-attested exception (delay, breakdown, note)."""
    await get_scoped_load(db, load_id, current_user)
    return await add_tracking_event(
        db,
        load_id,
        event_type=event_in.event_type,
        description=event_in.description,
        actor=actor_of(current_user),
        timestamp=event_in.timestamp,
        latitude=event_in.latitude,
        longitude=event_in.longitude,
        address=event_in.address,
    )
