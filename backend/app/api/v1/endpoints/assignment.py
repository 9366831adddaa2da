"""
Assignment API Endpoints.

Dispatchers bind drivers and vehicles to loads; drivers ask for backhauls.
"""

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.models.enums import UserRole
from backend.app.schemas.load import LoadResponse
from backend.app.schemas.assignment import (
    AssignRequest, AutoAssignRequest, BackhaulRequest, BackhaulResponse, BackhaulSuggestion
)
from backend.app.services import assignment
from backend.app.services.fleet_directory import fleet_directory
from backend.app.core.guards import require_role, actor_of
from backend.app.api.v1.endpoints.loads import get_scoped_load, company_guard

router = APIRouter(prefix="/loads", tags=["Dispatch - Assignment"])
driver_router = APIRouter(prefix="/drivers", tags=["Dispatch - Backhaul"])


@router.post("/{load_id}/assign", response_model=LoadResponse)
async def assign_load(
    request: AssignRequest,
    load_id: int = Path(..., description="Load ID"),
    current_user: dict = Depends(require_role([UserRole.DISPATCHER])),
    db: AsyncSession = Depends(get_db)
):
    """
    Assign a driver and vehicle to a pending load.

    Validates:
    - Load is pending
    - Driver and vehicle exist, are active and not bound to another load
    """
    await get_scoped_load(db, load_id, current_user)
    return await assignment.assign(
        db, load_id, request.driver_id, request.vehicle_id, actor_of(current_user)
    )


@router.post("/{load_id}/unassign", response_model=LoadResponse)
async def unassign_load(
    load_id: int = Path(..., description="Load ID"),
    current_user: dict = Depends(require_role([UserRole.DISPATCHER])),
    db: AsyncSession = Depends(get_db)
):
    """Release the driver and vehicle; the load goes back to pending."""
    await get_scoped_load(db, load_id, current_user)
    return await assignment.unassign(db, load_id, actor_of(current_user))


@router.post("/{load_id}/auto-assign", response_model=LoadResponse)
async def auto_assign_load(
    request: AutoAssignRequest = None,
    load_id: int = Path(..., description="Load ID"),
    current_user: dict = Depends(require_role([UserRole.DISPATCHER])),
    db: AsyncSession = Depends(get_db)
):
    await get_scoped_load(db, load_id, current_user)
    strategy = request.strategy if request else None
    return await assignment.auto_assign(db, load_id, actor_of(current_user), strategy=strategy)


@driver_router.post("/{driver_id}/backhaul", response_model=BackhaulResponse)
async def suggest_backhaul(
    request: BackhaulRequest,
    driver_id: str = Path(..., description="Fleet driver ID"),
    current_user: dict = Depends(require_role([UserRole.DISPATCHER, UserRole.DRIVER])),
    db: AsyncSession = Depends(get_db)
):
    """Pending loads near the driver, nearest first."""
    if current_user["role"] == UserRole.DRIVER.value and current_user.get("driver_id") != driver_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Drivers can only request backhauls for themselves"
        )
    company_guard.enforce_driver(await fleet_directory.get_driver(db, driver_id), current_user)

    suggestions = await assignment.suggest_backhaul(
        db, driver_id, location=request.location, limit=request.limit
    )
    return BackhaulResponse(
        driver_id=driver_id,
        suggestions=[
            BackhaulSuggestion(
                load=LoadResponse.model_validate(load),
                distance_km=round(distance, 2) if distance is not None else None
            )
            for load, distance in suggestions
        ]
    )
