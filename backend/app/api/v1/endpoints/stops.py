"""
Stop and Delivery API Endpoints.

Drivers record arrivals and departures at stops and submit proof of
delivery; dispatchers may record them on a driver's behalf.
"""

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.models.enums import UserRole
from backend.app.schemas.load import LoadResponse, StopResponse
from backend.app.schemas.tracking import Location
from backend.app.schemas.proof_of_delivery import ProofOfDeliveryCreate
from backend.app.services.stop_tracker import record_arrival, record_departure
from backend.app.services.proof_of_delivery import submit_proof_of_delivery
from backend.app.core.guards import require_role, actor_of
from backend.app.api.v1.endpoints.loads import get_scoped_load

router = APIRouter(prefix="/loads", tags=["Dispatch - Stops & Delivery"])

STOP_ROLES = [UserRole.DISPATCHER, UserRole.DRIVER]


@router.post("/{load_id}/stops/{stop_index}/arrival", response_model=StopResponse)
async def arrive_at_stop(
    location: Location = None,
    load_id: int = Path(..., description="Load ID"),
    stop_index: int = Path(..., ge=0, description="Position of the stop in the route"),
    current_user: dict = Depends(require_role(STOP_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    await get_scoped_load(db, load_id, current_user)
    return await record_arrival(db, load_id, stop_index, actor_of(current_user), location=location)


@router.post("/{load_id}/stops/{stop_index}/departure", response_model=StopResponse)
async def depart_from_stop(
    load_id: int = Path(..., description="Load ID"),
    stop_index: int = Path(..., ge=0, description="Position of the stop in the route"),
    current_user: dict = Depends(require_role(STOP_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    await get_scoped_load(db, load_id, current_user)
    return await record_departure(db, load_id, stop_index, actor_of(current_user))


@router.post("/{load_id}/proof-of-delivery", response_model=LoadResponse)
async def submit_pod(
    pod_in: ProofOfDeliveryCreate,
    load_id: int = Path(..., description="Load ID"),
    current_user: dict = Depends(require_role(STOP_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """
    Submit proof of delivery (Driver/Dispatcher).

    Moves the load to delivered and frees its driver and vehicle.
    """
    await get_scoped_load(db, load_id, current_user)
    return await submit_proof_of_delivery(db, load_id, pod_in, actor_of(current_user))
