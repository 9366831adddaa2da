"""
Assignment coordinator.

Binds driver/vehicle pairs to loads, releases them, picks a pair
automatically and suggests backhauls. Availability is checked against the
live load collection inside the same transaction as the write, and the
assignment lock table catches races between processes.
"""

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from backend.app.models.load import Load
from backend.app.models.load_enums import LoadStatus, TrackingEventType
from backend.app.domain.loads import state_machine
from backend.app.services.event_log import EventLog
from backend.app.services.assignment_locks import (
    acquire_assignment_lock, release_assignment_lock, find_active_lock
)
from backend.app.services.fleet_directory import Candidate, FleetDirectory, fleet_directory
from backend.app.services.geo import distance_or_none, nearest_first_key
from backend.app.services.load_lifecycle import LoadLifecycleService, load_for_update
from backend.app.schemas.tracking import Location
from backend.app.db.types import utc_now
from backend.app.db.transaction import unit_of_work
from backend.app.core.locks import load_locks, resource_keys
from backend.app.core.config import settings
from backend.app.core.exceptions import (
    AlreadyAssignedError, DriverUnavailableError, VehicleUnavailableError,
    NoDriversAvailableError, InvalidTransitionError, TerminalLoadError, InvalidLoadError
)

logger = logging.getLogger(__name__)

UNASSIGNED_DESCRIPTION = "Driver unassigned from load"


# Geography

def distance_to_origin(load: Load, latitude, longitude) -> Optional[float]:
    """Km from a point to the load's origin stop, None if either is unknown."""
    origin = load.origin
    if origin is None or not origin.has_coordinates:
        return None
    return distance_or_none(latitude, longitude, origin.latitude, origin.longitude)


# Ranking strategies

class AssignmentStrategy:
    """Orders auto-assign candidates, best first."""
    name = "base"

    def rank(self, load: Load, candidates: List[Candidate]) -> List[Candidate]:
        raise NotImplementedError


class FirstAvailableStrategy(AssignmentStrategy):
    """Directory order (driver id)."""
    name = "first_available"

    def rank(self, load: Load, candidates: List[Candidate]) -> List[Candidate]:
        return sorted(candidates, key=lambda c: c.driver.id)


class ClosestToPickupStrategy(AssignmentStrategy):
    """Drivers nearest to the origin stop first; unknown positions last."""
    name = "closest_to_pickup"

    def rank(self, load: Load, candidates: List[Candidate]) -> List[Candidate]:
        for candidate in candidates:
            driver = candidate.driver
            candidate.distance_km = (
                distance_to_origin(load, driver.latitude, driver.longitude)
                if driver.has_location else None
            )
        return sorted(candidates, key=lambda c: (nearest_first_key(c.distance_km), c.driver.id))


STRATEGIES: Dict[str, AssignmentStrategy] = {
    strategy.name: strategy
    for strategy in (FirstAvailableStrategy(), ClosestToPickupStrategy())
}


def get_strategy(name: Optional[str] = None) -> AssignmentStrategy:
    name = name or settings.auto_assign_strategy
    strategy = STRATEGIES.get(name)
    if strategy is None:
        raise InvalidLoadError(
            f"Unknown assignment strategy '{name}'",
            details={"strategy": name, "available": sorted(STRATEGIES)}
        )
    return strategy


# Availability

async def _bound_load_id(db: AsyncSession, column, resource_id: str, load_id: int) -> Optional[int]:
    """Id of another load in an assigned status that references the resource."""
    return await db.scalar(
        select(Load.id).where(
            column == resource_id,
            Load.status.in_(state_machine.ASSIGNED_STATUSES),
            Load.id != load_id
        ).limit(1)
    )


def _same_company(load: Load, company_id: Optional[str]) -> bool:
    return load.company_id is None or company_id in (None, load.company_id)


# Operations

async def assign(
    db: AsyncSession,
    load_id: int,
    driver_id: str,
    vehicle_id: str,
    actor: str,
    fleet: FleetDirectory = None
) -> Load:
    """
    Bind a driver and vehicle to a pending load.

    Raises:
        ResourceNotFoundError: unknown load, driver or vehicle
        TerminalLoadError: load is delivered, completed or cancelled
        AlreadyAssignedError: load is not pending
        DriverUnavailableError / VehicleUnavailableError: resource inactive,
            owned by another company or already bound to another load
    """
    fleet = fleet or fleet_directory

    async with load_locks.hold(*resource_keys(load_id, driver_id, vehicle_id)):
        async with unit_of_work(db, "assign"):
            load = await load_for_update(db, load_id)

            if state_machine.is_terminal(load.status):
                raise TerminalLoadError(load_id, load.status.value)
            if load.status != LoadStatus.PENDING:
                logger.warning(
                    "Rejected assignment of load %s: already %s", load_id, load.status.value,
                    extra={"load_id": load_id, "driver_id": driver_id}
                )
                raise AlreadyAssignedError(load_id, load.status.value)

            driver = await fleet.get_driver(db, driver_id)
            vehicle = await fleet.get_vehicle(db, vehicle_id)
            if not driver.is_active:
                raise DriverUnavailableError(driver_id, load_id=load_id)
            if not vehicle.is_active:
                raise VehicleUnavailableError(vehicle_id, load_id=load_id)
            if not _same_company(load, driver.company_id):
                logger.warning(
                    "Rejected assignment of load %s: driver %s belongs to another company", load_id, driver_id,
                    extra={"load_id": load_id, "driver_id": driver_id}
                )
                raise DriverUnavailableError(driver_id, load_id=load_id)
            if not _same_company(load, vehicle.company_id):
                logger.warning(
                    "Rejected assignment of load %s: vehicle %s belongs to another company", load_id, vehicle_id,
                    extra={"load_id": load_id, "vehicle_id": vehicle_id}
                )
                raise VehicleUnavailableError(vehicle_id, load_id=load_id)

            if await _bound_load_id(db, Load.driver_id, driver_id, load_id) is not None \
                    or await find_active_lock(db, driver_id=driver_id) is not None:
                logger.warning(
                    "Rejected assignment of load %s: driver %s unavailable", load_id, driver_id,
                    extra={"load_id": load_id, "driver_id": driver_id}
                )
                raise DriverUnavailableError(driver_id, load_id=load_id)
            if await _bound_load_id(db, Load.vehicle_id, vehicle_id, load_id) is not None \
                    or await find_active_lock(db, vehicle_id=vehicle_id) is not None:
                logger.warning(
                    "Rejected assignment of load %s: vehicle %s unavailable", load_id, vehicle_id,
                    extra={"load_id": load_id, "vehicle_id": vehicle_id}
                )
                raise VehicleUnavailableError(vehicle_id, load_id=load_id)

            now = utc_now()
            load.driver_id = driver_id
            load.vehicle_id = vehicle_id
            load.status = LoadStatus.ASSIGNED
            load.updated_at = now

            await acquire_assignment_lock(db, load_id, driver_id, vehicle_id, actor)

            await EventLog.append(
                db,
                load_id,
                event_type=TrackingEventType.DISPATCHED,
                description=f"Load assigned to driver {driver_id}",
                actor=actor,
                timestamp=now,
                automatic=True,
            )

    logger.info(
        "Load %s assigned to driver %s with vehicle %s", load_id, driver_id, vehicle_id,
        extra={"load_id": load_id, "driver_id": driver_id, "vehicle_id": vehicle_id, "actor": actor}
    )
    return load


async def unassign(db: AsyncSession, load_id: int, actor: str) -> Load:
    """
    Release the driver and vehicle and put the load back to pending.

    Allowed from any non-terminal status with an assignment; stop progress
    is kept so a new driver picks up where the last one left off.

    Raises:
        TerminalLoadError: load is delivered, completed or cancelled
        InvalidTransitionError: load is pending with nothing to release
    """
    async with load_locks.hold(*resource_keys(load_id=load_id)):
        async with unit_of_work(db, "unassign"):
            load = await load_for_update(db, load_id)

            if state_machine.is_terminal(load.status):
                raise TerminalLoadError(load_id, load.status.value)
            if load.status == LoadStatus.PENDING and load.driver_id is None:
                raise InvalidTransitionError(
                    load_id, load.status.value, LoadStatus.PENDING.value,
                    reason=f"Load {load_id} has no driver to unassign"
                )

            previous = (load.status, load.driver_id, load.vehicle_id)
            now = utc_now()
            load.driver_id = None
            load.vehicle_id = None
            load.status = LoadStatus.PENDING
            load.updated_at = now

            await release_assignment_lock(db, load_id)

            await EventLog.append(
                db,
                load_id,
                event_type=TrackingEventType.EXCEPTION,
                description=UNASSIGNED_DESCRIPTION,
                actor=actor,
                timestamp=now,
                automatic=True,
            )

    logger.info(
        "Driver %s unassigned from load %s (was %s)", previous[1], load_id, previous[0].value,
        extra={"load_id": load_id, "driver_id": previous[1], "vehicle_id": previous[2], "actor": actor}
    )
    return load


async def auto_assign(
    db: AsyncSession,
    load_id: int,
    actor: str,
    strategy: Optional[str] = None,
    fleet: FleetDirectory = None
) -> Load:
    """
    Assign the best-ranked available driver/vehicle pair.

    Candidates that turn out to be taken by the time the assignment runs
    are skipped in rank order.

    Raises:
        NoDriversAvailableError: no qualifying pair
        AlreadyAssignedError / TerminalLoadError: load is not pending
    """
    fleet = fleet or fleet_directory
    ranking = get_strategy(strategy)

    async with load_locks.hold(*resource_keys(load_id=load_id)):
        load = await LoadLifecycleService.get_load(db, load_id)
        if state_machine.is_terminal(load.status):
            raise TerminalLoadError(load_id, load.status.value)
        if load.status != LoadStatus.PENDING:
            raise AlreadyAssignedError(load_id, load.status.value)

        ranked = ranking.rank(load, await fleet.candidates_for(db, load))
        pairs = [(candidate.driver.id, candidate.vehicle.id) for candidate in ranked]
        # Close the read transaction before assign opens its own
        await db.commit()

    if not pairs:
        logger.warning("No drivers available for load %s", load_id, extra={"load_id": load_id})
        raise NoDriversAvailableError(load_id)

    for driver_id, vehicle_id in pairs:
        try:
            return await assign(db, load_id, driver_id, vehicle_id, actor, fleet=fleet)
        except (DriverUnavailableError, VehicleUnavailableError):
            logger.info(
                "Candidate %s/%s for load %s taken meanwhile, trying next",
                driver_id, vehicle_id, load_id
            )

    raise NoDriversAvailableError(load_id)


async def suggest_backhaul(
    db: AsyncSession,
    driver_id: str,
    location: Optional[Location] = None,
    limit: Optional[int] = None,
    fleet: FleetDirectory = None
) -> List[Tuple[Load, Optional[float]]]:
    """
    Pending loads closest to the driver's position, nearest first.

    Falls back to the driver's last known position when no location is
    given. Loads whose origin has no coordinates come last.

    Returns:
        (load, distance_km) pairs, at most `limit` of them
    """
    fleet = fleet or fleet_directory
    driver = await fleet.get_driver(db, driver_id)
    limit = limit or settings.backhaul_suggestion_limit

    latitude = location.latitude if location and location.latitude is not None else driver.latitude
    longitude = location.longitude if location and location.longitude is not None else driver.longitude

    query = select(Load).where(Load.status == LoadStatus.PENDING)
    if driver.company_id is not None:
        query = query.where(Load.company_id == driver.company_id)
    pending = (await db.execute(
        query.order_by(Load.id).execution_options(populate_existing=True)
    )).scalars().all()

    scored = [(load, distance_to_origin(load, latitude, longitude)) for load in pending]

    scored.sort(key=lambda item: nearest_first_key(item[1]))
    return scored[:limit]
