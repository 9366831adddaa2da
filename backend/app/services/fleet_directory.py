"""
Fleet directory client.

Read-only access to the fleet collaborator's drivers and vehicles. Lookups
go through the fleet circuit breaker so a failing directory is cut off
quickly instead of stalling every dispatch request.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from backend.app.models.fleet_driver import FleetDriver
from backend.app.models.fleet_vehicle import FleetVehicle
from backend.app.models.load import Load
from backend.app.models.assignment_lock import AssignmentLock
from backend.app.domain.loads.state_machine import ASSIGNED_STATUSES
from backend.app.core.reliability import CircuitBreaker, CircuitOpenError, fleet_circuit_breaker
from backend.app.core.exceptions import ResourceNotFoundError, StorageFailureError

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    """A driver and the vehicle they would take the load with."""
    driver: FleetDriver
    vehicle: FleetVehicle
    distance_km: Optional[float] = None


class FleetDirectory:

    def __init__(self, breaker: CircuitBreaker = None):
        self.breaker = breaker or fleet_circuit_breaker

    async def _call(self, func, *args):
        try:
            return await self.breaker.call(func, *args)
        except CircuitOpenError as exc:
            logger.error("Fleet directory circuit open, rejecting lookup")
            raise StorageFailureError(
                message="Fleet directory unavailable",
                details={"collaborator": "fleet"}
            ) from exc
        except SQLAlchemyError as exc:
            logger.error("Fleet directory lookup failed: %s", exc)
            raise StorageFailureError(
                message="Fleet directory lookup failed",
                details={"collaborator": "fleet", "error": type(exc).__name__}
            ) from exc

    async def get_driver(self, db: AsyncSession, driver_id: str) -> FleetDriver:
        driver = await self._call(db.get, FleetDriver, driver_id)
        if not driver:
            raise ResourceNotFoundError("Driver", driver_id)
        return driver

    async def get_vehicle(self, db: AsyncSession, vehicle_id: str) -> FleetVehicle:
        vehicle = await self._call(db.get, FleetVehicle, vehicle_id)
        if not vehicle:
            raise ResourceNotFoundError("Vehicle", vehicle_id)
        return vehicle

    async def candidates_for(self, db: AsyncSession, load: Load) -> List[Candidate]:
        """
        Driver/vehicle pairs that could take the load right now.

        A pair qualifies when both are active, neither is bound to a load in
        an assigned status, the vehicle carries the load's equipment type and,
        for hazmat freight, the driver holds the endorsement. Drivers keep
        their default vehicle when it fits; otherwise they are paired with a
        free matching vehicle from the pool.
        """
        return await self._call(self._candidates_for, db, load)

    async def _candidates_for(self, db: AsyncSession, load: Load) -> List[Candidate]:
        bound_drivers = set((await db.execute(
            select(Load.driver_id).where(
                Load.status.in_(ASSIGNED_STATUSES),
                Load.driver_id.is_not(None)
            )
        )).scalars().all())
        bound_vehicles = set((await db.execute(
            select(Load.vehicle_id).where(
                Load.status.in_(ASSIGNED_STATUSES),
                Load.vehicle_id.is_not(None)
            )
        )).scalars().all())

        locks = (await db.execute(
            select(AssignmentLock).where(AssignmentLock.released_at.is_(None))
        )).scalars().all()
        bound_drivers.update(lock.driver_id for lock in locks)
        bound_vehicles.update(lock.vehicle_id for lock in locks)

        driver_query = select(FleetDriver).where(FleetDriver.is_active.is_(True)).order_by(FleetDriver.id)
        vehicle_query = select(FleetVehicle).where(
            FleetVehicle.is_active.is_(True),
            FleetVehicle.equipment_type == load.equipment_type
        ).order_by(FleetVehicle.id)
        if load.company_id is not None:
            driver_query = driver_query.where(FleetDriver.company_id == load.company_id)
            vehicle_query = vehicle_query.where(FleetVehicle.company_id == load.company_id)
        if load.hazmat:
            driver_query = driver_query.where(FleetDriver.hazmat_endorsed.is_(True))

        drivers = (await db.execute(driver_query)).scalars().all()
        vehicles = {
            vehicle.id: vehicle
            for vehicle in (await db.execute(vehicle_query)).scalars().all()
            if vehicle.id not in bound_vehicles
        }

        candidates = []
        claimed = set()
        for driver in drivers:
            if driver.id in bound_drivers:
                continue
            vehicle = vehicles.get(driver.default_vehicle_id)
            if vehicle is None or vehicle.id in claimed:
                vehicle = next(
                    (v for v_id, v in vehicles.items()
                     if v_id not in claimed and not _is_default_of_other(v_id, driver, drivers)),
                    None
                )
            if vehicle is None:
                continue
            claimed.add(vehicle.id)
            candidates.append(Candidate(driver=driver, vehicle=vehicle))

        return candidates


def _is_default_of_other(vehicle_id: str, driver: FleetDriver, drivers) -> bool:
    return any(
        other.id != driver.id and other.default_vehicle_id == vehicle_id
        for other in drivers
    )


fleet_directory = FleetDirectory()
