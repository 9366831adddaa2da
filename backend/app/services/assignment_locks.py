"""
Assignment lock service.

Storage-level guard for driver/vehicle exclusivity. Every binding of a
driver and vehicle to a load holds one unreleased lock row; the partial
unique indexes reject a second one.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError

from backend.app.models.assignment_lock import AssignmentLock
from backend.app.db.types import utc_now
from backend.app.core.exceptions import DriverUnavailableError, VehicleUnavailableError

logger = logging.getLogger(__name__)


async def acquire_assignment_lock(
    db: AsyncSession,
    load_id: int,
    driver_id: str,
    vehicle_id: str,
    actor: str
) -> AssignmentLock:
    """
    Insert the lock row for a new assignment.

    Flushes immediately so a collision with another process's lock shows
    up here rather than at commit.

    Raises:
        DriverUnavailableError / VehicleUnavailableError: lock already held
    """
    lock = AssignmentLock(
        load_id=load_id,
        driver_id=driver_id,
        vehicle_id=vehicle_id,
        locked_by=actor,
        locked_at=utc_now(),
        released_at=None
    )

    db.add(lock)
    try:
        await db.flush()
    except IntegrityError as exc:
        logger.warning(
            "Assignment lock collision for load %s (driver=%s, vehicle=%s)",
            load_id, driver_id, vehicle_id
        )
        if "vehicle" in str(exc.orig).lower():
            raise VehicleUnavailableError(vehicle_id, load_id=load_id) from exc
        raise DriverUnavailableError(driver_id, load_id=load_id) from exc

    return lock


async def find_active_lock(
    db: AsyncSession,
    driver_id: Optional[str] = None,
    vehicle_id: Optional[str] = None
) -> Optional[AssignmentLock]:
    """Unreleased lock held by the driver or the vehicle, if any."""
    clauses = []
    if driver_id:
        clauses.append(AssignmentLock.driver_id == driver_id)
    if vehicle_id:
        clauses.append(AssignmentLock.vehicle_id == vehicle_id)
    if not clauses:
        return None

    result = await db.execute(
        select(AssignmentLock).where(
            or_(*clauses),
            AssignmentLock.released_at.is_(None)
        ).limit(1)
    )
    return result.scalar_one_or_none()


async def release_assignment_lock(db: AsyncSession, load_id: int) -> bool:
    """
    Release the load's active lock.

    Returns:
        True if a lock was released, False if the load held none
    """
    result = await db.execute(
        select(AssignmentLock).where(
            AssignmentLock.load_id == load_id,
            AssignmentLock.released_at.is_(None)
        )
    )
    locks = result.scalars().all()

    if not locks:
        return False

    for lock in locks:
        lock.released_at = utc_now()
    await db.flush()

    return True
