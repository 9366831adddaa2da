"""
Stop sub-state tracker.

Records arrivals at and departures from the individual stops of a load.
Stop status only moves forward: pending -> arrived -> completed.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.load import Load
from backend.app.models.load_stop import LoadStop
from backend.app.models.load_enums import StopStatus, StopType, TrackingEventType
from backend.app.domain.loads import state_machine
from backend.app.services.event_log import EventLog
from backend.app.services.load_lifecycle import load_for_update
from backend.app.schemas.tracking import Location
from backend.app.db.types import utc_now
from backend.app.db.transaction import unit_of_work
from backend.app.core.locks import load_locks, resource_keys
from backend.app.core.exceptions import (
    ResourceNotFoundError, InvalidStopStateError, TerminalLoadError
)

logger = logging.getLogger(__name__)

ARRIVAL_EVENT_TYPES = {
    StopType.PICKUP: TrackingEventType.ARRIVED_PICKUP,
    StopType.DELIVERY: TrackingEventType.ARRIVED_DELIVERY,
    StopType.FUEL: TrackingEventType.ARRIVED_STOP,
    StopType.REST: TrackingEventType.ARRIVED_STOP,
}

DEPARTURE_EVENT_TYPES = {
    StopType.PICKUP: TrackingEventType.DEPARTED_PICKUP,
    StopType.DELIVERY: TrackingEventType.DEPARTED_DELIVERY,
    StopType.FUEL: TrackingEventType.DEPARTED_STOP,
    StopType.REST: TrackingEventType.DEPARTED_STOP,
}


def _stop_at(load: Load, stop_index: int) -> LoadStop:
    if stop_index < 0 or stop_index >= len(load.stops):
        raise ResourceNotFoundError("Stop", f"{load.id}/{stop_index}")
    return load.stops[stop_index]


async def _load_for_stop_update(db: AsyncSession, load_id: int) -> Load:
    load = await load_for_update(db, load_id)
    if state_machine.is_terminal(load.status):
        raise TerminalLoadError(load_id, load.status.value)
    return load


async def record_arrival(
    db: AsyncSession,
    load_id: int,
    stop_index: int,
    actor: str,
    location: Optional[Location] = None
) -> LoadStop:
    """
    Mark a pending stop as arrived and log it.

    Raises:
        ResourceNotFoundError: unknown load or stop index
        TerminalLoadError: load is delivered, completed or cancelled
        InvalidStopStateError: stop is not pending
    """
    async with load_locks.hold(*resource_keys(load_id=load_id)):
        async with unit_of_work(db, "record_arrival"):
            load = await _load_for_stop_update(db, load_id)
            stop = _stop_at(load, stop_index)

            if stop.status != StopStatus.PENDING:
                logger.warning(
                    "Rejected arrival at stop %s of load %s (stop is %s)",
                    stop_index, load_id, stop.status.value
                )
                raise InvalidStopStateError(
                    load_id, stop_index, stop.status.value,
                    message=f"Arrival already recorded at stop {stop_index} of load {load_id}"
                )

            now = utc_now()
            stop.status = StopStatus.ARRIVED
            stop.arrival_time = now
            # Touch the load row so the write is checked against its version
            load.updated_at = now

            await EventLog.append(
                db,
                load_id,
                event_type=ARRIVAL_EVENT_TYPES[stop.stop_type],
                description=f"Arrived at {stop.facility_name}",
                actor=actor,
                timestamp=now,
                automatic=True,
                latitude=location.latitude if location else stop.latitude,
                longitude=location.longitude if location else stop.longitude,
                address=(location.address if location and location.address else stop.address),
            )

    logger.info(
        "Arrival recorded at stop %s of load %s", stop_index, load_id,
        extra={"load_id": load_id, "stop_index": stop_index, "actor": actor}
    )
    return stop


async def record_departure(
    db: AsyncSession,
    load_id: int,
    stop_index: int,
    actor: str
) -> LoadStop:
    """
    Mark an arrived stop as completed and log it.

    Departing the origin also stamps the load's actual pickup time.

    Raises:
        ResourceNotFoundError: unknown load or stop index
        TerminalLoadError: load is delivered, completed or cancelled
        InvalidStopStateError: stop is not arrived
    """
    async with load_locks.hold(*resource_keys(load_id=load_id)):
        async with unit_of_work(db, "record_departure"):
            load = await _load_for_stop_update(db, load_id)
            stop = _stop_at(load, stop_index)

            if stop.status != StopStatus.ARRIVED:
                logger.warning(
                    "Rejected departure from stop %s of load %s (stop is %s)",
                    stop_index, load_id, stop.status.value
                )
                raise InvalidStopStateError(
                    load_id, stop_index, stop.status.value,
                    message=f"Stop {stop_index} of load {load_id} must be arrived before departure (is {stop.status.value})"
                )

            now = utc_now()
            stop.status = StopStatus.COMPLETED
            stop.departure_time = now
            load.updated_at = now
            if stop_index == 0 and load.actual_pickup_time is None:
                load.actual_pickup_time = now

            await EventLog.append(
                db,
                load_id,
                event_type=DEPARTURE_EVENT_TYPES[stop.stop_type],
                description=f"Departed {stop.facility_name}",
                actor=actor,
                timestamp=now,
                automatic=True,
                latitude=stop.latitude,
                longitude=stop.longitude,
                address=stop.address,
            )

    logger.info(
        "Departure recorded from stop %s of load %s", stop_index, load_id,
        extra={"load_id": load_id, "stop_index": stop_index, "actor": actor}
    )
    return stop
