"""
Load lifecycle service.

Creation, editing, deletion and generic status transitions of loads.
Every mutation runs under the load's logical lock, inside one
transaction, against a freshly re-read row.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, delete

from backend.app.models.load import Load
from backend.app.models.load_stop import LoadStop
from backend.app.models.tracking_event import TrackingEvent
from backend.app.models.assignment_lock import AssignmentLock
from backend.app.models.load_enums import LoadStatus, StopType, StopStatus, TrackingEventType
from backend.app.domain.loads import state_machine
from backend.app.services.event_log import EventLog
from backend.app.services.assignment_locks import release_assignment_lock
from backend.app.schemas.load import LoadCreate, LoadUpdate
from backend.app.db.types import utc_now, as_utc
from backend.app.db.transaction import unit_of_work
from backend.app.core.locks import load_locks, resource_keys
from backend.app.core.config import settings
from backend.app.core.exceptions import (
    AppException, ResourceNotFoundError, InvalidLoadError,
    InvalidTransitionError, TerminalLoadError
)

logger = logging.getLogger(__name__)

CREATED_DESCRIPTION = "Load created and ready for assignment"


async def load_for_update(db: AsyncSession, load_id: int) -> Load:
    """
    Re-read the authoritative load row, locking it for the transaction.

    Identity-map state is overwritten so checks never run against a
    stale in-memory copy.
    """
    result = await db.execute(
        select(Load)
        .where(Load.id == load_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    load = result.scalar_one_or_none()
    if not load:
        raise ResourceNotFoundError("Load", load_id)
    return load


def compute_total_charges(rate: float, fuel_surcharge: float, accessorials: List[dict]) -> float:
    total = (rate or 0.0) + (fuel_surcharge or 0.0)
    total += sum(item.get("amount", 0.0) for item in accessorials or [])
    return round(total, 2)


def format_load_number(load_id: int, created_at, prefix: str = None) -> str:
    prefix = settings.load_number_prefix if prefix is None else prefix
    return f"{prefix}{created_at:%Y%m%d}-{load_id:06d}"


def _validate_stops(stops) -> None:
    if len(stops) < 2:
        raise InvalidLoadError(
            "A load needs at least two stops",
            details={"stop_count": len(stops)}
        )
    if stops[0].stop_type != StopType.PICKUP:
        raise InvalidLoadError("The first stop must be a pickup", details={"stop_type": stops[0].stop_type.value})
    if stops[-1].stop_type != StopType.DELIVERY:
        raise InvalidLoadError("The last stop must be a delivery", details={"stop_type": stops[-1].stop_type.value})


def _validate_dates(pickup_date, delivery_date) -> None:
    if delivery_date < pickup_date:
        raise InvalidLoadError(
            "Delivery date cannot be before pickup date",
            details={"pickup_date": pickup_date.isoformat(), "delivery_date": delivery_date.isoformat()}
        )


def _apply_stop_effects(load: Load, target: LoadStatus, now) -> None:
    """Stop sub-state changes implied by entering `target`."""
    if target == LoadStatus.LOADED:
        if load.actual_pickup_time is None:
            load.actual_pickup_time = now
        origin = load.origin
        if origin is not None and origin.status != StopStatus.COMPLETED:
            if origin.arrival_time is None:
                origin.arrival_time = now
            origin.departure_time = now
            origin.status = StopStatus.COMPLETED

    elif target == LoadStatus.AT_DELIVERY:
        destination = load.destination
        if destination is not None and destination.status == StopStatus.PENDING:
            destination.arrival_time = now
            destination.status = StopStatus.ARRIVED


class LoadLifecycleService:

    @staticmethod
    async def create_load(
        db: AsyncSession,
        load_in: LoadCreate,
        actor: str,
        company_id: Optional[str] = None
    ) -> Load:
        """
        Create a pending load with its stops and a `created` event.

        Raises:
            InvalidLoadError: fewer than two stops, wrong stop types or dates
        """
        _validate_stops(load_in.stops)
        pickup_date = as_utc(load_in.pickup_date)
        delivery_date = as_utc(load_in.delivery_date)
        _validate_dates(pickup_date, delivery_date)

        accessorials = [item.model_dump() for item in load_in.accessorials]

        async with unit_of_work(db, "create_load"):
            now = utc_now()
            load = Load(
                company_id=company_id,
                customer_id=load_in.customer_id,
                status=LoadStatus.PENDING,
                priority=load_in.priority,
                commodity=load_in.commodity,
                weight=load_in.weight,
                pieces=load_in.pieces,
                equipment_type=load_in.equipment_type,
                hazmat=load_in.hazmat,
                hazmat_class=load_in.hazmat_class,
                notes=load_in.notes,
                rate=load_in.rate,
                fuel_surcharge=load_in.fuel_surcharge,
                accessorials=accessorials,
                total_charges=compute_total_charges(load_in.rate, load_in.fuel_surcharge, accessorials),
                pickup_date=pickup_date,
                delivery_date=delivery_date,
                created_at=now,
                updated_at=now,
                proof_of_delivery=None,
            )
            load.stops = [
                LoadStop(
                    sequence=index,
                    stop_type=stop.stop_type,
                    facility_name=stop.facility_name,
                    address=stop.address,
                    latitude=stop.latitude,
                    longitude=stop.longitude,
                    appointment_time=as_utc(stop.appointment_time),
                    instructions=stop.instructions,
                    status=StopStatus.PENDING,
                )
                for index, stop in enumerate(load_in.stops)
            ]
            db.add(load)
            await db.flush()  # Assigns load.id

            load.load_number = format_load_number(load.id, now)

            await EventLog.append(
                db,
                load.id,
                event_type=TrackingEventType.CREATED,
                description=CREATED_DESCRIPTION,
                actor=actor,
                timestamp=now,
                automatic=True,
            )

        logger.info(
            "Load %s created", load.load_number,
            extra={"load_id": load.id, "actor": actor, "company_id": company_id}
        )
        return load

    @staticmethod
    async def get_load(db: AsyncSession, load_id: int) -> Load:
        result = await db.execute(
            select(Load)
            .where(Load.id == load_id)
            .execution_options(populate_existing=True)
        )
        load = result.scalar_one_or_none()
        if not load:
            raise ResourceNotFoundError("Load", load_id)
        return load

    @staticmethod
    async def list_loads(
        db: AsyncSession,
        status: Optional[LoadStatus] = None,
        driver_id: Optional[str] = None,
        company_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> Tuple[List[Load], int]:
        """Filtered loads, newest first, with the unpaginated total."""
        filters = []
        if status is not None:
            filters.append(Load.status == status)
        if driver_id is not None:
            filters.append(Load.driver_id == driver_id)
        if company_id is not None:
            filters.append(Load.company_id == company_id)

        total = await db.scalar(select(func.count(Load.id)).where(*filters))

        result = await db.execute(
            select(Load)
            .where(*filters)
            .order_by(Load.created_at.desc(), Load.id.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all()), total or 0

    @staticmethod
    async def update_load(db: AsyncSession, load_id: int, updates: LoadUpdate, actor: str) -> Load:
        """
        Edit descriptive and charge fields of a non-terminal load.

        Raises:
            TerminalLoadError: load is delivered, completed or cancelled
            InvalidLoadError: resulting dates are inconsistent
        """
        changes = updates.model_dump(exclude_unset=True)

        async with load_locks.hold(*resource_keys(load_id=load_id)):
            async with unit_of_work(db, "update_load"):
                load = await load_for_update(db, load_id)
                if state_machine.is_terminal(load.status):
                    raise TerminalLoadError(load_id, load.status.value)

                for field in ("pickup_date", "delivery_date"):
                    if changes.get(field) is not None:
                        changes[field] = as_utc(changes[field])
                _validate_dates(
                    changes.get("pickup_date") or load.pickup_date,
                    changes.get("delivery_date") or load.delivery_date,
                )

                for field, value in changes.items():
                    if value is None and field not in ("notes", "hazmat_class", "customer_id"):
                        continue
                    setattr(load, field, value)

                load.total_charges = compute_total_charges(load.rate, load.fuel_surcharge, load.accessorials)
                load.updated_at = utc_now()

        logger.info(
            "Load %s updated", load_id,
            extra={"load_id": load_id, "actor": actor, "fields": sorted(changes)}
        )
        return load

    @staticmethod
    async def delete_load(db: AsyncSession, load_id: int) -> None:
        """
        Hard-delete an erroneous or test load with all of its history.

        Only pending and cancelled loads can be removed.
        """
        async with load_locks.hold(*resource_keys(load_id=load_id)):
            async with unit_of_work(db, "delete_load"):
                load = await load_for_update(db, load_id)
                if load.status not in (LoadStatus.PENDING, LoadStatus.CANCELLED):
                    if state_machine.is_terminal(load.status):
                        raise TerminalLoadError(load_id, load.status.value)
                    raise InvalidTransitionError(
                        load_id, load.status.value, "deleted",
                        reason=f"Load {load_id} is {load.status.value}; unassign or cancel it before deleting"
                    )

                await db.execute(delete(TrackingEvent).where(TrackingEvent.load_id == load_id))
                await db.execute(delete(AssignmentLock).where(AssignmentLock.load_id == load_id))
                await db.delete(load)

        logger.info("Load %s deleted", load_id, extra={"load_id": load_id})

    @staticmethod
    async def transition(db: AsyncSession, load_id: int, target: LoadStatus, actor: str) -> Load:
        """
        Move a load one step forward, or cancel it.

        Status, stop side effects and the tracking event commit together.

        Raises:
            ResourceNotFoundError: unknown load
            InvalidTransitionError: target not reachable from the current status
            MissingProofOfDeliveryError: delivered requested without a POD
        """
        async with load_locks.hold(*resource_keys(load_id=load_id)):
            async with unit_of_work(db, "transition"):
                load = await load_for_update(db, load_id)
                current = load.status

                try:
                    state_machine.validate_transition(load_id, current, target)
                except AppException as exc:
                    logger.warning(
                        "Rejected transition of load %s from %s to %s: %s",
                        load_id, current.value, target.value, exc.error_code
                    )
                    raise

                now = utc_now()
                load.status = target
                load.updated_at = now
                _apply_stop_effects(load, target, now)

                if target == LoadStatus.CANCELLED:
                    await release_assignment_lock(db, load_id)

                await EventLog.append(
                    db,
                    load_id,
                    event_type=state_machine.STATUS_EVENT_TYPES[target],
                    description=state_machine.STATUS_DESCRIPTIONS[target],
                    actor=actor,
                    timestamp=now,
                    automatic=True,
                )

        logger.info(
            "Load %s moved from %s to %s", load_id, current.value, target.value,
            extra={"load_id": load_id, "from_status": current.value, "to_status": target.value, "actor": actor}
        )
        return load
