"""
Proof-of-delivery finalizer.

The only way a load becomes `delivered`.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.load import Load
from backend.app.models.proof_of_delivery import ProofOfDelivery
from backend.app.models.load_enums import LoadStatus, StopStatus, TrackingEventType
from backend.app.domain.loads import state_machine
from backend.app.services.event_log import EventLog
from backend.app.services.assignment_locks import release_assignment_lock
from backend.app.services.load_lifecycle import load_for_update
from backend.app.schemas.proof_of_delivery import ProofOfDeliveryCreate
from backend.app.db.types import utc_now, as_utc
from backend.app.db.transaction import unit_of_work
from backend.app.core.locks import load_locks, resource_keys
from backend.app.core.config import settings
from backend.app.core.exceptions import (
    InvalidTransitionError, InvalidStopStateError, TerminalLoadError, InvalidLoadError
)

logger = logging.getLogger(__name__)


def _check_stops_ready(load: Load) -> None:
    terminal_index = len(load.stops) - 1
    terminal = load.stops[terminal_index]
    if terminal.status == StopStatus.PENDING:
        raise InvalidStopStateError(
            load.id, terminal_index, terminal.status.value,
            message=f"Arrival at the final stop of load {load.id} has not been recorded"
        )
    for stop in load.stops[:terminal_index]:
        if stop.status == StopStatus.PENDING:
            raise InvalidStopStateError(
                load.id, stop.sequence, stop.status.value,
                message=f"Stop {stop.sequence} of load {load.id} was never reached"
            )


def _check_delivery_time(load: Load, delivered_at: datetime) -> None:
    picked_up_at = as_utc(load.actual_pickup_time)
    if picked_up_at is not None and delivered_at < picked_up_at:
        raise InvalidLoadError(
            f"Delivery time of load {load.id} is before its pickup",
            details={"delivered_at": delivered_at.isoformat(), "actual_pickup_time": picked_up_at.isoformat()}
        )
    latest = utc_now() + timedelta(seconds=settings.pod_clock_skew_seconds)
    if delivered_at > latest:
        raise InvalidLoadError(
            f"Delivery time of load {load.id} is in the future",
            details={"delivered_at": delivered_at.isoformat()}
        )


async def submit_proof_of_delivery(
    db: AsyncSession,
    load_id: int,
    pod_in: ProofOfDeliveryCreate,
    actor: str
) -> Load:
    """
    Store the POD and close the load out as delivered.

    Flow:
    1. Load must be at_delivery with the final stop reached
    2. Store the POD, complete the final stop
    3. Status delivered, actual delivery time from the POD
    4. Release the driver/vehicle and log the delivery

    Raises:
        TerminalLoadError: load is already delivered, completed or cancelled
        InvalidTransitionError: load has not arrived at delivery yet
        InvalidStopStateError: final stop not reached, or an earlier stop skipped
        InvalidLoadError: delivery time before pickup or in the future
    """
    delivered_at = as_utc(pod_in.delivered_at)

    async with load_locks.hold(*resource_keys(load_id=load_id)):
        async with unit_of_work(db, "submit_proof_of_delivery"):
            load = await load_for_update(db, load_id)

            if state_machine.is_terminal(load.status):
                raise TerminalLoadError(load_id, load.status.value)
            if load.status != LoadStatus.AT_DELIVERY:
                logger.warning(
                    "Rejected POD for load %s in status %s", load_id, load.status.value,
                    extra={"load_id": load_id}
                )
                raise InvalidTransitionError(
                    load_id, load.status.value, LoadStatus.DELIVERED.value,
                    reason=f"Load {load_id} must be at_delivery to submit proof of delivery"
                )
            _check_stops_ready(load)
            _check_delivery_time(load, delivered_at)

            load.proof_of_delivery = ProofOfDelivery(
                signed_by=pod_in.signed_by,
                delivered_at=delivered_at,
                signature_url=pod_in.signature_url,
                pieces=pod_in.pieces,
                condition=pod_in.condition,
                notes=pod_in.notes,
                photos=list(pod_in.photos),
                submitted_by=actor,
                created_at=utc_now(),
            )

            terminal = load.destination
            if terminal.status != StopStatus.COMPLETED:
                terminal.status = StopStatus.COMPLETED
                terminal.departure_time = delivered_at

            load.status = LoadStatus.DELIVERED
            load.actual_delivery_time = delivered_at
            load.updated_at = utc_now()

            await release_assignment_lock(db, load_id)

            await EventLog.append(
                db,
                load_id,
                event_type=TrackingEventType.DELIVERED,
                description=f"Delivered to {pod_in.signed_by}",
                actor=actor,
                timestamp=delivered_at,
                automatic=False,
            )

    logger.info(
        "Proof of delivery accepted for load %s", load_id,
        extra={"load_id": load_id, "signed_by": pod_in.signed_by, "actor": actor}
    )
    return load
