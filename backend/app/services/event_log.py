"""
Event Log service.

Append-only per-load history. Every component that changes load state
records its history through EventLog.append, inside the same transaction
as the state change, so status and history commit together.
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from backend.app.models.tracking_event import TrackingEvent
from backend.app.models.load import Load
from backend.app.models.load_enums import TrackingEventType
from backend.app.db.types import utc_now, as_utc
from backend.app.db.transaction import unit_of_work
from backend.app.core.locks import load_locks, resource_keys
from backend.app.core.exceptions import ResourceNotFoundError, InvalidLoadError

logger = logging.getLogger(__name__)

# Event types a user may record directly; everything else comes from the state machine
USER_EVENT_TYPES = frozenset({TrackingEventType.EXCEPTION})


def new_event_id(now: Optional[datetime] = None) -> str:
    """Time-ordered unique token: millisecond timestamp plus random suffix."""
    now = now or utc_now()
    millis = int(now.timestamp() * 1000)
    return f"{millis:013d}_{uuid.uuid4().hex[:12]}"


class EventLog:

    @staticmethod
    async def append(
        db: AsyncSession,
        load_id: int,
        event_type: TrackingEventType,
        description: str,
        actor: str,
        timestamp: Optional[datetime] = None,
        automatic: bool = True,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        address: Optional[str] = None,
    ) -> TrackingEvent:
        """
        Append one event to the load's log.

        Does not commit; the caller owns the transaction. The flush makes
        the insert fail here, inside that transaction, if the store rejects it.
        """
        now = utc_now()
        event = TrackingEvent(
            event_id=new_event_id(now),
            load_id=load_id,
            event_type=event_type,
            description=description,
            latitude=latitude,
            longitude=longitude,
            address=address,
            timestamp=timestamp or now,
            created_by=actor,
            automatic=automatic,
            recorded_at=now,
        )
        db.add(event)
        await db.flush()
        return event

    @staticmethod
    async def list_events(db: AsyncSession, load_id: int) -> List[TrackingEvent]:
        """Events in insertion order."""
        result = await db.execute(
            select(TrackingEvent)
            .where(TrackingEvent.load_id == load_id)
            .order_by(TrackingEvent.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def history(db: AsyncSession, load_id: int) -> List[TrackingEvent]:
        """Events in timestamp order, ties broken by insertion order."""
        result = await db.execute(
            select(TrackingEvent)
            .where(TrackingEvent.load_id == load_id)
            .order_by(TrackingEvent.timestamp, TrackingEvent.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def last_event(db: AsyncSession, load_id: int) -> Optional[TrackingEvent]:
        result = await db.execute(
            select(TrackingEvent)
            .where(TrackingEvent.load_id == load_id)
            .order_by(TrackingEvent.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def events_after(db: AsyncSession, cursor: int, limit: int = 500) -> List[TrackingEvent]:
        """Events of every load appended after the given insertion id."""
        result = await db.execute(
            select(TrackingEvent)
            .where(TrackingEvent.id > cursor)
            .order_by(TrackingEvent.id)
            .limit(limit)
        )
        return list(result.scalars().all())


async def add_tracking_event(
    db: AsyncSession,
    load_id: int,
    event_type: TrackingEventType,
    description: str,
    actor: str,
    timestamp: Optional[datetime] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    address: Optional[str] = None,
) -> TrackingEvent:
    """
    Record a user-attested event (delays, breakdowns, notes) on a load.

    Status-bearing event types are refused; those are only written by
    the lifecycle operations.

    Raises:
        InvalidLoadError: event type not accepted from users
        ResourceNotFoundError: load does not exist
    """
    if event_type not in USER_EVENT_TYPES:
        raise InvalidLoadError(
            f"Event type '{event_type.value}' is recorded by the system and cannot be added manually",
            details={"event_type": event_type.value}
        )

    async with load_locks.hold(*resource_keys(load_id=load_id)):
        async with unit_of_work(db, "add_tracking_event"):
            exists = await db.scalar(select(Load.id).where(Load.id == load_id))
            if exists is None:
                raise ResourceNotFoundError("Load", load_id)

            event = await EventLog.append(
                db,
                load_id,
                event_type=event_type,
                description=description,
                actor=actor,
                timestamp=as_utc(timestamp),
                automatic=False,
                latitude=latitude,
                longitude=longitude,
                address=address,
            )

    logger.info(
        "Tracking event recorded on load %s",
        load_id,
        extra={"load_id": load_id, "event_type": event_type.value, "actor": actor}
    )
    return event
