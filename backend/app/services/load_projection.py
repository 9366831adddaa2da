"""
Load projection.

Disposable in-memory dashboard views (pending / active / completed /
cancelled) over the load collection. It follows the tracking event table
as a change stream and may lag behind the store between syncs; nothing
in the dispatch core reads it to make decisions.
"""

import logging
from typing import Dict, List, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from backend.app.models.load import Load
from backend.app.models.tracking_event import TrackingEvent
from backend.app.models.load_enums import LoadStatus
from backend.app.domain.loads.state_machine import FINISHED_STATUSES, is_assigned
from backend.app.services.event_log import EventLog

logger = logging.getLogger(__name__)

VIEW_NAMES = ("pending", "active", "completed", "cancelled")


def view_for(status: LoadStatus) -> str:
    if is_assigned(status):
        return "active"
    if status in FINISHED_STATUSES:
        return "completed"
    if status == LoadStatus.CANCELLED:
        return "cancelled"
    return "pending"


class LoadProjection:

    def __init__(self, company_id: Optional[str] = None):
        self.company_id = company_id
        self.cursor = 0
        self._statuses: Dict[int, LoadStatus] = {}

    async def rebuild(self, db: AsyncSession) -> None:
        """Drop everything and reload from the store."""
        self.cursor = await db.scalar(select(func.coalesce(func.max(TrackingEvent.id), 0))) or 0

        query = select(Load.id, Load.status)
        if self.company_id is not None:
            query = query.where(Load.company_id == self.company_id)
        rows = (await db.execute(query)).all()

        self._statuses = {load_id: status for load_id, status in rows}
        logger.debug("Projection rebuilt with %d loads at cursor %d", len(self._statuses), self.cursor)

    async def sync(self, db: AsyncSession) -> Set[int]:
        """
        Apply changes recorded since the last sync.

        Returns:
            Ids of loads whose entry was touched
        """
        touched: Set[int] = set()
        while True:
            events = await EventLog.events_after(db, self.cursor)
            if not events:
                break
            touched.update(event.load_id for event in events)
            self.cursor = events[-1].id

        # Hard deletes leave no events behind; prune entries whose load is gone
        candidates = touched | set(self._statuses)
        current = {}
        if candidates:
            query = select(Load.id, Load.status, Load.company_id).where(Load.id.in_(candidates))
            for load_id, status, company_id in (await db.execute(query)).all():
                if self.company_id is None or company_id == self.company_id:
                    current[load_id] = status

        for load_id in candidates:
            status = current.get(load_id)
            if status is None:
                if self._statuses.pop(load_id, None) is not None:
                    touched.add(load_id)
            elif self._statuses.get(load_id) != status:
                self._statuses[load_id] = status
                touched.add(load_id)

        return touched

    def view(self, name: str) -> List[int]:
        if name not in VIEW_NAMES:
            raise KeyError(name)
        return sorted(load_id for load_id, status in self._statuses.items() if view_for(status) == name)

    def views(self) -> Dict[str, List[int]]:
        return {name: self.view(name) for name in VIEW_NAMES}

    def status_of(self, load_id: int) -> Optional[LoadStatus]:
        return self._statuses.get(load_id)
