"""
Analytics Service.

Operational metrics derived from the load collection on every call.
Focused on READ-ONLY operations.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from backend.app.models.load import Load
from backend.app.models.fleet_vehicle import FleetVehicle
from backend.app.models.load_enums import LoadStatus
from backend.app.domain.loads.state_machine import FINISHED_STATUSES
from backend.app.db.types import utc_now, as_utc
from backend.app.core.exceptions import InvalidPeriodError
from backend.app.schemas.analytics import (
    AnalyticsSummary, ReportingWindowResponse, LoadsByStatus, VehicleUtilization
)

PERIOD_DAYS = {
    "day": 1,
    "week": 7,
    "month": 30,
    "quarter": 90,
    "year": 365,
}


@dataclass(frozen=True)
class ReportingWindow:
    """Half-open interval [start, end)."""
    start: datetime
    end: datetime

    def contains(self, instant: Optional[datetime]) -> bool:
        return instant is not None and self.start <= instant < self.end


Period = Union[str, ReportingWindow]


def resolve_period(period: Period, now: Optional[datetime] = None) -> ReportingWindow:
    """Turn a named period (days ending now) or an explicit window into a window."""
    if isinstance(period, ReportingWindow):
        return ReportingWindow(as_utc(period.start), as_utc(period.end))
    days = PERIOD_DAYS.get(period)
    if days is None:
        raise InvalidPeriodError(str(period))
    end = now or utc_now()
    # Inclusive of "now"
    end = end + timedelta(microseconds=1)
    return ReportingWindow(start=end - timedelta(days=days), end=end)


def _scoped(query, company_id: Optional[str]):
    if company_id is not None:
        query = query.where(Load.company_id == company_id)
    return query


async def _delivered_in(db: AsyncSession, window: ReportingWindow, company_id: Optional[str]) -> List[Load]:
    query = select(Load).where(
        Load.status.in_(FINISHED_STATUSES),
        Load.actual_delivery_time.is_not(None),
        Load.actual_delivery_time >= window.start,
        Load.actual_delivery_time < window.end,
    )
    result = await db.execute(_scoped(query, company_id).execution_options(populate_existing=True))
    return list(result.scalars().all())


class AnalyticsService:

    @staticmethod
    async def revenue(db: AsyncSession, period: Period, company_id: Optional[str] = None) -> float:
        """Sum of total charges of delivered/completed loads created in the period."""
        window = resolve_period(period)
        query = select(func.coalesce(func.sum(Load.total_charges), 0.0)).where(
            Load.status.in_(FINISHED_STATUSES),
            Load.created_at >= window.start,
            Load.created_at < window.end,
        )
        total = await db.scalar(_scoped(query, company_id))
        return round(float(total or 0.0), 2)

    @staticmethod
    async def on_time_percentage(db: AsyncSession, period: Period, company_id: Optional[str] = None) -> float:
        """
        Share (0-100) of loads delivered in the period that arrived by their target delivery date.

        Returns 0 for a period without deliveries.
        """
        delivered = await _delivered_in(db, resolve_period(period), company_id)
        if not delivered:
            return 0.0
        on_time = sum(1 for load in delivered if load.actual_delivery_time <= load.delivery_date)
        return round(on_time / len(delivered) * 100, 2)

    @staticmethod
    async def average_transit_time(db: AsyncSession, period: Period, company_id: Optional[str] = None) -> float:
        """Mean hours from actual pickup to actual delivery; 0 when nothing qualifies."""
        delivered = await _delivered_in(db, resolve_period(period), company_id)
        durations = [
            (load.actual_delivery_time - load.actual_pickup_time).total_seconds() / 3600
            for load in delivered
            if load.actual_pickup_time is not None
        ]
        if not durations:
            return 0.0
        return round(sum(durations) / len(durations), 2)

    @staticmethod
    async def loads_by_status(db: AsyncSession, company_id: Optional[str] = None) -> Dict[LoadStatus, int]:
        """Current count per status, every status present."""
        query = select(Load.status, func.count(Load.id)).group_by(Load.status)
        rows = (await db.execute(_scoped(query, company_id))).all()
        counts = {status: 0 for status in LoadStatus}
        for status, count in rows:
            counts[status] = count
        return counts

    @staticmethod
    async def vehicle_utilization(
        db: AsyncSession, period: Period, company_id: Optional[str] = None
    ) -> List[VehicleUtilization]:
        """Per-vehicle load count and delivered revenue for loads created in the period."""
        window = resolve_period(period)
        query = (
            select(Load.vehicle_id, FleetVehicle.unit_number, Load.status, Load.total_charges)
            .outerjoin(FleetVehicle, FleetVehicle.id == Load.vehicle_id)
            .where(
                Load.vehicle_id.is_not(None),
                Load.created_at >= window.start,
                Load.created_at < window.end,
            )
        )
        rows = (await db.execute(_scoped(query, company_id))).all()

        stats: Dict[str, VehicleUtilization] = {}
        for vehicle_id, unit_number, status, total_charges in rows:
            entry = stats.setdefault(vehicle_id, VehicleUtilization(
                vehicle_id=vehicle_id,
                unit_number=unit_number,
                total_loads=0,
                delivered_loads=0,
                total_revenue=0.0,
            ))
            entry.total_loads += 1
            if status in FINISHED_STATUSES:
                entry.delivered_loads += 1
                entry.total_revenue = round(entry.total_revenue + total_charges, 2)

        return sorted(stats.values(), key=lambda v: (-v.total_revenue, v.vehicle_id))

    @staticmethod
    async def summary(db: AsyncSession, period: Period, company_id: Optional[str] = None) -> AnalyticsSummary:
        window = resolve_period(period)
        delivered = await _delivered_in(db, window, company_id)
        return AnalyticsSummary(
            period=period if isinstance(period, str) else "custom",
            window=ReportingWindowResponse(start=window.start, end=window.end),
            revenue=await AnalyticsService.revenue(db, window, company_id),
            on_time_percentage=await AnalyticsService.on_time_percentage(db, window, company_id),
            average_transit_time_hours=await AnalyticsService.average_transit_time(db, window, company_id),
            delivered_count=len(delivered),
        )

    @staticmethod
    def loads_by_status_response(counts: Dict[LoadStatus, int]) -> LoadsByStatus:
        return LoadsByStatus(
            counts={status.value: count for status, count in counts.items()},
            total=sum(counts.values()),
        )
