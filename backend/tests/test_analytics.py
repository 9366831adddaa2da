"""
Tests for operational analytics.
"""

import pytest
from datetime import datetime, timedelta, timezone
from sqlalchemy import update

from backend.app.models.load import Load
from backend.app.models.load_enums import LoadStatus
from backend.app.schemas.proof_of_delivery import ProofOfDeliveryCreate
from backend.app.services.analytics import AnalyticsService, ReportingWindow, resolve_period
from backend.app.services.proof_of_delivery import submit_proof_of_delivery
from backend.app.services.load_lifecycle import LoadLifecycleService
from backend.app.services import assignment
from backend.app.core.exceptions import InvalidPeriodError


@pytest.fixture
def deliver(db_session, advance):
    """Assign, drive and deliver a load; returns nothing, re-read if needed."""
    async def _deliver(load_id, driver_id="D1", vehicle_id="V1", delivered_at=None, picked_up_at=None):
        await assignment.assign(db_session, load_id, driver_id, vehicle_id, "dispatcher.kim")
        await advance(load_id, LoadStatus.AT_DELIVERY)
        if picked_up_at is not None:
            await db_session.execute(
                update(Load).where(Load.id == load_id).values(actual_pickup_time=picked_up_at)
            )
            await db_session.commit()
        pod = ProofOfDeliveryCreate(
            signed_by="Receiving Clerk",
            delivered_at=delivered_at or datetime.now(timezone.utc),
        )
        await submit_proof_of_delivery(db_session, load_id, pod, "dana.reyes")
    return _deliver


# Periods

async def test_resolve_named_period():
    now = datetime(2026, 5, 15, 12, 0, tzinfo=timezone.utc)
    window = resolve_period("week", now=now)
    assert window.contains(now)
    assert window.contains(now - timedelta(days=6, hours=23))
    assert not window.contains(now - timedelta(days=8))


async def test_resolve_unknown_period():
    with pytest.raises(InvalidPeriodError):
        resolve_period("fortnight")


async def test_explicit_window_is_half_open():
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    end = datetime(2026, 2, 1, tzinfo=timezone.utc)
    window = resolve_period(ReportingWindow(start, end))
    assert window.contains(start)
    assert not window.contains(end)


# Metrics

@pytest.mark.asyncio
async def test_revenue_counts_delivered_loads(db_session, fleet, load_factory, deliver):
    delivered = await load_factory(rate=1000.0)
    await load_factory(rate=750.0)
    await deliver(delivered.id)

    assert await AnalyticsService.revenue(db_session, "month") == pytest.approx(1000.0)


@pytest.mark.asyncio
async def test_revenue_scoped_to_company(db_session, fleet, load_factory, deliver):
    load = await load_factory(rate=1000.0)
    await deliver(load.id)

    assert await AnalyticsService.revenue(db_session, "month", company_id="globex-haulage") == 0.0
    assert await AnalyticsService.revenue(db_session, "month", company_id="acme-freight") == pytest.approx(1000.0)


@pytest.mark.asyncio
async def test_on_time_with_no_deliveries_is_zero(db_session, load_factory):
    await load_factory()
    assert await AnalyticsService.on_time_percentage(db_session, "week") == 0.0


@pytest.mark.asyncio
async def test_on_time_percentage(db_session, fleet, load_factory, deliver):
    now = datetime.now(timezone.utc)
    on_time = await load_factory()
    late = await load_factory(
        pickup_date=now - timedelta(days=3),
        delivery_date=now - timedelta(days=2),
    )
    await deliver(on_time.id)
    await deliver(late.id, driver_id="D2", vehicle_id="V2")

    assert await AnalyticsService.on_time_percentage(db_session, "week") == 50.0


@pytest.mark.asyncio
async def test_average_transit_time(db_session, fleet, load_factory, deliver):
    now = datetime.now(timezone.utc)
    load = await load_factory()
    await deliver(load.id, picked_up_at=now - timedelta(hours=3), delivered_at=now)

    hours = await AnalyticsService.average_transit_time(db_session, "month")
    assert hours == pytest.approx(3.0, abs=0.05)


@pytest.mark.asyncio
async def test_average_transit_time_without_deliveries(db_session):
    assert await AnalyticsService.average_transit_time(db_session, "day") == 0.0


@pytest.mark.asyncio
async def test_loads_by_status_includes_zeros(db_session, fleet, load_factory):
    await load_factory()
    cancelled = await load_factory()
    await LoadLifecycleService.transition(db_session, cancelled.id, LoadStatus.CANCELLED, "dispatcher.kim")

    counts = await AnalyticsService.loads_by_status(db_session)

    assert set(counts) == set(LoadStatus)
    assert counts[LoadStatus.PENDING] == 1
    assert counts[LoadStatus.CANCELLED] == 1
    assert counts[LoadStatus.DELIVERED] == 0

    response = AnalyticsService.loads_by_status_response(counts)
    assert response.total == 2
    assert response.counts["pending"] == 1
    assert response.counts["at_delivery"] == 0


@pytest.mark.asyncio
async def test_vehicle_utilization(db_session, fleet, load_factory, deliver):
    first = await load_factory(rate=1000.0)
    second = await load_factory(rate=600.0)
    await deliver(first.id)
    await assignment.assign(db_session, second.id, "D2", "V2", "dispatcher.kim")

    stats = await AnalyticsService.vehicle_utilization(db_session, "month")

    assert [entry.vehicle_id for entry in stats] == ["V1", "V2"]
    assert stats[0].unit_number == "TRK-101"
    assert (stats[0].total_loads, stats[0].delivered_loads, stats[0].total_revenue) == (1, 1, 1000.0)
    assert (stats[1].total_loads, stats[1].delivered_loads, stats[1].total_revenue) == (1, 0, 0.0)


@pytest.mark.asyncio
async def test_summary(db_session, fleet, load_factory, deliver):
    load = await load_factory(rate=1000.0)
    await deliver(load.id)

    summary = await AnalyticsService.summary(db_session, "month")

    assert summary.period == "month"
    assert summary.revenue == pytest.approx(1000.0)
    assert summary.delivered_count == 1
    assert summary.on_time_percentage == 100.0
