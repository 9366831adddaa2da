"""
Integration tests for load creation, editing, deletion and transitions.
"""

import re
import pytest
from datetime import timedelta

from backend.app.models.load_enums import LoadStatus, StopStatus, StopType, TrackingEventType
from backend.app.models.assignment_lock import AssignmentLock
from backend.app.domain.loads.state_machine import STATUS_DESCRIPTIONS, FORWARD_ORDER, rank
from backend.app.schemas.load import Accessorial, LoadUpdate, StopCreate
from backend.app.services.load_lifecycle import LoadLifecycleService
from backend.app.services.event_log import EventLog
from backend.app.services import assignment
from backend.app.core.exceptions import (
    InvalidLoadError, InvalidTransitionError, MissingProofOfDeliveryError,
    ResourceNotFoundError, TerminalLoadError
)
from sqlalchemy import select


# Creation

@pytest.mark.asyncio
async def test_create_load_starts_pending_with_created_event(db_session, load_factory):
    load = await load_factory()

    assert load.status == LoadStatus.PENDING
    assert re.fullmatch(r"L\d{8}-\d{6}", load.load_number)
    assert load.load_number.endswith(f"{load.id:06d}")
    assert load.driver_id is None and load.vehicle_id is None
    assert [stop.sequence for stop in load.stops] == [0, 1]
    assert all(stop.status == StopStatus.PENDING for stop in load.stops)
    assert load.created_at.tzinfo is not None

    events = await EventLog.list_events(db_session, load.id)
    assert len(events) == 1
    assert events[0].event_type == TrackingEventType.CREATED
    assert events[0].description == "Load created and ready for assignment"
    assert events[0].automatic is True


@pytest.mark.asyncio
async def test_create_load_computes_total_charges(load_factory):
    load = await load_factory(
        rate=1000.0,
        fuel_surcharge=125.5,
        accessorials=[
            Accessorial(type="detention", description="2h at shipper", amount=90.0),
            Accessorial(type="lumper", amount=45.25),
        ],
    )
    assert load.total_charges == pytest.approx(1260.75)


@pytest.mark.asyncio
async def test_load_numbers_are_unique(load_factory):
    first = await load_factory()
    second = await load_factory()
    assert first.load_number != second.load_number


@pytest.mark.asyncio
async def test_create_load_requires_two_stops(load_factory):
    with pytest.raises(InvalidLoadError):
        await load_factory(stops=[
            StopCreate(stop_type=StopType.PICKUP, facility_name="Only Stop"),
        ])


@pytest.mark.asyncio
async def test_create_load_requires_pickup_first_and_delivery_last(load_factory):
    with pytest.raises(InvalidLoadError):
        await load_factory(stops=[
            StopCreate(stop_type=StopType.DELIVERY, facility_name="Backwards A"),
            StopCreate(stop_type=StopType.PICKUP, facility_name="Backwards B"),
        ])


@pytest.mark.asyncio
async def test_create_load_allows_intermediate_stops(load_factory):
    load = await load_factory(stops=[
        StopCreate(stop_type=StopType.PICKUP, facility_name="Shipper"),
        StopCreate(stop_type=StopType.FUEL, facility_name="Pilot #412"),
        StopCreate(stop_type=StopType.DELIVERY, facility_name="Consignee"),
    ])
    assert [stop.stop_type for stop in load.stops] == [StopType.PICKUP, StopType.FUEL, StopType.DELIVERY]


@pytest.mark.asyncio
async def test_create_load_rejects_delivery_before_pickup(load_factory, load_spec):
    base = load_spec()
    with pytest.raises(InvalidLoadError):
        await load_factory(
            pickup_date=base.pickup_date,
            delivery_date=base.pickup_date - timedelta(hours=1),
        )


# Transitions

@pytest.mark.asyncio
async def test_full_forward_walk_appends_one_event_per_step(db_session, assigned_load):
    load_id = assigned_load.id
    seen = [LoadStatus.PENDING, LoadStatus.ASSIGNED]

    for target in FORWARD_ORDER[2:7]:
        before = await EventLog.list_events(db_session, load_id)
        load = await LoadLifecycleService.transition(db_session, load_id, target, "dana.reyes")
        after = await EventLog.list_events(db_session, load_id)

        assert load.status == target
        assert len(after) == len(before) + 1
        assert after[-1].description == STATUS_DESCRIPTIONS[target]
        assert after[-1].created_by == "dana.reyes"
        assert after[-1].automatic is True
        seen.append(load.status)

    ranks = [rank(status) for status in seen]
    assert ranks == sorted(ranks)
    assert seen[-1] == LoadStatus.AT_DELIVERY


@pytest.mark.asyncio
async def test_entering_loaded_completes_origin_and_stamps_pickup(db_session, assigned_load, advance):
    load = await advance(assigned_load.id, LoadStatus.LOADED)

    assert load.actual_pickup_time is not None
    origin = load.stops[0]
    assert origin.status == StopStatus.COMPLETED
    assert origin.arrival_time is not None
    assert origin.departure_time is not None


@pytest.mark.asyncio
async def test_entering_at_delivery_marks_final_stop_arrived(assigned_load, advance):
    load = await advance(assigned_load.id, LoadStatus.AT_DELIVERY)
    assert load.stops[-1].status == StopStatus.ARRIVED
    assert load.stops[-1].arrival_time is not None


@pytest.mark.asyncio
async def test_skipping_states_is_rejected_without_side_effects(db_session, load_factory):
    load = await load_factory()
    load_id = load.id

    with pytest.raises(InvalidTransitionError):
        await LoadLifecycleService.transition(db_session, load_id, LoadStatus.LOADED, "dispatcher.kim")

    reloaded = await LoadLifecycleService.get_load(db_session, load_id)
    assert reloaded.status == LoadStatus.PENDING
    assert len(await EventLog.list_events(db_session, load_id)) == 1


@pytest.mark.asyncio
async def test_backward_transition_is_rejected(db_session, assigned_load, advance):
    load_id = assigned_load.id
    await advance(load_id, LoadStatus.LOADED)

    with pytest.raises(InvalidTransitionError):
        await LoadLifecycleService.transition(db_session, load_id, LoadStatus.AT_PICKUP, "dana.reyes")

    reloaded = await LoadLifecycleService.get_load(db_session, load_id)
    assert reloaded.status == LoadStatus.LOADED


@pytest.mark.asyncio
async def test_transition_to_assigned_goes_through_assignment(db_session, load_factory):
    load = await load_factory()
    with pytest.raises(InvalidTransitionError):
        await LoadLifecycleService.transition(db_session, load.id, LoadStatus.ASSIGNED, "dispatcher.kim")


@pytest.mark.asyncio
async def test_transition_to_delivered_requires_pod(db_session, assigned_load, advance):
    load_id = assigned_load.id
    await advance(load_id, LoadStatus.AT_DELIVERY)

    with pytest.raises(MissingProofOfDeliveryError):
        await LoadLifecycleService.transition(db_session, load_id, LoadStatus.DELIVERED, "dana.reyes")

    reloaded = await LoadLifecycleService.get_load(db_session, load_id)
    assert reloaded.status == LoadStatus.AT_DELIVERY


@pytest.mark.asyncio
async def test_transition_unknown_load(db_session):
    with pytest.raises(ResourceNotFoundError):
        await LoadLifecycleService.transition(db_session, 9999, LoadStatus.CANCELLED, "dispatcher.kim")


@pytest.mark.asyncio
async def test_cancel_releases_driver_and_is_final(db_session, assigned_load, advance, load_factory):
    load_id = assigned_load.id
    await advance(load_id, LoadStatus.EN_ROUTE_PICKUP)

    cancelled = await LoadLifecycleService.transition(db_session, load_id, LoadStatus.CANCELLED, "dispatcher.kim")
    assert cancelled.status == LoadStatus.CANCELLED

    events = await EventLog.list_events(db_session, load_id)
    assert events[-1].event_type == TrackingEventType.EXCEPTION
    assert events[-1].description == "Load cancelled"

    locks = (await db_session.execute(
        select(AssignmentLock).where(AssignmentLock.load_id == load_id)
    )).scalars().all()
    assert all(lock.released_at is not None for lock in locks)

    # Driver is free again
    other = await load_factory()
    reassigned = await assignment.assign(db_session, other.id, "D1", "V1", "dispatcher.kim")
    assert reassigned.status == LoadStatus.ASSIGNED

    with pytest.raises(InvalidTransitionError):
        await LoadLifecycleService.transition(db_session, load_id, LoadStatus.CANCELLED, "dispatcher.kim")


# Editing and deletion

@pytest.mark.asyncio
async def test_update_load_recomputes_total(db_session, load_factory):
    load = await load_factory(fuel_surcharge=100.0)
    updated = await LoadLifecycleService.update_load(
        db_session,
        load.id,
        LoadUpdate(rate=1500.0, accessorials=[Accessorial(type="tarp", amount=75.0)], notes="Call ahead"),
        "dispatcher.kim",
    )
    assert updated.rate == 1500.0
    assert updated.total_charges == pytest.approx(1675.0)
    assert updated.notes == "Call ahead"
    assert updated.status == LoadStatus.PENDING


@pytest.mark.asyncio
async def test_update_bumps_version(db_session, load_factory):
    load = await load_factory()
    version = load.version
    updated = await LoadLifecycleService.update_load(db_session, load.id, LoadUpdate(weight=38000), "dispatcher.kim")
    assert updated.version > version


@pytest.mark.asyncio
async def test_update_terminal_load_rejected(db_session, load_factory):
    load = await load_factory()
    load_id = load.id
    await LoadLifecycleService.transition(db_session, load_id, LoadStatus.CANCELLED, "dispatcher.kim")

    with pytest.raises(TerminalLoadError):
        await LoadLifecycleService.update_load(db_session, load_id, LoadUpdate(rate=1.0), "dispatcher.kim")


@pytest.mark.asyncio
async def test_delete_pending_load_removes_history(db_session, load_factory):
    load = await load_factory()
    load_id = load.id

    await LoadLifecycleService.delete_load(db_session, load_id)

    with pytest.raises(ResourceNotFoundError):
        await LoadLifecycleService.get_load(db_session, load_id)
    assert await EventLog.list_events(db_session, load_id) == []


@pytest.mark.asyncio
async def test_delete_assigned_load_rejected(db_session, assigned_load):
    load_id = assigned_load.id
    with pytest.raises(InvalidTransitionError):
        await LoadLifecycleService.delete_load(db_session, load_id)

    reloaded = await LoadLifecycleService.get_load(db_session, load_id)
    assert reloaded.status == LoadStatus.ASSIGNED


@pytest.mark.asyncio
async def test_list_loads_filters(db_session, assigned_load, load_factory):
    await load_factory()
    await load_factory(company_id="globex-haulage")

    pending, pending_total = await LoadLifecycleService.list_loads(db_session, status=LoadStatus.PENDING)
    assert pending_total == 2

    mine, _ = await LoadLifecycleService.list_loads(db_session, driver_id="D1")
    assert [load.id for load in mine] == [assigned_load.id]

    acme, acme_total = await LoadLifecycleService.list_loads(db_session, company_id="acme-freight")
    assert acme_total == 2
    assert all(load.company_id == "acme-freight" for load in acme)
