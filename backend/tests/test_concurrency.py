"""
Concurrency Tests.

Validates that race conditions are handled correctly.
"""

import pytest
import asyncio

from backend.app.core.locks import KeyedLockRegistry, resource_keys
from backend.app.core.exceptions import (
    DriverUnavailableError, VehicleUnavailableError, InvalidTransitionError, InvalidStopStateError
)
from backend.app.db.transaction import unit_of_work
from backend.app.models.load_enums import LoadStatus, TrackingEventType
from backend.app.services.assignment_locks import acquire_assignment_lock, release_assignment_lock
from backend.app.services.load_lifecycle import LoadLifecycleService
from backend.app.services.stop_tracker import record_arrival
from backend.app.services.event_log import EventLog


async def test_resource_keys():
    assert resource_keys(7, "D1", "V1") == ["load:7", "driver:D1", "vehicle:V1"]
    assert resource_keys(load_id=7) == ["load:7"]


@pytest.mark.asyncio
async def test_same_key_is_serialised():
    registry = KeyedLockRegistry()
    trace = []

    async def worker(name):
        async with registry.hold("load:1"):
            trace.append(f"{name}:in")
            await asyncio.sleep(0.01)
            trace.append(f"{name}:out")

    await asyncio.gather(worker("a"), worker("b"))

    assert trace in (
        ["a:in", "a:out", "b:in", "b:out"],
        ["b:in", "b:out", "a:in", "a:out"],
    )
    assert not registry.is_locked("load:1")


@pytest.mark.asyncio
async def test_disjoint_keys_do_not_block():
    registry = KeyedLockRegistry()
    released = asyncio.Event()

    async def holder():
        async with registry.hold("load:1"):
            await asyncio.wait_for(released.wait(), timeout=1)

    async def other():
        async with registry.hold("load:2", "driver:D2"):
            released.set()

    await asyncio.gather(holder(), other())


@pytest.mark.asyncio
async def test_overlapping_key_sets_do_not_deadlock():
    registry = KeyedLockRegistry()

    async def worker(*keys):
        async with registry.hold(*keys):
            await asyncio.sleep(0.01)
        return True

    results = await asyncio.wait_for(
        asyncio.gather(
            worker("load:1", "driver:D1", "vehicle:V1"),
            worker("vehicle:V1", "driver:D1", "load:2"),
        ),
        timeout=2,
    )
    assert results == [True, True]


@pytest.mark.asyncio
async def test_assignment_lock_index_rejects_second_driver_lock(db_session, load_factory):
    """A second unreleased lock for the same driver hits the unique index."""
    first = await load_factory()
    second = await load_factory()
    first_id, second_id = first.id, second.id

    async with unit_of_work(db_session, "test"):
        await acquire_assignment_lock(db_session, first_id, "D1", "V1", "dispatcher.kim")

    with pytest.raises(DriverUnavailableError):
        async with unit_of_work(db_session, "test"):
            await acquire_assignment_lock(db_session, second_id, "D1", "V2", "dispatcher.kim")

    with pytest.raises(VehicleUnavailableError):
        async with unit_of_work(db_session, "test"):
            await acquire_assignment_lock(db_session, second_id, "D2", "V1", "dispatcher.kim")

    # Released locks no longer count
    async with unit_of_work(db_session, "test"):
        assert await release_assignment_lock(db_session, first_id) is True
    async with unit_of_work(db_session, "test"):
        lock = await acquire_assignment_lock(db_session, second_id, "D1", "V1", "dispatcher.kim")
    assert lock.released_at is None


@pytest.mark.asyncio
async def test_concurrent_transitions_on_one_load(db_session, session_factory, assigned_load):
    load_id = assigned_load.id

    async def attempt():
        async with session_factory() as session:
            try:
                await LoadLifecycleService.transition(session, load_id, LoadStatus.EN_ROUTE_PICKUP, "dana.reyes")
                return "moved"
            except InvalidTransitionError as exc:
                return exc

    results = await asyncio.gather(attempt(), attempt(), attempt())

    assert results.count("moved") == 1
    assert sum(isinstance(result, InvalidTransitionError) for result in results) == 2

    events = await EventLog.list_events(db_session, load_id)
    assert sum(event.event_type == TrackingEventType.EN_ROUTE for event in events) == 1


@pytest.mark.asyncio
async def test_concurrent_arrivals_at_one_stop(db_session, session_factory, assigned_load):
    load_id = assigned_load.id

    async def attempt():
        async with session_factory() as session:
            try:
                stop = await record_arrival(session, load_id, 0, "dana.reyes")
                return stop.arrival_time
            except InvalidStopStateError as exc:
                return exc

    results = await asyncio.gather(attempt(), attempt())

    assert sum(isinstance(result, InvalidStopStateError) for result in results) == 1
    arrived_at = next(result for result in results if not isinstance(result, Exception))

    load = await LoadLifecycleService.get_load(db_session, load_id)
    assert load.stops[0].arrival_time == arrived_at

