"""
Tests for the disposable dashboard projection.
"""

import pytest

from backend.app.models.load_enums import LoadStatus
from backend.app.services.load_projection import LoadProjection, view_for
from backend.app.services.load_lifecycle import LoadLifecycleService
from backend.app.services import assignment


async def test_view_for_groups_statuses():
    assert view_for(LoadStatus.PENDING) == "pending"
    assert view_for(LoadStatus.ASSIGNED) == "active"
    assert view_for(LoadStatus.AT_DELIVERY) == "active"
    assert view_for(LoadStatus.DELIVERED) == "completed"
    assert view_for(LoadStatus.COMPLETED) == "completed"
    assert view_for(LoadStatus.CANCELLED) == "cancelled"


@pytest.mark.asyncio
async def test_rebuild_reflects_store(db_session, assigned_load, load_factory):
    pending = await load_factory()

    projection = LoadProjection()
    await projection.rebuild(db_session)

    assert projection.view("pending") == [pending.id]
    assert projection.view("active") == [assigned_load.id]
    assert projection.view("completed") == []
    assert projection.cursor > 0


@pytest.mark.asyncio
async def test_sync_follows_new_events(db_session, fleet, load_factory):
    projection = LoadProjection()
    await projection.rebuild(db_session)

    load = await load_factory()
    load_id = load.id
    touched = await projection.sync(db_session)
    assert touched == {load_id}
    assert projection.status_of(load_id) == LoadStatus.PENDING

    await assignment.assign(db_session, load_id, "D1", "V1", "dispatcher.kim")
    await LoadLifecycleService.transition(db_session, load_id, LoadStatus.CANCELLED, "dispatcher.kim")

    # Lags until the next sync
    assert projection.view("pending") == [load_id]

    await projection.sync(db_session)
    assert projection.view("pending") == []
    assert projection.view("cancelled") == [load_id]

    # Nothing new
    assert await projection.sync(db_session) == set()


@pytest.mark.asyncio
async def test_sync_drops_deleted_loads(db_session, load_factory):
    load = await load_factory()
    load_id = load.id
    projection = LoadProjection()
    await projection.rebuild(db_session)

    await LoadLifecycleService.delete_load(db_session, load_id)
    touched = await projection.sync(db_session)

    assert load_id in touched
    assert projection.status_of(load_id) is None
    assert projection.views() == {"pending": [], "active": [], "completed": [], "cancelled": []}


@pytest.mark.asyncio
async def test_company_scoped_projection(db_session, load_factory):
    ours = await load_factory()
    await load_factory(company_id="globex-haulage")

    projection = LoadProjection(company_id="acme-freight")
    await projection.rebuild(db_session)
    assert projection.view("pending") == [ours.id]

    await load_factory(company_id="globex-haulage")
    await projection.sync(db_session)
    assert projection.view("pending") == [ours.id]


async def test_unknown_view():
    with pytest.raises(KeyError):
        LoadProjection().view("archived")
