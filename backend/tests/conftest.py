"""
Centralized Test Configuration.
"""

import pytest
from datetime import datetime, timedelta, timezone
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.jwt import create_access_token
from backend.app.core.reliability import fleet_circuit_breaker
from backend.app.models.fleet_driver import FleetDriver
from backend.app.models.fleet_vehicle import FleetVehicle
from backend.app.models.load_enums import EquipmentType, StopType
from backend.app.schemas.load import LoadCreate, StopCreate
from backend.app.services.load_lifecycle import LoadLifecycleService
from backend.app.services import assignment
from backend.app.domain.loads.state_machine import next_status

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

COMPANY = "acme-freight"
OTHER_COMPANY = "globex-haulage"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


@pytest.fixture(scope="session", autouse=True)
def apply_overrides():
    """Route the app's sessions to the test database for the whole run."""
    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield
    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    fleet_circuit_breaker.reset_state()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    """For tests that need several independent sessions (concurrency)."""
    return TestingSessionLocal


# Fleet data

@pytest.fixture
async def fleet(db_session):
    """
    Three dry-van tractors and drivers around Chicago plus one reefer unit.

    D1 sits at the pickup dock, D2 ~15 km away, D3 ~40 km away and hazmat
    endorsed; D4 is inactive.
    """
    vehicles = [
        FleetVehicle(id="V1", unit_number="TRK-101", equipment_type=EquipmentType.DRY_VAN, company_id=COMPANY),
        FleetVehicle(id="V2", unit_number="TRK-102", equipment_type=EquipmentType.DRY_VAN, company_id=COMPANY),
        FleetVehicle(id="V3", unit_number="TRK-103", equipment_type=EquipmentType.DRY_VAN, company_id=COMPANY),
        FleetVehicle(id="V4", unit_number="RFR-201", equipment_type=EquipmentType.REEFER, company_id=COMPANY),
    ]
    drivers = [
        FleetDriver(id="D1", name="Dana Reyes", company_id=COMPANY, default_vehicle_id="V1",
                    latitude=41.8781, longitude=-87.6298),
        FleetDriver(id="D2", name="Sam Okafor", company_id=COMPANY, default_vehicle_id="V2",
                    latitude=41.9742, longitude=-87.7500),
        FleetDriver(id="D3", name="Lee Park", company_id=COMPANY, default_vehicle_id="V3",
                    hazmat_endorsed=True, latitude=41.5250, longitude=-88.0817),
        FleetDriver(id="D4", name="Robin Hale", company_id=COMPANY, is_active=False),
    ]
    db_session.add_all(vehicles)
    await db_session.flush()
    db_session.add_all(drivers)
    await db_session.commit()
    return {"drivers": drivers, "vehicles": vehicles}


@pytest.fixture
async def foreign_fleet(db_session, fleet):
    """One driver and one tractor belonging to another carrier."""
    vehicle = FleetVehicle(id="GV1", unit_number="GLX-301", equipment_type=EquipmentType.DRY_VAN,
                           company_id=OTHER_COMPANY)
    driver = FleetDriver(id="G1", name="Alex Moreau", company_id=OTHER_COMPANY, default_vehicle_id="GV1",
                         latitude=41.8800, longitude=-87.6300)
    db_session.add(vehicle)
    await db_session.flush()
    db_session.add(driver)
    await db_session.commit()
    return {"drivers": [driver], "vehicles": [vehicle]}


def make_load_spec(**overrides) -> LoadCreate:
    """Chicago -> Indianapolis dry-van load, rate 1000."""
    now = datetime.now(timezone.utc)
    data = {
        "commodity": "Packaged beverages",
        "weight": 42000,
        "pieces": 22,
        "equipment_type": EquipmentType.DRY_VAN,
        "rate": 1000.0,
        "pickup_date": now + timedelta(hours=4),
        "delivery_date": now + timedelta(days=1),
        "stops": [
            StopCreate(stop_type=StopType.PICKUP, facility_name="Lakeside Distribution",
                       address="1200 S Canal St, Chicago, IL", latitude=41.8676, longitude=-87.6395),
            StopCreate(stop_type=StopType.DELIVERY, facility_name="Circle City Grocers",
                       address="500 W Washington St, Indianapolis, IN", latitude=39.7670, longitude=-86.1668),
        ],
    }
    data.update(overrides)
    return LoadCreate(**data)


@pytest.fixture
def load_spec():
    """Builder for LoadCreate payloads with per-test overrides."""
    return make_load_spec


@pytest.fixture
def load_factory(db_session):
    """Create loads through the lifecycle service."""
    async def _create(company_id=COMPANY, actor="dispatcher.kim", **overrides):
        return await LoadLifecycleService.create_load(
            db_session, make_load_spec(**overrides), actor, company_id=company_id
        )
    return _create


@pytest.fixture
def advance(db_session):
    """Walk a load forward one transition at a time until it reaches `target`."""
    async def _advance(load_id, target, actor="dana.reyes"):
        load = await LoadLifecycleService.get_load(db_session, load_id)
        while load.status != target:
            load = await LoadLifecycleService.transition(db_session, load_id, next_status(load.status), actor)
        return load
    return _advance


@pytest.fixture
async def assigned_load(db_session, fleet, load_factory):
    """Pending load bound to D1 / V1."""
    load = await load_factory()
    return await assignment.assign(db_session, load.id, "D1", "V1", "dispatcher.kim")


# Identity

def auth_headers(sub, role, company_id=COMPANY, driver_id=None) -> dict:
    token = create_access_token({
        "sub": sub,
        "role": role,
        "company_id": company_id,
        "driver_id": driver_id,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def dispatcher_headers():
    return auth_headers("dispatcher.kim", "DISPATCHER")


@pytest.fixture
def other_dispatcher_headers():
    return auth_headers("dispatcher.vos", "DISPATCHER", company_id=OTHER_COMPANY)


@pytest.fixture
def driver_headers():
    return auth_headers("dana.reyes", "DRIVER", driver_id="D1")


@pytest.fixture
def admin_headers():
    return auth_headers("ops.admin", "ADMIN", company_id=None)
