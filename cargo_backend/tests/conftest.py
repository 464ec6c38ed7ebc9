"""
Centralized Test Configuration.
"""

import pytest
from decimal import Decimal
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from cargo_backend.app.main import app
from cargo_backend.app.db.session import get_db, get_session_factory, Base
from cargo_backend.app.db.unit_of_work import run_in_transaction
import cargo_backend.app.core.redis_client as redis_client_module
from cargo_backend.app.models.enums import ServiceType
from cargo_backend.app.models.parcel import Parcel
from cargo_backend.app.models.service import Service
from cargo_backend.app.services.intake import IntakeService, ParcelItem

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

MARITIME_SERVICE_ID = 1
AIR_SERVICE_ID = 2

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

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
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)

# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}

# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()

@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session.
    Global override is safer here than per-test override to avoid app state flux.
    """

    # Patch the global redis client used by the tracking cache
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client

@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables and the two shipping services before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestingSessionLocal() as session:
        session.add_all([
            Service(id=MARITIME_SERVICE_ID, name="Sea freight", service_type=ServiceType.MARITIME),
            Service(id=AIR_SERVICE_ID, name="Air cargo", service_type=ServiceType.AIR),
        ])
        await session.commit()

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

# Shared session for reading back committed state
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session

@pytest.fixture
def session_factory():
    return TestingSessionLocal

@pytest.fixture
def run():
    """Run a domain operation in its own committed transaction."""
    async def _run(operation, *args, **kwargs):
        return await run_in_transaction(operation, *args, session_factory=TestingSessionLocal, **kwargs)
    return _run

@pytest.fixture
def make_order(run):
    """Create an order; `weights` gives one parcel per entry."""
    async def _make(agency_id=1, weights=(Decimal("10.00"),), service_id=MARITIME_SERVICE_ID, **kwargs):
        items = [ParcelItem(description=f"Box {i}", weight_kg=Decimal(w), service_id=service_id)
                 for i, w in enumerate(weights, start=1)]
        order = await run(IntakeService.create_order, agency_id, items, **kwargs)
        async with TestingSessionLocal() as session:
            parcels = await IntakeService.list_parcels(session, order.id)
        return order, parcels
    return _make

@pytest.fixture
def load():
    """Fresh read of a row by primary key, or of a parcel by tracking code."""
    async def _load(model, key):
        async with TestingSessionLocal() as session:
            if model is Parcel and isinstance(key, str):
                result = await session.execute(select(Parcel).where(Parcel.tracking_code == key))
                return result.scalar_one()
            return await session.get(model, key)
    return _load

@pytest.fixture
def force_parcel_state():
    """Put a parcel into a given state directly, for fixture setup only."""
    async def _force(tracking_code, **values):
        async with TestingSessionLocal() as session:
            await session.execute(update(Parcel).where(Parcel.tracking_code == tracking_code).values(**values))
            await session.commit()
    return _force
