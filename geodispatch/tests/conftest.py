"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine

from geodispatch.app.core.config import Settings
from geodispatch.app.core.jwt import create_access_token
from geodispatch.app.db.session import Database
from geodispatch.app.main import create_app, init_services
from geodispatch.app.services.driver_location_store import DriverLocationStore
from geodispatch.app.services.nearby_query import NearbyDriverQuery
from geodispatch.app.services.spatial_index import SpatialIndexer

# Import models to ensure they're registered with Base
from geodispatch.app.models.driver_location import DriverLocation  # noqa: F401

# Settings-level URL only; the database fixture below uses a per-test file
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_SETTINGS = Settings(
    database_url=TEST_DATABASE_URL,
    secret_key="test-secret-key-for-geodispatch-suite-0123456789",
    redis_url="redis://localhost:6379/15",
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.sets = {}
        self.ttls = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def sadd(self, key, *members):
        bucket = self.sets.setdefault(key, set())
        added = [m for m in members if m not in bucket]
        bucket.update(added)
        return len(added)

    async def smembers(self, key):
        return set(self.sets.get(key, set()))

    async def expire(self, key, seconds):
        self.ttls[key] = seconds
        return key in self.sets or key in self.store

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        return True

    async def flushdb(self):
        if not self._closed:
            self.store = {}
            self.sets = {}
            self.ttls = {}

    async def aclose(self):
        self._closed = True
        self.store = {}
        self.sets = {}


@pytest.fixture
def settings():
    return TEST_SETTINGS


@pytest.fixture
async def database(tmp_path):
    """Fresh file-backed database per test.

    Each session gets its own connection, so a reader closing its session
    cannot roll back a concurrent background write.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'geodispatch.db'}")
    db = Database(engine=engine)
    await db.create_all()

    yield db

    await db.drop_all()
    await db.dispose()


@pytest.fixture
def redis_client():
    return MockRedis()


@pytest.fixture
def indexer():
    return SpatialIndexer(TEST_SETTINGS.h3_resolution)


@pytest.fixture
def store(database, indexer):
    return DriverLocationStore(database, indexer)


@pytest.fixture
def nearby(database, indexer):
    return NearbyDriverQuery(database, indexer)


@pytest.fixture
async def app(database, redis_client):
    application = create_app(TEST_SETTINGS)
    # ASGITransport does not run the lifespan, so wire the state directly
    init_services(application, TEST_SETTINGS, database, redis_client)

    yield application

    await application.state.offer_manager.shutdown()


@pytest.fixture
async def client(app):
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers():
    """Build bearer headers for a driver."""
    def _headers(driver_id: str = "driver_1", phone: str = "+9779800000001", role: str = None) -> dict:
        data = {"sub": driver_id, "user_id": driver_id, "phone": phone}
        if role:
            data["role"] = role
        token = create_access_token(
            data=data,
            settings=TEST_SETTINGS,
        )
        return {"Authorization": f"Bearer {token}"}
    return _headers
