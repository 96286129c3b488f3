"""
Centralized Test Configuration.
"""

import itertools

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from hopelink.app.main import app
from hopelink.app.db.session import get_db, Base
from hopelink.app.core.redis_client import get_redis
from hopelink.app.core.reliability import redis_circuit_breaker
from hopelink.app.core.security import get_password_hash
from hopelink.app.core.jwt import create_user_token
from hopelink.app.models.enums import UserRole
from hopelink.app.models.user import User
from hopelink.app.services.cache import CacheService
import hopelink.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
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

TEST_PASSWORD = "secret123"
_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.published = []
        self.fail = False  # Simulate an outage
        self._closed = False

    def _check(self):
        if self.fail:
            raise ConnectionError("Redis unavailable")

    async def ping(self):
        if self._closed or self.fail:
            return False
        return True

    async def get(self, key):
        self._check()
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.store[key] = value
        return True

    async def delete(self, key):
        self._check()
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        self._check()
        return 1 if key in self.store else 0

    async def publish(self, channel, message):
        self._check()
        self.published.append((channel, message))
        return 0

    async def flushdb(self):
        self.store = {}
        self.published = []
        self.fail = False

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
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()
    await CacheService.clear()
    redis_circuit_breaker.reset_state()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def redis(redis_client_session):
    return redis_client_session


_usernames = itertools.count(1)


@pytest.fixture
def make_user(db_session):
    """Insert a user directly and return (user, auth headers)."""
    async def _make(role: UserRole, username: str = None, full_name: str = None):
        username = username or f"{role.value}{next(_usernames)}"
        user = User(
            email=f"{username}@example.com",
            username=username,
            full_name=full_name,
            hashed_password=_PASSWORD_HASH,
            role=role,
            is_active=True,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user, {"Authorization": f"Bearer {create_user_token(user)}"}

    return _make


@pytest.fixture
async def donor(make_user):
    return await make_user(UserRole.DONOR, full_name="Dana Donor")


@pytest.fixture
async def recipient(make_user):
    return await make_user(UserRole.RECIPIENT, full_name="Riley Recipient")


@pytest.fixture
async def volunteer(make_user):
    return await make_user(UserRole.VOLUNTEER)


@pytest.fixture
async def admin(make_user):
    return await make_user(UserRole.ADMIN)


@pytest.fixture
def new_donation():
    """Post a donation through the API and return its JSON."""
    async def _post(client, headers, **overrides):
        payload = {
            "title": "Winter coats",
            "category": "clothing",
            "quantity": 3,
            "condition": "good",
            "pickup_location": "12 Main St",
        }
        payload.update(overrides)
        response = await client.post("/v1/donations", json=payload, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()

    return _post
