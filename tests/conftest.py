"""
Shared test fixtures.

These replace real infrastructure with lightweight local alternatives:
- PostgreSQL → SQLite file in tmp_path (via aiosqlite)
- Redis → fakeredis (pure Python Redis mock)
- HTTP server → httpx.AsyncClient with ASGI transport (no network)
- Wall clock → ManualClock, moved forward explicitly

The database is a file rather than :memory: so that every session gets its
own connection, which is what the concurrent-claim tests need.
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import AsyncClient, ASGITransport

from api.dependencies import get_db, get_redis, get_runtime
from api.main import create_app
from config.settings import settings
from jobs.registry import HandlerRegistry
from models.base import Base, create_engine_from_url, create_session_factory
from scheduler.clock import ManualClock
from scheduler.service import JobScheduler
from scheduler.store import JobStore
from worker.runtime import JobRuntime

START = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    """Create a fresh database file for each test."""
    engine = create_engine_from_url(f"sqlite+aiosqlite:///{tmp_path}/jobs.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return create_session_factory(async_engine)


@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def store(session_factory, clock):
    return JobStore(session_factory, clock)


@pytest.fixture
def scheduler(store, clock):
    return JobScheduler(store, clock)


@pytest_asyncio.fixture
async def fake_redis():
    """Create a fake Redis instance (in-memory, no real Redis needed)."""
    r = FakeRedis()
    yield r
    await r.flushall()


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": settings.ADMIN_API_TOKEN}


@pytest_asyncio.fixture
async def runtime(session_factory, fake_redis, clock):
    """A runtime whose dispatcher is never started; tests drive it directly."""
    return JobRuntime(session_factory, HandlerRegistry(), redis_client=fake_redis, clock=clock)


@pytest_asyncio.fixture
async def client(session_factory, fake_redis, runtime):
    """
    Create a test HTTP client that talks directly to the FastAPI app.

    ASGITransport does not run the lifespan, so nothing is put on app.state.
    dependency_overrides hands the endpoints the test database, fake Redis
    and runtime instead.
    """
    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return fake_redis

    async def override_get_runtime():
        return runtime

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_runtime] = override_get_runtime

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
