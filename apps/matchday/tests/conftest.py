"""
Shared pytest configuration for matchday tests.

Each test gets its own SQLite database file (aiosqlite) so store state
never leaks between tests. Time is driven by ``FakeClock`` where a test
needs exact match minutes.
"""

import os

# Must be set before the app modules are imported
os.environ.setdefault("ENV", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./matchday_test.db")
os.environ.setdefault("REDIS_ENABLED", "false")

import bcrypt
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from matchday.database.db import Base, build_session_factory
from matchday.services import user_service
from matchday.services.access_service import guard, system_store
from matchday.services.store import ReplicatedStore

ADMIN_EMAIL = "admin@example.com"
PASSWORD = "secret123"

_real_gensalt = bcrypt.gensalt


class FakeClock:
    """Deterministic epoch-millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """Cheap bcrypt rounds so registering users does not dominate test time."""
    monkeypatch.setattr(bcrypt, "gensalt", lambda *args, **kwargs: _real_gensalt(rounds=4))


@pytest.fixture(autouse=True)
def privileged_admin_email(monkeypatch):
    monkeypatch.setenv("PRIVILEGED_EMAILS", ADMIN_EMAIL)


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Fresh database file per test."""
    # NullPool: every session opens its own connection, like separate clients
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'matchday_test.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        from matchday.database import models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def store(session_factory):
    """Replicated store over the test database."""
    replicated_store = ReplicatedStore(session_factory)
    yield replicated_store
    replicated_store.broker.stop()


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def admin(store):
    """A privileged user."""
    return await user_service.register(store, "match admin", ADMIN_EMAIL, PASSWORD)


@pytest_asyncio.fixture
async def admin_store(store, admin):
    return guard(store, admin["id"])


@pytest_asyncio.fixture
async def players(store):
    """Four standard users: Ana, Bruno, Carla, Davi (in that order)."""
    names = ["ana", "bruno", "carla", "davi"]
    return [
        await user_service.register(store, name, f"{name}@example.com", PASSWORD)
        for name in names
    ]


@pytest_asyncio.fixture
async def player_store(store, players):
    """Store view of the first (standard) player."""
    return guard(store, players[0]["id"])


@pytest.fixture
def internal_store(store):
    return system_store(store)
