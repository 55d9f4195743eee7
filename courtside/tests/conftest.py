"""
Shared pytest configuration.

Tests run on a throwaway SQLite file (aiosqlite) unless TEST_DATABASE_URL
points somewhere else. Whatever the URL, the database name must contain
"test": the fixtures drop and recreate every table.
"""

import os
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool


def _resolve_test_database_url() -> str:
    url = os.getenv("TEST_DATABASE_URL")
    if not url:
        url = f"sqlite+aiosqlite:///{Path(tempfile.gettempdir()) / 'courtside_test.db'}"

    db_name = url.rsplit("/", 1)[-1].split("?")[0]
    if "test" not in db_name.lower():
        raise RuntimeError(
            f"Refusing to run tests against database '{db_name}': "
            f"its name must contain 'test'. Set TEST_DATABASE_URL, e.g. "
            f"postgresql+asyncpg://.../courtside_test"
        )
    return url


# Resolved at import so a bad URL fails the run before any table is dropped
TEST_DATABASE_URL = _resolve_test_database_url()

# Application modules read these at import time
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)

from courtside.database import db  # noqa: E402
from courtside.database.db import Base  # noqa: E402
from courtside.services import change_feed  # noqa: E402


def _session_maker(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_engine(monkeypatch):
    """Fresh schema per test; db.AsyncSessionLocal is pointed at it."""
    # NullPool: each test gets its own event loop, so connections must not be reused
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    # Live listing loaders and the closer worker open their own sessions
    monkeypatch.setattr(db, "AsyncSessionLocal", _session_maker(engine))

    yield engine

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Session on the test engine, starting from empty tables."""
    # Children before parents so foreign keys never block cleanup
    async with test_engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())

    async with _session_maker(test_engine)() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest.fixture(autouse=True)
def fresh_change_feed(monkeypatch):
    """Give every test its own change feed so subscriptions never leak between tests."""
    feed = change_feed.ChangeFeed()
    monkeypatch.setattr(change_feed, "_change_feed", feed)
    return feed
