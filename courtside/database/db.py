"""
Database engine and session management (SQLAlchemy async).

Production runs on PostgreSQL through asyncpg; local runs and the test suite
can point DATABASE_URL at sqlite+aiosqlite instead.
"""

import os
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine
)
from sqlalchemy.orm import DeclarativeBase
from dotenv import load_dotenv

load_dotenv()


def _postgres_url() -> str:
    user = os.getenv("POSTGRES_USER", "courtside")
    password = os.getenv("POSTGRES_PASSWORD", "courtside")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    name = os.getenv("POSTGRES_DB", "courtside")
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


DATABASE_URL = os.getenv("DATABASE_URL") or _postgres_url()
IS_SQLITE = DATABASE_URL.startswith("sqlite")


def _engine_options() -> dict:
    options = {
        "echo": os.getenv("SQL_ECHO", "false").lower() == "true",
        "pool_pre_ping": True,
    }
    # aiosqlite keeps a single connection per file; pool sizing only applies to postgres
    if not IS_SQLITE:
        options["pool_size"] = int(os.getenv("DB_POOL_SIZE", "10"))
        options["max_overflow"] = int(os.getenv("DB_MAX_OVERFLOW", "20"))
    return options


engine: AsyncEngine = create_async_engine(DATABASE_URL, **_engine_options())

# expire_on_commit=False: services format rows into dicts after committing
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# Registers the tables on Base.metadata; must come after Base
from courtside.database import models  # noqa: F401, E402


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding one session per request.

    Services commit their own workflows; anything left pending is committed
    here, and an exception rolls the request's work back.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_database():
    """Create any missing tables. Alembic owns the schema in production."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
