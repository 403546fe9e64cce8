"""Shared test fixtures for settings, async database and sessions."""

from collections.abc import AsyncGenerator
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from servel_api.core.config import Settings
from servel_api.models.base import Base
from servel_api.services.upsert_service import build_upsert


@pytest.fixture
def settings() -> Settings:
    """Test application settings."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        database_url="sqlite+aiosqlite:///:memory:",
        sync_enabled=False,
        sync_interval=5,
    )


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an in-memory async SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """Create a per-test async session."""
    session_factory = async_sessionmaker(async_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


async def _sqlite_upsert_chunk(session, table, rows, key_columns, update_columns, guard):
    """Run the real chunk upsert statement on SQLite.

    SQLite has no ``xmax``, so inserted rows are told apart from updated ones
    by the keys present before the statement.
    """
    key_cols = [table.c[col] for col in key_columns]
    before = {tuple(row) for row in (await session.execute(select(*key_cols))).all()}
    stmt = build_upsert(table, rows, key_columns, update_columns, guard, insert=sqlite_insert)
    written = (await session.execute(stmt.returning(*key_cols))).all()
    inserted = sum(1 for row in written if tuple(row) not in before)
    return inserted, len(written) - inserted


@pytest.fixture
def sqlite_upserts():
    """Route upsert_records() chunks through SQLite's ON CONFLICT support."""
    with patch("servel_api.services.upsert_service._upsert_chunk", _sqlite_upsert_chunk):
        yield
