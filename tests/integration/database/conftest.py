# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest fixtures for database integration tests.

The repositories run against PostgreSQL when TEST_DATABASE_URL is set
and otherwise against a throwaway SQLite file through aiosqlite. On SQLite
the driver's own transaction handling is switched off so that SAVEPOINTs
(alert inserts, config saves, days-in-funnel updates) behave as they do
on PostgreSQL.
"""

import os
from pathlib import Path
from typing import AsyncGenerator

import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from academy_insights.infrastructure.database.models.base import Base


@pytest_asyncio.fixture(scope="function")
async def academy_db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create an async engine on a fresh academy schema."""
    url = os.environ.get("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'academy.db'}")
    engine = create_async_engine(url, echo=False)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine.sync_engine, "connect")
        def _no_implicit_transactions(dbapi_connection, connection_record) -> None:
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _explicit_begin(conn) -> None:
            conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def academy_db_session(
    academy_db_engine: AsyncEngine,
) -> AsyncGenerator[AsyncSession, None]:
    """Create an async session configured like the application's."""
    async_session = async_sessionmaker(
        academy_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()
