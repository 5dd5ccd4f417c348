# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Async engine and sessions for the academy database.

The engine is process state: the API opens it in its lifespan and the
Dramatiq actors open and dispose it around each job, because each
worker thread runs its own event loop and asyncpg connections cannot
cross loops.

Example:
    await init_database(get_settings())
    async with get_session() as session:
        students = (await session.scalars(select(StudentRecord))).all()
"""

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

if TYPE_CHECKING:
    from academy_insights.core.config.settings import Settings

_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None


class DatabaseError(Exception):
    """The academy database could not be opened or a session failed.

    Attributes:
        message: What was being attempted.
        original_error: The SQLAlchemy error behind it, if any.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error is None:
            return self.message
        return f"{self.message}: {self.original_error}"


async def init_database(settings: "Settings") -> None:
    """Open the engine and sessionmaker from ``settings.database``.

    Raises:
        DatabaseError: If SQLAlchemy rejects the configuration.
    """
    global _engine, _sessionmaker

    db = settings.database
    try:
        engine = create_async_engine(
            db.url,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_pre_ping=True,
            pool_recycle=1800,
            echo=db.echo,
        )
    except SQLAlchemyError as e:
        raise DatabaseError("Could not create the academy database engine", e) from e

    _engine = engine
    _sessionmaker = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def close_database() -> None:
    global _engine, _sessionmaker

    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _sessionmaker = None


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Return the sessionmaker opened by init_database().

    Raises:
        DatabaseError: If init_database() has not run.
    """
    if _sessionmaker is None:
        raise DatabaseError("Academy database is not initialized; call init_database() first")
    return _sessionmaker


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Session scope that commits on exit and rolls back on any error.

    SQLAlchemy errors surface as DatabaseError; everything else is
    re-raised unchanged after the rollback.
    """
    async with get_sessionmaker()() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise DatabaseError("Academy database operation failed", e) from e
        except Exception:
            await session.rollback()
            raise


async def check_database_connection() -> bool:
    """Return True when ``SELECT 1`` succeeds on the academy database."""
    if _engine is None:
        return False

    try:
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return False
    return True
