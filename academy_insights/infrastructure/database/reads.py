# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Timeout-bounded reads over an AsyncSession.

Repositories of the analytics core extend TimedReader so that every query
against the academy store runs under the configured read timeout. A
timeout or a SQLAlchemy failure is raised as TransientDataError, which the
batch jobs count as a per-student failure and the API maps to 503.
"""

import asyncio
from typing import Any, Awaitable, TypeVar

from sqlalchemy import Select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from academy_insights.core.exceptions import TransientDataError

T = TypeVar("T")

DEFAULT_READ_TIMEOUT = 10.0


class TimedReader:
    """Base for repositories bound to one session.

    Attributes:
        _db: Async database session.
        _read_timeout: Seconds allowed for each read.
    """

    def __init__(self, db: AsyncSession, read_timeout: float = DEFAULT_READ_TIMEOUT) -> None:
        self._db = db
        self._read_timeout = read_timeout

    @property
    def session(self) -> AsyncSession:
        return self._db

    async def _read(self, operation: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(operation, timeout=self._read_timeout)
        except asyncio.TimeoutError as e:
            raise TransientDataError(
                f"Timed out reading {what}", {"timeout": self._read_timeout}
            ) from e
        except SQLAlchemyError as e:
            raise TransientDataError(f"Failed reading {what}", {"error": str(e)}) from e

    async def _scalars(self, stmt: Select, what: str) -> list[Any]:
        async def run() -> list[Any]:
            result = await self._db.execute(stmt)
            return list(result.scalars().all())

        return await self._read(run(), what)

    async def _rows(self, stmt: Select, what: str) -> list[Any]:
        async def run() -> list[Any]:
            result = await self._db.execute(stmt)
            return list(result.all())

        return await self._read(run(), what)

    async def _scalar(self, stmt: Select, what: str) -> Any:
        async def run() -> Any:
            result = await self._db.execute(stmt)
            return result.scalar_one_or_none()

        return await self._read(run(), what)
