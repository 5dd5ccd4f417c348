# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dependencies shared by the v1 routers.

Read endpoints need any authenticated caller; endpoints that change
alerts, config or funnel stages need an employee identity so the change
can be attributed. Services are built per request around the request
session and are overridden with mocks in the API tests.

Example:
    @router.get("/scores/{student_id}")
    async def get_score(student_id: str, user: AuthenticatedUser, service: RiskServiceDep):
        ...
"""

import logging
from typing import Annotated, AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from academy_insights.api.middleware.auth import CurrentUser, get_current_user
from academy_insights.core.config import Settings, get_settings
from academy_insights.domains.funnel.service import FunnelService
from academy_insights.domains.risk.batch import RiskBatchOrchestrator
from academy_insights.domains.risk.repository import repository_scope_factory
from academy_insights.domains.risk.service import RiskService
from academy_insights.infrastructure.database import get_session

logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session, committed after the endpoint returns."""
    async with get_session() as session:
        yield session


def require_auth(request: Request) -> CurrentUser:
    """Return the caller or answer 401."""
    user = get_current_user(request)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_employee(request: Request) -> CurrentUser:
    """Require an authenticated user acting as an academy employee.

    Mutations are attributed to the employee, so tokens without an
    employee_id claim are refused.

    Raises:
        HTTPException: If not authenticated or not an employee.
    """
    user = require_auth(request)
    if not user.is_employee:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Employee identity required",
        )
    return user


def get_app_settings() -> Settings:
    return get_settings()


def get_risk_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> RiskService:
    """Get RiskService bound to the request session."""
    return RiskService(
        db,
        read_timeout=settings.risk.read_timeout_seconds,
        history_limit=settings.risk.history_limit,
    )


def get_funnel_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> FunnelService:
    """Get FunnelService bound to the request session."""
    return FunnelService(db, read_timeout=settings.risk.read_timeout_seconds)


def get_batch_orchestrator(
    settings: Settings = Depends(get_app_settings),
) -> RiskBatchOrchestrator:
    """Get a RiskBatchOrchestrator opening one session per student."""
    return RiskBatchOrchestrator(
        repository_scope_factory(settings.risk.read_timeout_seconds),
        concurrency=settings.risk.batch_concurrency,
        active_status=settings.risk.active_status,
    )


AcademyDB = Annotated[AsyncSession, Depends(get_db)]
AuthenticatedUser = Annotated[CurrentUser, Depends(require_auth)]
EmployeeUser = Annotated[CurrentUser, Depends(require_employee)]
RiskServiceDep = Annotated[RiskService, Depends(get_risk_service)]
FunnelServiceDep = Annotated[FunnelService, Depends(get_funnel_service)]
BatchOrchestrator = Annotated[RiskBatchOrchestrator, Depends(get_batch_orchestrator)]
