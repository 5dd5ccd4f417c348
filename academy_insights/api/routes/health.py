# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Liveness and readiness checks."""

import logging
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Response, status
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from academy_insights import __version__
from academy_insights.core.config import get_settings
from academy_insights.infrastructure.background.broker import get_broker_manager
from academy_insights.infrastructure.background.scheduler import get_scheduler
from academy_insights.infrastructure.database import check_database_connection

logger = logging.getLogger(__name__)

router = APIRouter()

_started_at = time.monotonic()


class HealthResponse(BaseModel):
    status: str = Field(description="Always 'healthy' while the process serves requests")
    timestamp: datetime = Field(description="Server time")
    version: str = Field(description="Package version")
    environment: str = Field(description="Deployment environment")
    uptime_seconds: int = Field(description="Seconds since the API module was loaded")


class ReadinessResponse(BaseModel):
    ready: bool = Field(description="True when the academy database answers")
    checks: dict[str, Any] = Field(description="Per-dependency results")


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness check. Touches no external dependency."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        environment=get_settings().environment,
        uptime_seconds=int(time.monotonic() - _started_at),
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(response: Response) -> ReadinessResponse:
    """Readiness check.

    Only the academy database gates readiness. The job queue depths and
    the cron entries (runs and enqueue failures) are reported alongside
    for operators; a Redis outage delays the nightly jobs but does not
    stop the API from serving reads.
    """
    began = time.perf_counter()
    db_ok = await check_database_connection()
    db_latency_ms = round((time.perf_counter() - began) * 1000, 2)

    if not db_ok:
        logger.warning("Readiness failed: academy database unreachable")
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    queues = await run_in_threadpool(get_broker_manager().get_queue_stats)

    return ReadinessResponse(
        ready=db_ok,
        checks={
            "database": {
                "status": "healthy" if db_ok else "unhealthy",
                "latency_ms": db_latency_ms,
            },
            "queues": queues,
            "scheduler": get_scheduler().get_stats(),
        },
    )
