# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Risk and funnel background tasks for Academy Insights.

Actors:
    - run_risk_batch: Scores every enrolled student, opens and refreshes alerts
    - refresh_funnel_days: Recomputes days_in_funnel for staged students

Each run opens the academy database pool on the worker thread's event
loop and disposes it afterwards, so these queues are meant to be served
with one thread per worker process:

    dramatiq academy_insights.infrastructure.background.tasks --queues risk funnel --threads 1
"""

import asyncio
import logging
from datetime import datetime
from typing import Any

import dramatiq

from academy_insights.core.config import get_settings
from academy_insights.domains.funnel.service import FunnelService
from academy_insights.domains.risk.batch import RiskBatchOrchestrator
from academy_insights.domains.risk.repository import repository_scope_factory
from academy_insights.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from academy_insights.infrastructure.background.tasks.base import run_async
from academy_insights.infrastructure.database import close_database, get_session, init_database
from academy_insights.utils.datetime import ensure_utc

# Setup broker before defining actors
setup_dramatiq()

logger = logging.getLogger(__name__)


async def execute_risk_batch(as_of: datetime | None = None) -> dict[str, Any]:
    """Run the risk batch against the academy database.

    The run is asked to stop once ``RISK_BATCH_TIME_BUDGET_SECONDS`` have
    passed. Students already in flight finish and the summary comes back
    with ``stopped`` set.

    Args:
        as_of: Reference time of the run, defaults to now.

    Returns:
        The batch summary as a dictionary.
    """
    settings = get_settings()
    await init_database(settings)
    try:
        orchestrator = RiskBatchOrchestrator(
            repository_scope_factory(settings.risk.read_timeout_seconds),
            concurrency=settings.risk.batch_concurrency,
            active_status=settings.risk.active_status,
        )
        stop = asyncio.Event()
        deadline = asyncio.get_running_loop().call_later(
            settings.risk.batch_time_budget_seconds, stop.set
        )
        try:
            summary = await orchestrator.run(as_of=as_of, stop_event=stop)
        finally:
            deadline.cancel()
        return summary.to_dict()
    finally:
        await close_database()


async def execute_funnel_refresh(as_of: datetime | None = None) -> dict[str, Any]:
    """Recompute days_in_funnel in a single session."""
    settings = get_settings()
    await init_database(settings)
    try:
        async with get_session() as session:
            service = FunnelService(session, read_timeout=settings.risk.read_timeout_seconds)
            result = await service.refresh_days_in_funnel(as_of=as_of)
        return result.model_dump()
    finally:
        await close_database()


@dramatiq.actor(
    queue_name=Queues.RISK,
    max_retries=1,
    time_limit=3600000,  # 1 hour, above RISK_BATCH_TIME_BUDGET_SECONDS
    priority=Priority.NORMAL,
)
def run_risk_batch(as_of: str | None = None) -> dict[str, Any]:
    """Scheduler job: run the nightly risk batch.

    Per-student failures are part of the returned summary. The actor
    itself fails, and is retried once, only when the batch could not
    start, e.g. the database is unreachable.

    Args:
        as_of: ISO 8601 reference time, defaults to now.

    Returns:
        Batch summary with per-outcome counts and failure details.
    """
    logger.info("Risk batch job triggered")

    reference = ensure_utc(datetime.fromisoformat(as_of)) if as_of else None
    try:
        result = run_async(execute_risk_batch(reference))
    except Exception as e:
        logger.error("Risk batch job failed: %s", e, exc_info=True)
        raise

    logger.info(
        "Risk batch job completed: %d updated, %d failed",
        result["updated"],
        result["failed"],
    )
    return result


@dramatiq.actor(
    queue_name=Queues.FUNNEL,
    max_retries=1,
    time_limit=600000,  # 10 minutes
    priority=Priority.LOW,
)
def refresh_funnel_days(as_of: str | None = None) -> dict[str, Any]:
    """Scheduler job: refresh days_in_funnel for staged students.

    Args:
        as_of: ISO 8601 reference time, defaults to now.

    Returns:
        Counts of considered, updated and failed students.
    """
    logger.info("Funnel days refresh job triggered")

    reference = ensure_utc(datetime.fromisoformat(as_of)) if as_of else None
    try:
        result = run_async(execute_funnel_refresh(reference))
    except Exception as e:
        logger.error("Funnel days refresh job failed: %s", e, exc_info=True)
        raise

    logger.info(
        "Funnel days refresh job completed: %d updated, %d failed",
        result["updated"],
        result["failed"],
    )
    return result


def get_risk_actors() -> list[dramatiq.Actor]:
    """Get all risk and funnel actors."""
    return [run_risk_batch, refresh_funnel_days]
