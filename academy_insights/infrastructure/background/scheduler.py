# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Cron triggers for the nightly academy jobs.

APScheduler runs inside the API process and only enqueues messages; the
risk batch and the days-in-funnel refresh themselves execute in the
Dramatiq workers. Cron expressions are read in the academy's timezone
(``RISK_TIMEZONE``).

Example:
    scheduler = await start_scheduler()
    scheduler.get_stats()["task_count"]  # 2
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import dramatiq
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from academy_insights.core.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    """A cron entry that sends one actor message per firing.

    Attributes:
        name: Display name used in logs and stats.
        actor_name: Registered Dramatiq actor to send to.
        cron_expression: Five-field crontab string.
        args: Positional message arguments.
        kwargs: Keyword message arguments.
        id: Job id shared with APScheduler.
        enabled: Disabled entries are kept but never fire.
        last_run: When a message was last sent.
        run_count: Messages sent.
        error_count: Firings that failed to send.
    """

    name: str
    actor_name: str
    cron_expression: str
    args: tuple = field(default_factory=tuple)
    kwargs: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid4()))
    enabled: bool = True
    last_run: datetime | None = None
    run_count: int = 0
    error_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "actor_name": self.actor_name,
            "cron_expression": self.cron_expression,
            "enabled": self.enabled,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "error_count": self.error_count,
        }


class DramatiqScheduler:
    """Keeps the cron entries and mirrors them into APScheduler while running.

    Entries may be added before ``start()``; they are scheduled when the
    underlying AsyncIOScheduler is created.
    """

    def __init__(self, timezone_name: str = "UTC") -> None:
        self._timezone = timezone_name
        self._tasks: dict[str, ScheduledTask] = {}
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def _trigger(self, cron_expression: str) -> CronTrigger:
        return CronTrigger.from_crontab(cron_expression, timezone=self._timezone)

    def _schedule(self, task: ScheduledTask, trigger: CronTrigger | None = None) -> None:
        if self._scheduler is None or not task.enabled:
            return
        self._scheduler.add_job(
            self._execute_task,
            trigger=trigger or self._trigger(task.cron_expression),
            args=[task.id],
            id=task.id,
            name=task.name,
        )

    def add_cron_task(
        self,
        name: str,
        actor_name: str,
        cron_expression: str,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
        enabled: bool = True,
    ) -> ScheduledTask:
        """Register a cron entry.

        Args:
            name: Display name.
            actor_name: Actor to send to when the entry fires.
            cron_expression: Crontab string, minute through weekday.
            args: Positional message arguments.
            kwargs: Keyword message arguments.
            enabled: Whether the entry fires.

        Returns:
            The registered entry.

        Raises:
            ValueError: If the cron expression cannot be parsed.
        """
        trigger = self._trigger(cron_expression)
        task = ScheduledTask(
            name=name,
            actor_name=actor_name,
            cron_expression=cron_expression,
            args=args,
            kwargs=kwargs or {},
            enabled=enabled,
        )
        self._tasks[task.id] = task
        self._schedule(task, trigger)

        logger.info("Scheduled %s at '%s' (%s)", name, cron_expression, self._timezone)
        return task

    async def _execute_task(self, task_id: str) -> None:
        task = self._tasks.get(task_id)
        if task is None or not task.enabled:
            return

        try:
            dramatiq.get_broker().get_actor(task.actor_name).send(*task.args, **task.kwargs)
        except Exception as e:
            # Next firing retries
            task.error_count += 1
            logger.error("Could not enqueue %s: %s", task.name, e)
            return

        task.run_count += 1
        task.last_run = datetime.now(timezone.utc)
        logger.debug("Enqueued %s", task.name)

    def list_tasks(self) -> list[ScheduledTask]:
        return list(self._tasks.values())

    async def start(self) -> None:
        if self._scheduler is not None:
            return

        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        for task in self._tasks.values():
            self._schedule(task)
        self._scheduler.start()
        logger.info("Job scheduler started with %d entries", len(self._tasks))

    async def stop(self) -> None:
        if self._scheduler is None:
            return

        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Job scheduler stopped")

    def get_stats(self) -> dict[str, Any]:
        tasks = list(self._tasks.values())
        return {
            "is_running": self.is_running,
            "task_count": len(tasks),
            "total_runs": sum(task.run_count for task in tasks),
            "total_errors": sum(task.error_count for task in tasks),
            "tasks": [task.to_dict() for task in tasks],
        }


_scheduler: DramatiqScheduler | None = None


def get_scheduler() -> DramatiqScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = DramatiqScheduler(timezone_name=get_settings().risk.timezone)
    return _scheduler


async def start_scheduler() -> DramatiqScheduler:
    """Start the process-wide scheduler with the nightly academy jobs.

    The risk batch and the days-in-funnel refresh are registered on the
    first start only.
    """
    from academy_insights.infrastructure.background import tasks  # noqa: F401

    risk = get_settings().risk
    scheduler = get_scheduler()
    await scheduler.start()

    if not scheduler.list_tasks():
        scheduler.add_cron_task("Nightly Risk Batch", "run_risk_batch", risk.batch_cron)
        scheduler.add_cron_task(
            "Days In Funnel Refresh", "refresh_funnel_days", risk.funnel_refresh_cron
        )

    return scheduler


async def stop_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None
