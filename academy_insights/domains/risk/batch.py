# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Risk batch orchestration.

Runs aggregation, scoring and alert evaluation for every actively enrolled
student. Each student is computed in its own repository scope (one
transaction), with a bounded number of students in flight at a time.

Per-student failures become StudentFailure outcomes in the summary and
never abort the run. A cooperative stop event halts the run before the
next student starts; students already in flight finish.

Usage:
    orchestrator = RiskBatchOrchestrator(repository_scope_factory(10.0))
    summary = await orchestrator.run()
    print(summary.updated, summary.alerts_created)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from academy_insights.domains.risk.aggregator import MetricAggregator
from academy_insights.domains.risk.alerts import AlertEngine
from academy_insights.domains.risk.config import RiskConfig
from academy_insights.domains.risk.models import AlertDecision
from academy_insights.domains.risk.repository import RepositoryScope
from academy_insights.domains.risk.scorer import RiskScorer
from academy_insights.utils.datetime import utc_now
from academy_insights.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StudentSuccess:
    """A student scored and persisted."""

    student_id: str
    score: float
    risk_level: str
    alerts_created: int = 0
    alerts_updated: int = 0


@dataclass(frozen=True)
class StudentSkipped:
    """A student the aggregator found not applicable."""

    student_id: str
    reason: str


@dataclass(frozen=True)
class StudentFailure:
    """A student whose computation raised."""

    student_id: str
    error_type: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {
            "student_id": self.student_id,
            "error_type": self.error_type,
            "message": self.message,
        }


StudentOutcome = StudentSuccess | StudentSkipped | StudentFailure


@dataclass
class BatchSummary:
    """Result of one batch run.

    Attributes:
        batch_id: Identifier stamped on every score of the run.
        calculated_at: Reference time of the run.
        total_students: Active students found at the start.
        considered: Students whose computation was started.
        updated: Students with a new score row.
        skipped: Students found not applicable.
        failed: Students whose computation failed.
        alerts_created: New alerts opened.
        alerts_updated: Open alerts refreshed instead of duplicated.
        stopped: Whether the stop signal left students unprocessed.
        errors: Failure details.
    """

    batch_id: str
    calculated_at: datetime
    total_students: int = 0
    considered: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    alerts_created: int = 0
    alerts_updated: int = 0
    stopped: bool = False
    errors: list[StudentFailure] = field(default_factory=list)

    def record(self, outcome: StudentOutcome) -> None:
        self.considered += 1
        if isinstance(outcome, StudentSuccess):
            self.updated += 1
            self.alerts_created += outcome.alerts_created
            self.alerts_updated += outcome.alerts_updated
        elif isinstance(outcome, StudentSkipped):
            self.skipped += 1
        else:
            self.failed += 1
            self.errors.append(outcome)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for task results and logging."""
        return {
            "batch_id": self.batch_id,
            "calculated_at": self.calculated_at.isoformat(),
            "total_students": self.total_students,
            "considered": self.considered,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "alerts_created": self.alerts_created,
            "alerts_updated": self.alerts_updated,
            "stopped": self.stopped,
            "errors": [error.to_dict() for error in self.errors],
        }


class RiskBatchOrchestrator:
    """Computes risk scores for all active students.

    Attributes:
        _scope: Factory of per-student repository scopes.
        _concurrency: Maximum students in flight.
        _active_status: Student status that counts as actively enrolled.
    """

    def __init__(
        self,
        repository_scope: RepositoryScope,
        concurrency: int = 8,
        active_status: str = "enrolled",
        aggregator: MetricAggregator | None = None,
        scorer: RiskScorer | None = None,
        alert_engine: AlertEngine | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._scope = repository_scope
        self._concurrency = concurrency
        self._active_status = active_status
        self._aggregator = aggregator or MetricAggregator(active_status=active_status)
        self._scorer = scorer or RiskScorer()
        self._alert_engine = alert_engine or AlertEngine()

    async def run(
        self,
        as_of: datetime | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> BatchSummary:
        """Run the batch over every active student.

        The config snapshot is read once, so a config update during the
        run does not mix versions within it.

        Args:
            as_of: Reference time for the analysis window, defaults to now.
            stop_event: Set it to stop before the next student starts.

        Returns:
            BatchSummary with per-outcome counts.
        """
        calculated_at = as_of or utc_now()
        summary = BatchSummary(batch_id=str(uuid4()), calculated_at=calculated_at)
        stop = stop_event or asyncio.Event()

        bind_context(batch_id=summary.batch_id)
        try:
            await self._run(summary, stop)
        finally:
            clear_context()
        return summary

    async def _run(self, summary: BatchSummary, stop: asyncio.Event) -> None:
        calculated_at = summary.calculated_at
        async with self._scope() as repository:
            config = await repository.get_current_config()
            student_ids = await repository.list_active_student_ids(self._active_status)
        summary.total_students = len(student_ids)

        logger.info(
            "Risk batch %s started: %d students, config v%d",
            summary.batch_id,
            len(student_ids),
            config.version,
        )

        semaphore = asyncio.Semaphore(self._concurrency)

        async def process(student_id: str) -> StudentOutcome | None:
            async with semaphore:
                if stop.is_set():
                    return None
                return await self._process_student(
                    student_id, config, summary.batch_id, calculated_at
                )

        outcomes = await asyncio.gather(*(process(student_id) for student_id in student_ids))

        for outcome in outcomes:
            if outcome is None:
                summary.stopped = True
            else:
                summary.record(outcome)

        logger.info(
            "Risk batch %s finished: considered=%d updated=%d skipped=%d failed=%d "
            "alerts_created=%d alerts_updated=%d stopped=%s",
            summary.batch_id,
            summary.considered,
            summary.updated,
            summary.skipped,
            summary.failed,
            summary.alerts_created,
            summary.alerts_updated,
            summary.stopped,
        )

    async def _process_student(
        self,
        student_id: str,
        config: RiskConfig,
        batch_id: str,
        calculated_at: datetime,
    ) -> StudentOutcome:
        try:
            async with self._scope() as repository:
                aggregation = await self._aggregator.collect(
                    repository, student_id, config.analysis_period_days, calculated_at
                )
                if not aggregation.applicable or aggregation.factors is None:
                    return StudentSkipped(student_id, aggregation.reason or "not applicable")

                previous = await repository.get_previous_score(student_id)
                result = self._scorer.score(aggregation.factors, config, previous)
                row = await repository.insert_score(
                    student_id, aggregation.factors, result, batch_id, calculated_at
                )

                open_alerts = await repository.list_open_alerts(student_id)
                decisions = self._alert_engine.evaluate(
                    student_id, result, previous, aggregation.factors, open_alerts, config
                )
                created = updated = 0
                for decision in decisions:
                    applied = await repository.apply_alert_decision(decision, row.id)
                    if applied == AlertDecision.CREATE:
                        created += 1
                    else:
                        updated += 1
        except Exception as e:
            # One student's failure is recorded and the batch continues
            logger.error(
                "Risk computation failed for student %s: %s",
                student_id,
                e,
                exc_info=True,
            )
            return StudentFailure(student_id, type(e).__name__, str(e))

        return StudentSuccess(
            student_id=student_id,
            score=result.score,
            risk_level=result.risk_level.value,
            alerts_created=created,
            alerts_updated=updated,
        )
