# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Risk factor aggregation.

Reduces a student's raw activity rows over the analysis window into a
RiskFactor snapshot:
- Attendance: present counts 1.0, late / early leave / makeup 0.5,
  absent 0, over the scheduled sessions in the window
- Homework and focus: mean of the non-null 1-5 ratings
- Tests: mean of taken tests and the count of tests never taken
- Contact: days since the latest consultation

A factor without observations is absent (None), never zero, so the
scorer can re-normalize the remaining weights.

Usage:
    from academy_insights.domains.risk.aggregator import MetricAggregator

    aggregator = MetricAggregator(active_status="enrolled")
    result = await aggregator.collect(repository, student_id, window_days=28)
"""

import logging
from datetime import date, datetime, timedelta
from typing import Protocol, Sequence

from academy_insights.core.exceptions import AnalyticsValidationError
from academy_insights.domains.risk.models import (
    AggregationResult,
    AssessmentRow,
    AttendanceStatus,
    RiskFactor,
    StudentProfile,
    StudyLogRow,
)
from academy_insights.utils.datetime import days_between, utc_now
from academy_insights.utils.numbers import mean

logger = logging.getLogger(__name__)

ATTENDANCE_CREDIT: dict[int, float] = {
    AttendanceStatus.PRESENT: 1.0,
    AttendanceStatus.LATE: 0.5,
    AttendanceStatus.EARLY_LEAVE: 0.5,
    AttendanceStatus.MAKEUP: 0.5,
    AttendanceStatus.ABSENT: 0.0,
}


class ActivitySource(Protocol):
    """Read access to the raw activity of one student."""

    async def get_student(self, student_id: str) -> StudentProfile | None: ...

    async def list_study_logs(
        self, student_id: str, start: date, end: date
    ) -> list[StudyLogRow]: ...

    async def list_assessments(
        self, student_id: str, start: date, end: date
    ) -> list[AssessmentRow]: ...

    async def get_last_contact(self, student_id: str, until: datetime) -> datetime | None: ...


def attendance_rate(logs: Sequence[StudyLogRow]) -> tuple[float | None, int]:
    """Weighted attendance rate and the number of scheduled sessions.

    Rows without a recognised attendance code are not scheduled sessions.

    Returns:
        (rate in [0, 100] or None when nothing was scheduled, session count)
    """
    credits = [
        ATTENDANCE_CREDIT[log.attendance_status]
        for log in logs
        if log.attendance_status in ATTENDANCE_CREDIT
    ]
    if not credits:
        return None, 0
    return sum(credits) / len(credits) * 100, len(credits)


def build_risk_factor(
    study_logs: Sequence[StudyLogRow],
    assessments: Sequence[AssessmentRow],
    last_contact: datetime | None,
    period_start: date,
    period_end: date,
    as_of: datetime,
) -> RiskFactor:
    """Reduce raw rows to a factor snapshot. Pure function."""
    rate, sessions = attendance_rate(study_logs)
    scores = [float(row.score) for row in assessments if row.score is not None]

    days_since_contact = None
    if last_contact is not None:
        days_since_contact = max(0, days_between(last_contact, as_of))

    return RiskFactor(
        attendance_rate=rate,
        homework_avg=mean(log.homework for log in study_logs if log.homework is not None),
        focus_avg=mean(log.focus for log in study_logs if log.focus is not None),
        test_score_avg=mean(scores),
        missing_test_count=sum(1 for row in assessments if row.score is None),
        days_since_contact=days_since_contact,
        data_points=sessions + len(scores),
        period_start=period_start,
        period_end=period_end,
    )


class MetricAggregator:
    """Collects the factor snapshot of one student.

    Attributes:
        active_status: Student status that counts as actively enrolled.
    """

    def __init__(self, active_status: str = "enrolled") -> None:
        self.active_status = active_status

    async def collect(
        self,
        source: ActivitySource,
        student_id: str,
        window_days: int,
        as_of: datetime | None = None,
    ) -> AggregationResult:
        """Aggregate a student's activity over the last `window_days` days.

        Args:
            source: Activity reader, usually a RiskRepository.
            student_id: Student to aggregate.
            window_days: Lookback window, must be positive.
            as_of: End of the window, defaults to now.

        Returns:
            AggregationResult; not applicable for missing or inactive students.

        Raises:
            AnalyticsValidationError: If window_days is not positive.
        """
        if window_days <= 0:
            raise AnalyticsValidationError(
                "Lookback window must be positive", {"window_days": window_days}
            )

        student = await source.get_student(student_id)
        if student is None:
            return AggregationResult.not_applicable(student_id, "student not found")
        if not student.is_active or student.status != self.active_status:
            return AggregationResult.not_applicable(
                student_id, f"student status is {student.status}"
            )

        as_of = as_of or utc_now()
        period_end = as_of.date()
        period_start = period_end - timedelta(days=window_days)

        study_logs = await source.list_study_logs(student_id, period_start, period_end)
        assessments = await source.list_assessments(student_id, period_start, period_end)
        last_contact = await source.get_last_contact(student_id, as_of)

        factors = build_risk_factor(
            study_logs, assessments, last_contact, period_start, period_end, as_of
        )
        logger.debug(
            "Aggregated student %s: %d data points over %d days",
            student_id,
            factors.data_points,
            window_days,
        )
        return AggregationResult(student_id=student_id, applicable=True, factors=factors)
