# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Data access for the risk domain.

RiskRepository wraps one AsyncSession. Every read is bounded by the
configured read timeout; a timeout or a SQLAlchemy failure surfaces as
TransientDataError so the batch can count the student as failed and move on.

Open alerts are protected by a partial unique index on
(student_id, alert_type). Inserting an alert runs in a savepoint and falls
back to updating the open alert that won the race.
"""

import logging
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import date, datetime
from typing import AsyncIterator, Callable

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased

from academy_insights.core.exceptions import ConfigConflictError
from academy_insights.domains.risk.config import RiskConfig
from academy_insights.domains.risk.models import (
    AlertDecision,
    AlertSeverity,
    AlertStatus,
    AlertType,
    AssessmentRow,
    OpenAlert,
    PreviousScore,
    RiskFactor,
    RiskLevel,
    RiskScoreResult,
    StudentProfile,
    StudyLogRow,
)
from academy_insights.infrastructure.database.connection import get_session
from academy_insights.infrastructure.database.models import (
    OPEN_ALERT_STATUSES,
    AssessmentLog,
    Consultation,
    RiskAlert,
    RiskConfigVersion,
    Student,
    StudentRiskScore,
    StudyLog,
)
from academy_insights.infrastructure.database.reads import DEFAULT_READ_TIMEOUT, TimedReader
from academy_insights.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class RiskRepository(TimedReader):
    """Queries and writes for risk scores, alerts and config versions."""

    # =========================================================================
    # Activity (aggregation inputs)
    # =========================================================================

    async def get_student(self, student_id: str) -> StudentProfile | None:
        student = await self._scalar(select(Student).where(Student.id == student_id), "student")
        if student is None:
            return None
        return StudentProfile(
            student_id=student.id,
            name=student.name,
            status=student.status,
            is_active=student.is_active,
        )

    async def list_active_student_ids(self, active_status: str) -> list[str]:
        stmt = (
            select(Student.id)
            .where(Student.is_active.is_(True), Student.status == active_status)
            .order_by(Student.id)
        )
        return await self._scalars(stmt, "active students")

    async def list_study_logs(self, student_id: str, start: date, end: date) -> list[StudyLogRow]:
        stmt = (
            select(StudyLog)
            .where(
                StudyLog.student_id == student_id,
                StudyLog.session_date >= start,
                StudyLog.session_date <= end,
            )
            .order_by(StudyLog.session_date)
        )
        logs = await self._scalars(stmt, "study logs")
        return [
            StudyLogRow(
                session_date=log.session_date,
                attendance_status=log.attendance_status,
                homework=log.homework,
                focus=log.focus,
            )
            for log in logs
        ]

    async def list_assessments(self, student_id: str, start: date, end: date) -> list[AssessmentRow]:
        stmt = (
            select(AssessmentLog)
            .where(
                AssessmentLog.student_id == student_id,
                AssessmentLog.test_date >= start,
                AssessmentLog.test_date <= end,
            )
            .order_by(AssessmentLog.test_date)
        )
        rows = await self._scalars(stmt, "test logs")
        return [AssessmentRow(test_date=row.test_date, score=row.score) for row in rows]

    async def get_last_contact(self, student_id: str, until: datetime) -> datetime | None:
        stmt = select(func.max(Consultation.contacted_at)).where(
            Consultation.student_id == student_id,
            Consultation.contacted_at <= until,
        )
        return await self._scalar(stmt, "consultations")

    # =========================================================================
    # Scores
    # =========================================================================

    async def get_previous_score(self, student_id: str) -> PreviousScore | None:
        stmt = (
            select(StudentRiskScore)
            .where(StudentRiskScore.student_id == student_id)
            .order_by(StudentRiskScore.calculated_at.desc())
            .limit(1)
        )
        row = await self._scalar(stmt, "previous score")
        if row is None:
            return None
        return PreviousScore(
            score=row.total_score,
            risk_level=RiskLevel(row.risk_level),
            calculated_at=row.calculated_at,
        )

    async def insert_score(
        self,
        student_id: str,
        factors: RiskFactor,
        result: RiskScoreResult,
        batch_id: str | None,
        calculated_at: datetime,
    ) -> StudentRiskScore:
        """Append a dated score row; earlier rows are kept for trends."""
        row = StudentRiskScore(
            student_id=student_id,
            attendance_rate=factors.attendance_rate,
            homework_avg=factors.homework_avg,
            focus_avg=factors.focus_avg,
            test_score_avg=factors.test_score_avg,
            missing_test_count=factors.missing_test_count,
            days_since_contact=factors.days_since_contact,
            data_points=factors.data_points,
            total_score=result.score,
            risk_level=result.risk_level.value,
            score_trend=result.trend.value,
            previous_score=result.previous_score,
            score_change=result.score_change,
            factor_scores=dict(result.factor_scores),
            analysis_period_start=factors.period_start or calculated_at.date(),
            analysis_period_end=factors.period_end or calculated_at.date(),
            config_version=result.config_version,
            batch_id=batch_id,
            calculated_at=calculated_at,
        )
        self._db.add(row)
        await self._db.flush()
        return row

    def _latest_scores(self):
        ranked = select(
            StudentRiskScore,
            func.row_number()
            .over(
                partition_by=StudentRiskScore.student_id,
                order_by=StudentRiskScore.calculated_at.desc(),
            )
            .label("rn"),
        ).subquery()
        return ranked, aliased(StudentRiskScore, ranked)

    async def list_latest_scores(
        self,
        risk_level: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[tuple[StudentRiskScore, str]], int]:
        """Latest score of every student with the student's name.

        Returns:
            ((score row, student name) pairs sorted by score ascending, total count)
        """
        ranked, latest = self._latest_scores()
        conditions = [ranked.c.rn == 1]
        if risk_level:
            conditions.append(ranked.c.risk_level == risk_level)

        total = await self._scalar(
            select(func.count()).select_from(ranked).where(*conditions), "score count"
        )
        stmt = (
            select(latest, Student.name)
            .join(Student, Student.id == latest.student_id)
            .where(*conditions)
            .order_by(latest.total_score.asc(), latest.student_id)
            .limit(limit)
            .offset(offset)
        )
        rows = await self._rows(stmt, "latest scores")
        return [(row[0], row[1]) for row in rows], total or 0

    async def list_student_scores(self, student_id: str, limit: int) -> list[StudentRiskScore]:
        stmt = (
            select(StudentRiskScore)
            .where(StudentRiskScore.student_id == student_id)
            .order_by(StudentRiskScore.calculated_at.desc())
            .limit(limit)
        )
        return await self._scalars(stmt, "student scores")

    # =========================================================================
    # Alerts
    # =========================================================================

    async def list_open_alerts(self, student_id: str) -> list[OpenAlert]:
        stmt = select(RiskAlert).where(
            RiskAlert.student_id == student_id,
            RiskAlert.status.in_(OPEN_ALERT_STATUSES),
        )
        alerts = await self._scalars(stmt, "open alerts")
        return [_to_open_alert(alert) for alert in alerts]

    async def get_alert(self, alert_id: str, for_update: bool = False) -> RiskAlert | None:
        """Load one alert.

        With ``for_update`` the row stays locked until the session's
        transaction ends, so concurrent status changes apply one after the
        other and each sees the status the previous one committed.
        """
        stmt = select(RiskAlert).where(RiskAlert.id == alert_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return await self._scalar(stmt, "alert")

    async def _find_open_alert(self, student_id: str, alert_type: str) -> RiskAlert | None:
        stmt = select(RiskAlert).where(
            RiskAlert.student_id == student_id,
            RiskAlert.alert_type == alert_type,
            RiskAlert.status.in_(OPEN_ALERT_STATUSES),
        )
        return await self._scalar(stmt, "open alert")

    async def list_alerts(
        self,
        status: str | None = None,
        severity: str | None = None,
        student_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[tuple[RiskAlert, str]], int]:
        conditions = []
        if status:
            conditions.append(RiskAlert.status == status)
        if severity:
            conditions.append(RiskAlert.severity == severity)
        if student_id:
            conditions.append(RiskAlert.student_id == student_id)

        total = await self._scalar(
            select(func.count()).select_from(RiskAlert).where(*conditions), "alert count"
        )
        stmt = (
            select(RiskAlert, Student.name)
            .join(Student, Student.id == RiskAlert.student_id)
            .where(*conditions)
            .order_by(RiskAlert.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        rows = await self._rows(stmt, "alerts")
        return [(row[0], row[1]) for row in rows], total or 0

    async def apply_alert_decision(
        self, decision: AlertDecision, risk_score_id: str | None = None
    ) -> str:
        """Persist one alert decision.

        Returns:
            AlertDecision.CREATE or AlertDecision.UPDATE, whichever happened.
        """
        if not decision.is_create and decision.existing_alert_id:
            alert = await self.get_alert(decision.existing_alert_id, for_update=True)
            if alert is not None and alert.status in OPEN_ALERT_STATUSES:
                self._refresh_alert(alert, decision, risk_score_id)
                await self._db.flush()
                return AlertDecision.UPDATE

        alert = RiskAlert(
            student_id=decision.student_id,
            alert_type=decision.alert_type.value,
            severity=decision.severity.value,
            status=AlertStatus.ACTIVE.value,
            title=decision.title,
            message=decision.message,
            trigger_data=dict(decision.trigger_data),
            risk_score_id=risk_score_id,
        )
        try:
            async with self._db.begin_nested():
                self._db.add(alert)
        except IntegrityError:
            # A concurrent run opened the same alert first
            existing = await self._find_open_alert(decision.student_id, decision.alert_type.value)
            if existing is None:
                raise
            self._refresh_alert(existing, decision, risk_score_id)
            await self._db.flush()
            logger.info(
                "Open %s alert for student %s already existed, updated instead",
                decision.alert_type.value,
                decision.student_id,
            )
            return AlertDecision.UPDATE

        logger.info(
            "Created %s alert %s for student %s",
            decision.alert_type.value,
            alert.id,
            decision.student_id,
        )
        return AlertDecision.CREATE

    @staticmethod
    def _refresh_alert(
        alert: RiskAlert, decision: AlertDecision, risk_score_id: str | None
    ) -> None:
        alert.severity = decision.severity.value
        alert.title = decision.title
        alert.message = decision.message
        alert.trigger_data = dict(decision.trigger_data)
        alert.updated_at = utc_now()
        if risk_score_id:
            alert.risk_score_id = risk_score_id

    # =========================================================================
    # Config versions
    # =========================================================================

    async def get_current_config(self) -> RiskConfig:
        """Newest stored config, or the built-in defaults (version 0)."""
        stmt = select(RiskConfigVersion).order_by(RiskConfigVersion.version.desc()).limit(1)
        row = await self._scalar(stmt, "risk config")
        if row is None:
            return RiskConfig.defaults()
        return RiskConfig.from_values(row.values, version=row.version)

    async def get_config_version(self, version: int) -> RiskConfigVersion | None:
        stmt = select(RiskConfigVersion).where(RiskConfigVersion.version == version)
        return await self._scalar(stmt, "risk config version")

    async def save_config(
        self, config: RiskConfig, changed_key: str, updated_by: str
    ) -> RiskConfigVersion:
        """Store a new config version.

        Raises:
            ConfigConflictError: If that version number was taken concurrently.
        """
        row = RiskConfigVersion(
            version=config.version,
            values=config.to_values(),
            changed_key=changed_key,
            updated_by=updated_by,
        )
        try:
            async with self._db.begin_nested():
                self._db.add(row)
        except IntegrityError as e:
            raise ConfigConflictError(
                "Risk config was updated concurrently, reload and retry",
                {"version": config.version},
            ) from e
        return row


def _to_open_alert(alert: RiskAlert) -> OpenAlert:
    return OpenAlert(
        alert_id=alert.id,
        student_id=alert.student_id,
        alert_type=AlertType(alert.alert_type),
        severity=AlertSeverity(alert.severity),
        status=AlertStatus(alert.status),
        trigger_data=dict(alert.trigger_data or {}),
    )


RepositoryScope = Callable[[], AbstractAsyncContextManager[RiskRepository]]


def repository_scope_factory(read_timeout: float = DEFAULT_READ_TIMEOUT) -> RepositoryScope:
    """Build a factory of per-unit-of-work repositories.

    Each scope owns one database session, committed when the block exits
    cleanly and rolled back otherwise.
    """

    @asynccontextmanager
    async def scope() -> AsyncIterator[RiskRepository]:
        async with get_session() as session:
            yield RiskRepository(session, read_timeout=read_timeout)

    return scope
