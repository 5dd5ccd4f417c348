# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for RiskRepository against a real SQL engine."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.asyncio import AsyncSession

from academy_insights.core.exceptions import ConfigConflictError
from academy_insights.domains.risk.config import RiskConfig
from academy_insights.domains.risk.models import (
    AlertDecision,
    AlertSeverity,
    AlertType,
    RiskFactor,
    RiskLevel,
    RiskScoreResult,
    ScoreTrend,
)
from academy_insights.domains.risk.repository import RiskRepository
from academy_insights.infrastructure.database.models import Student

CALCULATED = datetime(2025, 3, 1, 3, 0, tzinfo=timezone.utc)


def make_factors() -> RiskFactor:
    return RiskFactor(
        attendance_rate=60.0,
        homework_avg=2.5,
        focus_avg=3.0,
        test_score_avg=55.0,
        missing_test_count=1,
        days_since_contact=12,
        data_points=8,
        period_start=date(2025, 2, 1),
        period_end=date(2025, 3, 1),
    )


def make_result(score: float, level: RiskLevel) -> RiskScoreResult:
    return RiskScoreResult(
        score=score,
        risk_level=level,
        trend=ScoreTrend.STABLE,
        previous_score=None,
        score_change=None,
        factor_scores={"attendance": 60.0},
        effective_weights={"attendance": 1.0},
        config_version=0,
    )


def make_decision(
    action: str = AlertDecision.CREATE,
    severity: AlertSeverity = AlertSeverity.HIGH,
    existing_alert_id: str | None = None,
    student_id: str = "student-1",
) -> AlertDecision:
    return AlertDecision(
        action=action,
        student_id=student_id,
        alert_type=AlertType.LOW_ATTENDANCE,
        severity=severity,
        title="Low attendance",
        message=f"Attendance fell below the threshold ({severity.value})",
        trigger_data={"attendance_rate": 60.0},
        existing_alert_id=existing_alert_id,
    )


@pytest_asyncio.fixture
async def repository(academy_db_session: AsyncSession) -> RiskRepository:
    academy_db_session.add_all(
        [
            Student(id="student-1", name="Kim Minji", status="enrolled", is_active=True),
            Student(id="student-2", name="Lee Jun", status="enrolled", is_active=True),
            Student(id="student-3", name="Park Hana", status="enrolled", is_active=False),
            Student(id="student-4", name="Choi Yuna", status="lead", is_active=True),
        ]
    )
    await academy_db_session.flush()
    return RiskRepository(academy_db_session)


class TestStudents:
    """Tests for student reads."""

    @pytest.mark.asyncio
    async def test_only_active_enrolled_students_are_listed(
        self, repository: RiskRepository
    ) -> None:
        assert await repository.list_active_student_ids("enrolled") == ["student-1", "student-2"]

    @pytest.mark.asyncio
    async def test_get_student(self, repository: RiskRepository) -> None:
        profile = await repository.get_student("student-3")

        assert profile.name == "Park Hana"
        assert profile.is_active is False
        assert await repository.get_student("student-9") is None


class TestScores:
    """Tests for score rows."""

    @pytest.mark.asyncio
    async def test_latest_score_per_student(self, repository: RiskRepository) -> None:
        await repository.insert_score(
            "student-1",
            make_factors(),
            make_result(65.7, RiskLevel.MEDIUM),
            "batch-1",
            CALCULATED - timedelta(days=1),
        )
        await repository.insert_score(
            "student-1", make_factors(), make_result(31.4, RiskLevel.HIGH), "batch-2", CALCULATED
        )
        await repository.insert_score(
            "student-2", make_factors(), make_result(82.0, RiskLevel.LOW), "batch-2", CALCULATED
        )

        pairs, total = await repository.list_latest_scores()

        assert total == 2
        assert [(row.student_id, row.total_score, name) for row, name in pairs] == [
            ("student-1", 31.4, "Kim Minji"),
            ("student-2", 82.0, "Lee Jun"),
        ]

    @pytest.mark.asyncio
    async def test_level_filter_applies_to_latest_score_only(
        self, repository: RiskRepository
    ) -> None:
        await repository.insert_score(
            "student-1",
            make_factors(),
            make_result(65.7, RiskLevel.MEDIUM),
            "batch-1",
            CALCULATED - timedelta(days=1),
        )
        await repository.insert_score(
            "student-1", make_factors(), make_result(31.4, RiskLevel.HIGH), "batch-2", CALCULATED
        )

        medium, medium_total = await repository.list_latest_scores(risk_level="medium")
        high, high_total = await repository.list_latest_scores(risk_level="high")

        assert (medium, medium_total) == ([], 0)
        assert high_total == 1
        assert high[0][0].batch_id == "batch-2"

    @pytest.mark.asyncio
    async def test_paging_keeps_total(self, repository: RiskRepository) -> None:
        await repository.insert_score(
            "student-1", make_factors(), make_result(31.4, RiskLevel.HIGH), "batch-1", CALCULATED
        )
        await repository.insert_score(
            "student-2", make_factors(), make_result(82.0, RiskLevel.LOW), "batch-1", CALCULATED
        )

        pairs, total = await repository.list_latest_scores(limit=1, offset=1)

        assert total == 2
        assert [row.student_id for row, _ in pairs] == ["student-2"]

    @pytest.mark.asyncio
    async def test_previous_score_is_the_newest(self, repository: RiskRepository) -> None:
        assert await repository.get_previous_score("student-1") is None

        await repository.insert_score(
            "student-1",
            make_factors(),
            make_result(65.7, RiskLevel.MEDIUM),
            "batch-1",
            CALCULATED - timedelta(days=1),
        )
        await repository.insert_score(
            "student-1", make_factors(), make_result(31.4, RiskLevel.HIGH), "batch-2", CALCULATED
        )

        previous = await repository.get_previous_score("student-1")

        assert previous.score == 31.4
        assert previous.risk_level == RiskLevel.HIGH


class TestAlerts:
    """Tests for alert persistence and the open-alert uniqueness."""

    @pytest.mark.asyncio
    async def test_create_opens_an_alert(self, repository: RiskRepository) -> None:
        action = await repository.apply_alert_decision(make_decision())

        open_alerts = await repository.list_open_alerts("student-1")
        assert action == AlertDecision.CREATE
        assert len(open_alerts) == 1
        assert open_alerts[0].alert_type == AlertType.LOW_ATTENDANCE
        assert open_alerts[0].trigger_data == {"attendance_rate": 60.0}

    @pytest.mark.asyncio
    async def test_stale_create_updates_the_open_alert(self, repository: RiskRepository) -> None:
        score = await repository.insert_score(
            "student-1", make_factors(), make_result(31.4, RiskLevel.HIGH), "batch-2", CALCULATED
        )
        await repository.apply_alert_decision(make_decision())

        # Decided by a run that had not seen the alert above
        action = await repository.apply_alert_decision(
            make_decision(severity=AlertSeverity.CRITICAL), risk_score_id=score.id
        )

        open_alerts = await repository.list_open_alerts("student-1")
        assert action == AlertDecision.UPDATE
        assert len(open_alerts) == 1
        assert open_alerts[0].severity == AlertSeverity.CRITICAL
        alert = await repository.get_alert(open_alerts[0].alert_id)
        assert alert.risk_score_id == score.id

    @pytest.mark.asyncio
    async def test_session_usable_after_fallback(self, repository: RiskRepository) -> None:
        await repository.apply_alert_decision(make_decision())
        await repository.apply_alert_decision(make_decision(severity=AlertSeverity.CRITICAL))

        action = await repository.apply_alert_decision(make_decision(student_id="student-2"))

        _, total = await repository.list_alerts()
        assert action == AlertDecision.CREATE
        assert total == 2

    @pytest.mark.asyncio
    async def test_closed_alert_allows_a_new_one(self, repository: RiskRepository) -> None:
        await repository.apply_alert_decision(make_decision())
        [opened] = await repository.list_open_alerts("student-1")
        alert = await repository.get_alert(opened.alert_id, for_update=True)
        alert.status = "resolved"
        await repository.session.flush()

        action = await repository.apply_alert_decision(make_decision())

        _, total = await repository.list_alerts(student_id="student-1")
        assert action == AlertDecision.CREATE
        assert total == 2
        assert len(await repository.list_open_alerts("student-1")) == 1

    @pytest.mark.asyncio
    async def test_update_refreshes_existing_alert(self, repository: RiskRepository) -> None:
        await repository.apply_alert_decision(make_decision())
        [opened] = await repository.list_open_alerts("student-1")

        action = await repository.apply_alert_decision(
            make_decision(
                AlertDecision.UPDATE, AlertSeverity.CRITICAL, existing_alert_id=opened.alert_id
            )
        )

        alert = await repository.get_alert(opened.alert_id)
        assert action == AlertDecision.UPDATE
        assert alert.severity == "critical"
        assert alert.message == "Attendance fell below the threshold (critical)"

    @pytest.mark.asyncio
    async def test_update_of_closed_alert_creates(self, repository: RiskRepository) -> None:
        await repository.apply_alert_decision(make_decision())
        [opened] = await repository.list_open_alerts("student-1")
        alert = await repository.get_alert(opened.alert_id)
        alert.status = "dismissed"
        await repository.session.flush()

        action = await repository.apply_alert_decision(
            make_decision(AlertDecision.UPDATE, existing_alert_id=opened.alert_id)
        )

        [reopened] = await repository.list_open_alerts("student-1")
        assert action == AlertDecision.CREATE
        assert reopened.alert_id != opened.alert_id

    @pytest.mark.asyncio
    async def test_list_alerts_filters(self, repository: RiskRepository) -> None:
        await repository.apply_alert_decision(make_decision())
        await repository.apply_alert_decision(
            make_decision(severity=AlertSeverity.MEDIUM, student_id="student-2")
        )

        pairs, total = await repository.list_alerts(status="active", severity="medium")

        assert total == 1
        assert [(alert.student_id, name) for alert, name in pairs] == [("student-2", "Lee Jun")]

    @pytest.mark.asyncio
    async def test_locked_read_selects_for_update(self) -> None:
        session = MagicMock()
        session.execute = AsyncMock()
        repository = RiskRepository(session)

        await repository.get_alert("alert-1", for_update=True)

        stmt = session.execute.await_args.args[0]
        assert "FOR UPDATE" in str(stmt.compile(dialect=postgresql.dialect()))

    @pytest.mark.asyncio
    async def test_plain_read_takes_no_lock(self) -> None:
        session = MagicMock()
        session.execute = AsyncMock()
        repository = RiskRepository(session)

        await repository.get_alert("alert-1")

        stmt = session.execute.await_args.args[0]
        assert "FOR UPDATE" not in str(stmt.compile(dialect=postgresql.dialect()))


class TestConfigVersions:
    """Tests for the versioned risk config."""

    @pytest.mark.asyncio
    async def test_defaults_without_stored_versions(self, repository: RiskRepository) -> None:
        config = await repository.get_current_config()

        assert config.version == 0
        assert config == RiskConfig.defaults()

    @pytest.mark.asyncio
    async def test_highest_version_is_current(self, repository: RiskRepository) -> None:
        first = RiskConfig.defaults().with_update("analysis_period_days", 14)
        second = first.with_update("analysis_period_days", 21)
        await repository.save_config(first, "analysis_period_days", "emp-1")
        await repository.save_config(second, "analysis_period_days", "emp-2")

        config = await repository.get_current_config()
        stored = await repository.get_config_version(1)

        assert config.version == 2
        assert config.analysis_period_days == 21
        assert stored.updated_by == "emp-1"

    @pytest.mark.asyncio
    async def test_taken_version_conflicts(self, repository: RiskRepository) -> None:
        await repository.save_config(
            RiskConfig.defaults().with_update("analysis_period_days", 14),
            "analysis_period_days",
            "emp-1",
        )

        with pytest.raises(ConfigConflictError) as exc_info:
            await repository.save_config(
                RiskConfig.defaults().with_update("analysis_period_days", 21),
                "analysis_period_days",
                "emp-2",
            )

        assert exc_info.value.details == {"version": 1}
        config = await repository.get_current_config()
        assert config.version == 1
        assert config.analysis_period_days == 14
