# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for RiskService with a mocked repository."""

from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from academy_insights.core.exceptions import (
    AlertAlreadyClosedError,
    AnalyticsValidationError,
    ConfigConflictError,
    NotFoundError,
)
from academy_insights.domains.risk.config import RiskConfig
from academy_insights.domains.risk.models import StudentProfile
from academy_insights.domains.risk.service import RiskService

CREATED = datetime(2025, 3, 1, 3, 0, tzinfo=timezone.utc)


def make_score_row(student_id: str, score: float, level: str, **overrides) -> SimpleNamespace:
    values = {
        "id": f"score-{student_id}-{score}",
        "student_id": student_id,
        "total_score": score,
        "risk_level": level,
        "score_trend": "stable",
        "previous_score": None,
        "score_change": None,
        "attendance_rate": 90.0,
        "homework_avg": 4.0,
        "focus_avg": 4.0,
        "test_score_avg": 80.0,
        "missing_test_count": 0,
        "days_since_contact": 3,
        "data_points": 12,
        "factor_scores": {"attendance": 90.0},
        "analysis_period_start": date(2025, 2, 1),
        "analysis_period_end": date(2025, 3, 1),
        "config_version": 0,
        "batch_id": "batch-1",
        "calculated_at": CREATED,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def make_alert_row(alert_id: str = "alert-1", status: str = "active") -> SimpleNamespace:
    return SimpleNamespace(
        id=alert_id,
        student_id="student-1",
        alert_type="risk_level_increased",
        severity="high",
        status=status,
        title="Risk level increased",
        message="Risk level rose from medium to high",
        trigger_data={"from_level": "medium", "to_level": "high"},
        note=None,
        acknowledged_by=None,
        acknowledged_at=None,
        resolved_by=None,
        resolved_at=None,
        dismissed_by=None,
        dismissed_at=None,
        created_at=CREATED,
        updated_at=CREATED,
    )


@pytest.fixture
def repository() -> AsyncMock:
    repo = AsyncMock()
    repo.session = MagicMock()
    repo.session.flush = AsyncMock()
    return repo


@pytest.fixture
def service(repository: AsyncMock) -> RiskService:
    svc = RiskService(MagicMock())
    svc._repository = repository
    return svc


class TestScores:
    """Tests for score reads."""

    @pytest.mark.asyncio
    async def test_list_scores(self, service: RiskService, repository: AsyncMock) -> None:
        repository.list_latest_scores.return_value = (
            [(make_score_row("student-1", 31.4, "high"), "Kim Minji")],
            7,
        )

        result = await service.list_scores(risk_level="high", limit=1, offset=2)

        assert result.total == 7
        assert result.limit == 1
        assert result.offset == 2
        assert result.items[0].student_name == "Kim Minji"
        assert result.items[0].risk_level == "high"
        repository.list_latest_scores.assert_awaited_once_with(risk_level="high", limit=1, offset=2)

    @pytest.mark.asyncio
    async def test_student_score_with_history(
        self, service: RiskService, repository: AsyncMock
    ) -> None:
        repository.list_student_scores.return_value = [
            make_score_row("student-1", 31.4, "high"),
            make_score_row("student-1", 65.7, "medium"),
        ]
        repository.get_student.return_value = StudentProfile(
            "student-1", "Kim Minji", "enrolled", True
        )

        result = await service.get_student_score("student-1")

        assert result.latest.total_score == 31.4
        assert [h.total_score for h in result.history] == [31.4, 65.7]
        assert result.latest.student_name == "Kim Minji"
        repository.list_student_scores.assert_awaited_once_with("student-1", 12)

    @pytest.mark.asyncio
    async def test_unscored_student_is_not_found(
        self, service: RiskService, repository: AsyncMock
    ) -> None:
        repository.list_student_scores.return_value = []

        with pytest.raises(NotFoundError):
            await service.get_student_score("student-9")

        repository.get_student.assert_not_awaited()


class TestAlerts:
    """Tests for alert listing and lifecycle actions."""

    @pytest.mark.asyncio
    async def test_list_alerts_defaults_to_active(
        self, service: RiskService, repository: AsyncMock
    ) -> None:
        repository.list_alerts.return_value = ([(make_alert_row(), "Kim Minji")], 1)

        result = await service.list_alerts()

        assert result.total == 1
        assert result.items[0].student_name == "Kim Minji"
        assert repository.list_alerts.await_args.kwargs["status"] == "active"

    @pytest.mark.asyncio
    async def test_acknowledge(self, service: RiskService, repository: AsyncMock) -> None:
        alert = make_alert_row()
        repository.get_alert.return_value = alert

        result = await service.update_alert_status("alert-1", "acknowledge", "emp-1", note="Calling")

        assert result.status == "acknowledged"
        assert result.acknowledged_by == "emp-1"
        assert result.note == "Calling"
        assert alert.updated_at >= CREATED
        repository.session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_alert_row_is_locked_for_the_transition(
        self, service: RiskService, repository: AsyncMock
    ) -> None:
        repository.get_alert.return_value = make_alert_row()

        await service.update_alert_status("alert-1", "dismiss", "emp-1")

        repository.get_alert.assert_awaited_once_with("alert-1", for_update=True)

    @pytest.mark.asyncio
    async def test_transition_sees_status_committed_by_another_employee(
        self, service: RiskService, repository: AsyncMock
    ) -> None:
        # The locked read returns the row as the competing dismiss left it
        repository.get_alert.return_value = make_alert_row(status="dismissed")

        with pytest.raises(AlertAlreadyClosedError):
            await service.update_alert_status("alert-1", "acknowledge", "emp-2")

        repository.session.flush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_action_is_rejected_before_lookup(
        self, service: RiskService, repository: AsyncMock
    ) -> None:
        with pytest.raises(AnalyticsValidationError):
            await service.update_alert_status("alert-1", "escalate", "emp-1")

        repository.get_alert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_alert(self, service: RiskService, repository: AsyncMock) -> None:
        repository.get_alert.return_value = None

        with pytest.raises(NotFoundError):
            await service.update_alert_status("alert-9", "dismiss", "emp-1")

    @pytest.mark.asyncio
    async def test_closed_alert_is_not_flushed(
        self, service: RiskService, repository: AsyncMock
    ) -> None:
        repository.get_alert.return_value = make_alert_row(status="resolved")

        with pytest.raises(AlertAlreadyClosedError):
            await service.update_alert_status("alert-1", "acknowledge", "emp-1")

        repository.session.flush.assert_not_awaited()


class TestConfig:
    """Tests for the versioned risk config."""

    @pytest.mark.asyncio
    async def test_defaults_have_no_stored_version(
        self, service: RiskService, repository: AsyncMock
    ) -> None:
        repository.get_current_config.return_value = RiskConfig.defaults()

        result = await service.get_config()

        assert result.version == 0
        assert result.analysis_period_days == 28
        assert result.score_weights["attendance"] == 0.30
        assert result.updated_by is None
        repository.get_config_version.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stored_version_metadata(
        self, service: RiskService, repository: AsyncMock
    ) -> None:
        repository.get_current_config.return_value = RiskConfig.defaults().with_update(
            "analysis_period_days", 14
        )
        repository.get_config_version.return_value = SimpleNamespace(
            changed_key="analysis_period_days", updated_by="emp-1", created_at=CREATED
        )

        result = await service.get_config()

        assert result.version == 1
        assert result.analysis_period_days == 14
        assert result.changed_key == "analysis_period_days"
        assert result.updated_at == CREATED

    @pytest.mark.asyncio
    async def test_update_bumps_version(self, service: RiskService, repository: AsyncMock) -> None:
        repository.get_current_config.return_value = RiskConfig.defaults()
        repository.save_config.return_value = SimpleNamespace(created_at=CREATED)

        result = await service.update_config("analysis_period_days", 21, "emp-1")

        assert result.version == 1
        assert result.analysis_period_days == 21
        assert result.updated_by == "emp-1"
        saved, key, employee = repository.save_config.await_args.args
        assert saved.version == 1
        assert key == "analysis_period_days"
        assert employee == "emp-1"

    @pytest.mark.asyncio
    async def test_invalid_weights_store_nothing(
        self, service: RiskService, repository: AsyncMock
    ) -> None:
        repository.get_current_config.return_value = RiskConfig.defaults()

        with pytest.raises(AnalyticsValidationError):
            await service.update_config("score_weights", {"attendance": 0.9}, "emp-1")

        repository.save_config.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_version_conflict_propagates(
        self, service: RiskService, repository: AsyncMock
    ) -> None:
        repository.get_current_config.return_value = RiskConfig.defaults()
        repository.save_config.side_effect = ConfigConflictError(
            "Risk config version 1 already exists", {"version": 1}
        )

        with pytest.raises(ConfigConflictError):
            await service.update_config("analysis_period_days", 21, "emp-1")
