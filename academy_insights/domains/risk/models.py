# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Data models for the risk domain.

This module defines enums and typed records for:
- Risk levels, trends and alert vocabulary
- Raw activity rows read at the aggregation boundary
- Factor snapshots, scores and alert decisions

Nothing past the aggregation boundary is passed around as a loose dict.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class RiskLevel(str, Enum):
    """Discrete risk bucket. A lower score means higher risk."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Ordering used to detect escalation."""
        return _LEVEL_RANK[self]


_LEVEL_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


class ScoreTrend(str, Enum):
    """Direction of the score relative to the previous computation."""

    IMPROVING = "improving"
    STABLE = "stable"
    WORSENING = "worsening"


class AlertType(str, Enum):
    """Kinds of risk alerts."""

    RISK_LEVEL_INCREASED = "risk_level_increased"
    RAPID_DECLINE = "rapid_decline"
    NO_CONTACT = "no_contact"
    LOW_ATTENDANCE = "low_attendance"


class AlertSeverity(str, Enum):
    """Alert severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(str, Enum):
    """Alert lifecycle states. resolved and dismissed are terminal."""

    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"

    @property
    def is_terminal(self) -> bool:
        """Whether the alert is closed."""
        return self in (AlertStatus.RESOLVED, AlertStatus.DISMISSED)


class AlertAction(str, Enum):
    """Actions an employee can take on an alert."""

    ACKNOWLEDGE = "acknowledge"
    RESOLVE = "resolve"
    DISMISS = "dismiss"


class AttendanceStatus(int, Enum):
    """Attendance codes recorded on study logs."""

    ABSENT = 1
    MAKEUP = 2
    EARLY_LEAVE = 3
    LATE = 4
    PRESENT = 5


# Raw rows read from the data store


@dataclass(frozen=True)
class StudentProfile:
    """Enrollment state of a student."""

    student_id: str
    name: str
    status: str
    is_active: bool


@dataclass(frozen=True)
class StudyLogRow:
    """One class session: attendance code and 1-5 ratings, each nullable."""

    session_date: date
    attendance_status: int | None = None
    homework: int | None = None
    focus: int | None = None


@dataclass(frozen=True)
class AssessmentRow:
    """One assigned test. score is None when the test was not taken."""

    test_date: date
    score: float | None = None


# Derived records


@dataclass(frozen=True)
class RiskFactor:
    """Per-student factor snapshot over the analysis window.

    A factor set to None is absent: no observation existed for it.

    Attributes:
        attendance_rate: Weighted attendance over scheduled sessions (0-100).
        homework_avg: Mean homework rating (1-5).
        focus_avg: Mean focus rating (1-5).
        test_score_avg: Mean score of taken tests.
        missing_test_count: Assigned tests without a score.
        days_since_contact: Days since the latest consultation.
        data_points: Scheduled sessions plus scored tests.
        period_start: First day of the analysis window.
        period_end: Last day of the analysis window.
    """

    attendance_rate: float | None
    homework_avg: float | None
    focus_avg: float | None
    test_score_avg: float | None
    missing_test_count: int
    days_since_contact: int | None = None
    data_points: int = 0
    period_start: date | None = None
    period_end: date | None = None


@dataclass(frozen=True)
class AggregationResult:
    """Outcome of collecting factors for one student.

    applicable is False when the student is missing or not actively
    enrolled; factors is None in that case.
    """

    student_id: str
    applicable: bool
    factors: RiskFactor | None = None
    reason: str | None = None

    @classmethod
    def not_applicable(cls, student_id: str, reason: str) -> "AggregationResult":
        return cls(student_id=student_id, applicable=False, reason=reason)


@dataclass(frozen=True)
class PreviousScore:
    """The most recent persisted score of a student."""

    score: float
    risk_level: RiskLevel
    calculated_at: datetime | None = None


@dataclass(frozen=True)
class RiskScoreResult:
    """Composite score computed from one factor snapshot.

    Attributes:
        score: Composite score (0-100, one decimal).
        risk_level: Bucket derived from the configured thresholds.
        trend: Direction versus the previous score.
        previous_score: Score of the previous computation, if any.
        score_change: score - previous_score, if any.
        factor_scores: Normalized 0-100 value of each present factor.
        effective_weights: Weights after re-normalization over present factors.
        config_version: Version of the config that produced the score.
    """

    score: float
    risk_level: RiskLevel
    trend: ScoreTrend
    previous_score: float | None
    score_change: float | None
    factor_scores: dict[str, float]
    effective_weights: dict[str, float]
    config_version: int


@dataclass
class OpenAlert:
    """A non-terminal alert as seen by the alert engine."""

    alert_id: str
    student_id: str
    alert_type: AlertType
    severity: AlertSeverity
    status: AlertStatus
    trigger_data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AlertDecision:
    """Create a new alert, or update the open alert of the same type.

    existing_alert_id is set for updates.
    """

    action: str
    student_id: str
    alert_type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    trigger_data: dict[str, Any]
    existing_alert_id: str | None = None

    CREATE = "create"
    UPDATE = "update"

    @property
    def is_create(self) -> bool:
        return self.action == self.CREATE
