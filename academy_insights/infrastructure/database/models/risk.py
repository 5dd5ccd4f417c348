# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tables owned by the risk scoring core."""

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from academy_insights.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from academy_insights.utils.datetime import utc_now

OPEN_ALERT_STATUSES = ("active", "acknowledged")


class StudentRiskScore(UUIDPrimaryKeyMixin, Base):
    """One computed risk score. A new row per student per run."""

    __tablename__ = "student_risk_scores"
    __table_args__ = (
        Index("ix_risk_scores_student_calculated", "student_id", "calculated_at"),
        Index("ix_risk_scores_batch", "batch_id"),
    )

    student_id: Mapped[str] = mapped_column(ForeignKey("students.id"), nullable=False)

    # Factor snapshot
    attendance_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    homework_avg: Mapped[float | None] = mapped_column(Float, nullable=True)
    focus_avg: Mapped[float | None] = mapped_column(Float, nullable=True)
    test_score_avg: Mapped[float | None] = mapped_column(Float, nullable=True)
    missing_test_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    days_since_contact: Mapped[int | None] = mapped_column(Integer, nullable=True)
    data_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Result
    total_score: Mapped[float] = mapped_column(Float, nullable=False)
    risk_level: Mapped[str] = mapped_column(String(10), nullable=False)
    score_trend: Mapped[str] = mapped_column(String(10), nullable=False)
    previous_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    score_change: Mapped[float | None] = mapped_column(Float, nullable=True)
    factor_scores: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)

    analysis_period_start: Mapped[date] = mapped_column(Date, nullable=False)
    analysis_period_end: Mapped[date] = mapped_column(Date, nullable=False)
    config_version: Mapped[int] = mapped_column(Integer, nullable=False)
    batch_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )


class RiskAlert(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Risk alert with its lifecycle stamps.

    The partial unique index keeps at most one open alert per
    (student, alert type).
    """

    __tablename__ = "risk_alerts"
    __table_args__ = (
        Index(
            "uq_risk_alerts_open_student_type",
            "student_id",
            "alert_type",
            unique=True,
            postgresql_where=text("status IN ('active', 'acknowledged')"),
            sqlite_where=text("status IN ('active', 'acknowledged')"),
        ),
        Index("ix_risk_alerts_status_severity", "status", "severity"),
    )

    student_id: Mapped[str] = mapped_column(ForeignKey("students.id"), nullable=False)
    alert_type: Mapped[str] = mapped_column(String(40), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(String(15), default="active", nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    trigger_data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    risk_score_id: Mapped[str | None] = mapped_column(
        ForeignKey("student_risk_scores.id"), nullable=True
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    acknowledged_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    dismissed_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    dismissed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class RiskConfigVersion(UUIDPrimaryKeyMixin, Base):
    """Full risk config snapshot. The highest version is current."""

    __tablename__ = "risk_config_versions"

    version: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    values: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    changed_key: Mapped[str | None] = mapped_column(String(40), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
