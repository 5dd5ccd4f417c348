# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Risk API schemas.

Request and response models for risk scores, risk alerts, the risk
configuration and batch run summaries.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RiskScoreResponse(BaseModel):
    """One persisted risk score."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Score ID")
    student_id: str = Field(..., description="Student ID")
    student_name: str | None = Field(None, description="Student name")
    total_score: float = Field(..., description="Composite score (0-100, lower is riskier)")
    risk_level: str = Field(..., description="low, medium or high")
    score_trend: str = Field(..., description="improving, stable or worsening")
    previous_score: float | None = Field(None, description="Score of the previous run")
    score_change: float | None = Field(None, description="Change versus the previous run")
    attendance_rate: float | None = Field(None, description="Attendance rate (0-100)")
    homework_avg: float | None = Field(None, description="Homework average (1-5)")
    focus_avg: float | None = Field(None, description="Focus average (1-5)")
    test_score_avg: float | None = Field(None, description="Average test score")
    missing_test_count: int = Field(0, description="Tests assigned but not taken")
    days_since_contact: int | None = Field(None, description="Days since last consultation")
    data_points: int = Field(0, description="Observations behind the score")
    factor_scores: dict[str, float] = Field(default_factory=dict, description="Normalized factors")
    analysis_period_start: date = Field(..., description="Window start")
    analysis_period_end: date = Field(..., description="Window end")
    config_version: int = Field(..., description="Risk config version used")
    batch_id: str | None = Field(None, description="Batch run that produced the score")
    calculated_at: datetime = Field(..., description="Computation timestamp")


class RiskScoreListResponse(BaseModel):
    """Paginated latest scores."""

    items: list[RiskScoreResponse] = Field(..., description="Latest score per student")
    total: int = Field(..., description="Total count")
    limit: int = Field(..., description="Page size")
    offset: int = Field(..., description="Page offset")


class StudentRiskResponse(BaseModel):
    """Latest score of a student with its recent history."""

    student_id: str = Field(..., description="Student ID")
    latest: RiskScoreResponse = Field(..., description="Most recent score")
    history: list[RiskScoreResponse] = Field(..., description="Recent scores, newest first")


class RiskAlertResponse(BaseModel):
    """Risk alert with lifecycle stamps."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Alert ID")
    student_id: str = Field(..., description="Student ID")
    student_name: str | None = Field(None, description="Student name")
    alert_type: str = Field(..., description="Alert type")
    severity: str = Field(..., description="low, medium, high or critical")
    status: str = Field(..., description="active, acknowledged, resolved or dismissed")
    title: str = Field(..., description="Alert title")
    message: str = Field(..., description="Alert message")
    trigger_data: dict[str, Any] = Field(default_factory=dict, description="Trigger inputs")
    note: str | None = Field(None, description="Employee note")
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    dismissed_by: str | None = None
    dismissed_at: datetime | None = None
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class RiskAlertListResponse(BaseModel):
    """Paginated alert list."""

    items: list[RiskAlertResponse] = Field(..., description="Alerts, newest first")
    total: int = Field(..., description="Total count")
    limit: int = Field(..., description="Page size")
    offset: int = Field(..., description="Page offset")


class AlertStatusUpdateRequest(BaseModel):
    """Alert lifecycle action."""

    action: str = Field(..., description="acknowledge, resolve or dismiss")
    note: str | None = Field(None, max_length=2000, description="Optional note")


class RiskConfigResponse(BaseModel):
    """Current risk configuration snapshot."""

    version: int = Field(..., description="Config version, 0 for built-in defaults")
    score_weights: dict[str, float] = Field(..., description="Weight per factor")
    thresholds: dict[str, Any] = Field(..., description="Score cutoffs and tuning")
    alert_triggers: dict[str, Any] = Field(..., description="Alert trigger definitions")
    analysis_period_days: int = Field(..., description="Lookback window in days")
    changed_key: str | None = Field(None, description="Key changed by this version")
    updated_by: str | None = Field(None, description="Employee who stored this version")
    updated_at: datetime | None = Field(None, description="When this version was stored")


class RiskConfigUpdateRequest(BaseModel):
    """New value for one config key."""

    value: Any = Field(..., description="Complete new value for the key")


class BatchErrorResponse(BaseModel):
    """One student that failed during a batch run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    student_id: str
    error_type: str
    message: str


class BatchSummaryResponse(BaseModel):
    """Risk batch run summary. Serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    batch_id: str
    calculated_at: datetime
    total_students: int
    considered: int
    updated: int
    skipped: int
    failed: int
    alerts_created: int
    alerts_updated: int
    stopped: bool
    errors: list[BatchErrorResponse] = Field(default_factory=list)
