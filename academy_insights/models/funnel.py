# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Funnel API schemas.

Request and response models for funnel events and the derived funnel
aggregates. Aggregate responses validate straight from the reducer's
dataclasses.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FunnelEventCreateRequest(BaseModel):
    """Funnel event to append."""

    student_id: str = Field(..., min_length=1, description="Student ID")
    event_type: str = Field(..., description="Funnel event type")
    from_stage: str | None = Field(None, max_length=40, description="Stage left")
    to_stage: str | None = Field(None, max_length=40, description="Stage entered")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Free-form metadata")
    occurred_at: datetime | None = Field(None, description="Event time, defaults to now")


class FunnelEventResponse(BaseModel):
    """Stored funnel event."""

    id: str = Field(..., description="Event ID")
    student_id: str = Field(..., description="Student ID")
    event_type: str = Field(..., description="Funnel event type")
    from_stage: str | None = Field(None, description="Stage left")
    to_stage: str | None = Field(None, description="Stage entered")
    event_date: datetime = Field(..., description="Event time")
    days_since_previous: int | None = Field(None, description="Days since the student's previous event")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Free-form metadata")
    created_by: str | None = Field(None, description="Employee who recorded the event")


class BottleneckResponse(BaseModel):
    """Dropout and contact behaviour of one stage."""

    model_config = ConfigDict(from_attributes=True)

    stage: str
    student_count: int = Field(..., description="Distinct students who entered the stage")
    entries: int = Field(..., description="Times the stage was entered")
    dropouts: int = Field(..., description="Entries that ended in dropped_off")
    dropout_ratio: float = Field(..., ge=0, le=1, description="dropouts / entries")
    dropout_rate: float = Field(..., description="Dropout percentage, one decimal")
    avg_consultations: float
    avg_phone: float
    avg_text: float
    avg_visit: float
    avg_days_since_last_contact: float | None = None


class BottleneckListResponse(BaseModel):
    """Stages ranked by dropout rate."""

    items: list[BottleneckResponse] = Field(..., description="Worst stage first")


class StageDurationResponse(BaseModel):
    """Transition between two stages."""

    model_config = ConfigDict(from_attributes=True)

    from_stage: str
    to_stage: str
    count: int
    avg_days: float | None = Field(None, description="Mean elapsed whole days")


class StageDurationListResponse(BaseModel):
    """Stage transitions, most frequent first."""

    items: list[StageDurationResponse]


class CohortResponse(BaseModel):
    """Monthly first-contact cohort."""

    model_config = ConfigDict(from_attributes=True)

    cohort_month: str = Field(..., description="YYYY-MM")
    cohort_date: date
    total_students: int
    test_month_0: int
    test_month_1: int
    test_month_2: int
    test_month_3: int
    test_total: int
    enroll_month_0: int
    enroll_month_1: int
    enroll_month_2: int
    enroll_month_3: int
    enroll_total: int
    test_rate: float
    final_conversion_rate: float
    avg_days_to_enroll: float | None = None
    is_ongoing: bool = Field(..., description="Observation window not yet complete")


class CohortListResponse(BaseModel):
    """Cohorts, newest first."""

    items: list[CohortResponse]


class LeadSourceMetricsResponse(BaseModel):
    """Conversion of one lead source."""

    model_config = ConfigDict(from_attributes=True)

    source: str
    first_contacts: int
    tests: int
    enrollments: int
    conversion_rate: float
    test_rate: float
    avg_days_to_enroll: float | None = None
    avg_consultations: float | None = None


class LeadSourceMetricsListResponse(BaseModel):
    """Lead sources, largest first."""

    items: list[LeadSourceMetricsResponse]


class FunnelPeriodMetricsResponse(BaseModel):
    """Funnel counts and conversion over a trailing period."""

    model_config = ConfigDict(from_attributes=True)

    period: str
    since: datetime
    consultations: int
    tests: int
    enrollments: int
    consultation_to_test_rate: float
    test_to_enroll_rate: float
    overall_conversion_rate: float
    avg_days_to_test: float | None = None
    avg_days_to_enroll: float | None = None


class DaysInFunnelRefreshResponse(BaseModel):
    """Result of the days_in_funnel refresh."""

    model_config = ConfigDict(from_attributes=True)

    considered: int
    updated: int
    failed: int
