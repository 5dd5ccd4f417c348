# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Data models for the funnel domain.

This module defines:
- Funnel event types and the stages they move a student into
- Typed event and contact records read at the query boundary
- Derived aggregates (bottlenecks, stage durations, cohorts, lead sources)
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum


class FunnelEventType(str, Enum):
    """Kinds of funnel events."""

    FIRST_CONTACT = "first_contact"
    CONSULTATION_SCHEDULED = "consultation_scheduled"
    CONSULTATION_COMPLETED = "consultation_completed"
    TEST_SCHEDULED = "test_scheduled"
    TEST_COMPLETED = "test_completed"
    REGISTRATION_STARTED = "registration_started"
    REGISTRATION_COMPLETED = "registration_completed"
    DROPPED_OFF = "dropped_off"


class FunnelStage(str, Enum):
    """Stages a lead moves through on the way to enrollment."""

    CONSULTATION = "consultation"
    TEST_SCHEDULED = "test_scheduled"
    TEST_COMPLETED = "test_completed"
    REGISTRATION_PENDING = "registration_pending"
    REGISTERED = "registered"
    DROPPED_OFF = "dropped_off"


STAGE_MAPPING: dict[FunnelEventType, FunnelStage] = {
    FunnelEventType.FIRST_CONTACT: FunnelStage.CONSULTATION,
    FunnelEventType.CONSULTATION_SCHEDULED: FunnelStage.CONSULTATION,
    FunnelEventType.CONSULTATION_COMPLETED: FunnelStage.CONSULTATION,
    FunnelEventType.TEST_SCHEDULED: FunnelStage.TEST_SCHEDULED,
    FunnelEventType.TEST_COMPLETED: FunnelStage.TEST_COMPLETED,
    FunnelEventType.REGISTRATION_STARTED: FunnelStage.REGISTRATION_PENDING,
    FunnelEventType.REGISTRATION_COMPLETED: FunnelStage.REGISTERED,
    FunnelEventType.DROPPED_OFF: FunnelStage.DROPPED_OFF,
}

# Event types counted as a consultation in period metrics
CONSULTATION_EVENTS = (
    FunnelEventType.FIRST_CONTACT.value,
    FunnelEventType.CONSULTATION_COMPLETED.value,
)

FUNNEL_PERIODS: dict[str, int] = {
    "1month": 30,
    "3months": 90,
    "6months": 180,
    "1year": 365,
}

UNKNOWN_LEAD_SOURCE = "unknown"


@dataclass(frozen=True)
class FunnelEventRecord:
    """One funnel event joined with the student's lead source."""

    event_id: str
    student_id: str
    event_type: str
    event_date: datetime
    from_stage: str | None = None
    to_stage: str | None = None
    days_since_previous: int | None = None
    lead_source: str | None = None

    @property
    def stage(self) -> str:
        """Stage the event moves the student into."""
        if self.to_stage:
            return self.to_stage
        try:
            return STAGE_MAPPING[FunnelEventType(self.event_type)].value
        except ValueError:
            return self.event_type

    @property
    def is_dropout(self) -> bool:
        dropped = FunnelEventType.DROPPED_OFF.value
        return self.event_type == dropped or self.to_stage == dropped


@dataclass(frozen=True)
class ContactStats:
    """Consultation counts of one student by channel."""

    student_id: str
    consultation_count: int = 0
    phone_count: int = 0
    text_count: int = 0
    visit_count: int = 0
    last_contact_at: datetime | None = None


@dataclass(frozen=True)
class BottleneckDetail:
    """Dropout and contact behaviour of the students who entered a stage.

    Attributes:
        stage: Funnel stage.
        student_count: Distinct students who entered the stage.
        entries: Times the stage was entered.
        dropouts: Entries that ended in dropped_off.
        dropout_ratio: dropouts / entries, within [0, 1].
        dropout_rate: dropout_ratio as a percentage, one decimal.
        avg_consultations: Mean consultations per student, one decimal.
        avg_phone: Mean phone contacts per student, one decimal.
        avg_text: Mean text contacts per student, one decimal.
        avg_visit: Mean visits per student, one decimal.
        avg_days_since_last_contact: Whole days, None without any contact.
    """

    stage: str
    student_count: int
    entries: int
    dropouts: int
    dropout_ratio: float
    dropout_rate: float
    avg_consultations: float
    avg_phone: float
    avg_text: float
    avg_visit: float
    avg_days_since_last_contact: float | None


@dataclass(frozen=True)
class StageDuration:
    """Observed transition between two stages."""

    from_stage: str
    to_stage: str
    count: int
    avg_days: float | None


@dataclass(frozen=True)
class CohortRow:
    """Leads whose first contact fell in the same calendar month.

    Month columns are cumulative: test_month_2 counts every student of the
    cohort who completed a test within months 0, 1 or 2 after entry.
    """

    cohort_month: str
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
    avg_days_to_enroll: float | None
    is_ongoing: bool


@dataclass(frozen=True)
class LeadSourceMetrics:
    """Funnel outcome of the leads from one source."""

    source: str
    first_contacts: int
    tests: int
    enrollments: int
    conversion_rate: float
    test_rate: float
    avg_days_to_enroll: float | None
    avg_consultations: float | None


@dataclass(frozen=True)
class FunnelPeriodMetrics:
    """Consultation to enrollment counts over a trailing period."""

    period: str
    since: datetime
    consultations: int
    tests: int
    enrollments: int
    consultation_to_test_rate: float
    test_to_enroll_rate: float
    overall_conversion_rate: float
    avg_days_to_test: float | None
    avg_days_to_enroll: float | None


@dataclass(frozen=True)
class DaysInFunnelSummary:
    """Result of refreshing days_in_funnel for every staged student."""

    considered: int
    updated: int
    failed: int
