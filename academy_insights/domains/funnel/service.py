# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Funnel service behind the funnel API.

This module provides the FunnelService that handles:
- Appending funnel events and moving the student's current stage
- Bottleneck, stage duration, cohort and lead source analysis
- Refreshing days_in_funnel for every staged student

Example:
    >>> service = FunnelService(db)
    >>> await service.record_event(student_id, "test_completed", created_by=employee_id)
    >>> cohorts = await service.get_cohorts(lead_source="blog")
"""

import logging
import math
from datetime import date, datetime, time, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from academy_insights.core.exceptions import AnalyticsValidationError, NotFoundError
from academy_insights.domains.funnel import reducer
from academy_insights.domains.funnel.models import (
    FUNNEL_PERIODS,
    STAGE_MAPPING,
    DaysInFunnelSummary,
    FunnelEventType,
)
from academy_insights.domains.funnel.repository import FunnelRepository
from academy_insights.infrastructure.database.models import FunnelEvent
from academy_insights.infrastructure.database.reads import DEFAULT_READ_TIMEOUT
from academy_insights.models.funnel import (
    BottleneckListResponse,
    BottleneckResponse,
    CohortListResponse,
    CohortResponse,
    DaysInFunnelRefreshResponse,
    FunnelEventResponse,
    FunnelPeriodMetricsResponse,
    LeadSourceMetricsListResponse,
    LeadSourceMetricsResponse,
    StageDurationListResponse,
    StageDurationResponse,
)
from academy_insights.utils.datetime import days_ago, elapsed_days, ensure_utc, utc_now

logger = logging.getLogger(__name__)


def _day_start(day: date | None) -> datetime | None:
    if day is None:
        return None
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _day_end(day: date | None) -> datetime | None:
    if day is None:
        return None
    return datetime.combine(day, time.max, tzinfo=timezone.utc)


def _event_response(event: FunnelEvent) -> FunnelEventResponse:
    return FunnelEventResponse(
        id=event.id,
        student_id=event.student_id,
        event_type=event.event_type,
        from_stage=event.from_stage,
        to_stage=event.to_stage,
        event_date=event.event_date,
        days_since_previous=event.days_since_previous,
        metadata=event.event_metadata or {},
        created_by=event.created_by,
    )


class FunnelService:
    """Service for funnel events and funnel analytics.

    Attributes:
        _repository: Funnel data access bound to the request session.
    """

    def __init__(self, db: AsyncSession, read_timeout: float = DEFAULT_READ_TIMEOUT) -> None:
        """Initialize the funnel service.

        Args:
            db: Async database session.
            read_timeout: Seconds allowed for each read.
        """
        self._repository = FunnelRepository(db, read_timeout=read_timeout)

    # =========================================================================
    # Events
    # =========================================================================

    async def record_event(
        self,
        student_id: str,
        event_type: str,
        from_stage: str | None = None,
        to_stage: str | None = None,
        metadata: dict[str, Any] | None = None,
        created_by: str | None = None,
        occurred_at: datetime | None = None,
    ) -> FunnelEventResponse:
        """Append a funnel event for a student.

        Events of one student must arrive in chronological order. The
        student's current funnel stage moves to the event's stage.

        Args:
            student_id: Student the event belongs to.
            event_type: One of the funnel event types.
            from_stage: Stage left, defaults to the student's current stage.
            to_stage: Stage entered, defaults to the stage of the event type.
            metadata: Free-form metadata stored with the event.
            created_by: Employee recording the event.
            occurred_at: Event time, defaults to now.

        Returns:
            The stored event.

        Raises:
            AnalyticsValidationError: If the event type is unknown or the event
                is older than the student's latest event.
            NotFoundError: If the student does not exist.
        """
        try:
            parsed = FunnelEventType(event_type)
        except ValueError as e:
            raise AnalyticsValidationError(
                f"Unknown funnel event type '{event_type}'",
                {"allowed": [t.value for t in FunnelEventType]},
            ) from e

        student = await self._repository.get_student(student_id)
        if student is None:
            raise NotFoundError("student", student_id)

        event_date = ensure_utc(occurred_at) or utc_now()
        latest = await self._repository.get_latest_event(student_id)
        days_since_previous = None
        if latest is not None:
            latest_date = ensure_utc(latest.event_date)
            if event_date < latest_date:
                raise AnalyticsValidationError(
                    "Funnel event is older than the student's latest event",
                    {"event_date": event_date.isoformat(), "latest": latest_date.isoformat()},
                )
            days_since_previous = math.floor(elapsed_days(latest_date, event_date))

        stage = to_stage or STAGE_MAPPING[parsed].value
        event = FunnelEvent(
            student_id=student_id,
            event_type=parsed.value,
            from_stage=from_stage or student.funnel_stage,
            to_stage=stage,
            event_date=event_date,
            days_since_previous=days_since_previous,
            event_metadata=dict(metadata or {}),
            created_by=created_by,
            created_at=utc_now(),
        )

        if student.funnel_stage != stage:
            student.funnel_stage = stage
            student.funnel_stage_updated_at = event_date
            student.days_in_funnel = 0

        await self._repository.add_event(event)

        logger.info(
            "Recorded funnel event %s for student %s (%s -> %s)",
            parsed.value,
            student_id,
            event.from_stage,
            stage,
        )
        return _event_response(event)

    # =========================================================================
    # Analytics
    # =========================================================================

    async def get_bottlenecks(
        self,
        lead_source: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        as_of: datetime | None = None,
    ) -> BottleneckListResponse:
        """Rank funnel stages by dropout rate.

        With a start date, the stage each student already occupied when
        the window opened is loaded too, so a dropout inside the window
        from a stage entered before it is still counted.
        """
        since = _day_start(start_date)
        events = await self._repository.list_events(
            lead_source=lead_source, since=since, until=_day_end(end_date)
        )
        if since is not None and events:
            carried = await self._repository.list_latest_events_before(
                {e.student_id for e in events}, since
            )
            events = [*carried, *events]
        contacts = await self._repository.list_contact_stats({e.student_id for e in events})
        details = reducer.detect_bottlenecks(events, contacts, as_of=as_of)
        return BottleneckListResponse(
            items=[BottleneckResponse.model_validate(detail) for detail in details]
        )

    async def get_stage_durations(
        self,
        lead_source: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> StageDurationListResponse:
        """Most common stage transitions and their mean elapsed days."""
        events = await self._repository.list_events(
            lead_source=lead_source, since=_day_start(start_date), until=_day_end(end_date)
        )
        durations = reducer.aggregate_stage_durations(events)
        return StageDurationListResponse(
            items=[StageDurationResponse.model_validate(d) for d in durations]
        )

    async def get_cohorts(
        self,
        lead_source: str | None = None,
        start_date: date | None = None,
        as_of: datetime | None = None,
    ) -> CohortListResponse:
        """Monthly first-contact cohorts, newest first."""
        # Later events of a cohort fall outside any date filter, so load them all
        events = await self._repository.list_events(lead_source=lead_source)
        rows = reducer.analyze_cohorts(
            events, as_of=as_of, lead_source=lead_source, start_date=start_date
        )
        return CohortListResponse(items=[CohortResponse.model_validate(row) for row in rows])

    async def get_lead_source_metrics(self) -> LeadSourceMetricsListResponse:
        """Conversion of first-contacted leads per lead source."""
        events = await self._repository.list_events()
        contacts = await self._repository.list_contact_stats({e.student_id for e in events})
        metrics = reducer.summarize_lead_sources(events, contacts)
        return LeadSourceMetricsListResponse(
            items=[LeadSourceMetricsResponse.model_validate(m) for m in metrics]
        )

    async def get_period_metrics(
        self, period: str = "1month", as_of: datetime | None = None
    ) -> FunnelPeriodMetricsResponse:
        """Funnel counts over a trailing period.

        Raises:
            AnalyticsValidationError: If the period is not one of FUNNEL_PERIODS.
        """
        days = FUNNEL_PERIODS.get(period)
        if days is None:
            raise AnalyticsValidationError(
                f"Unknown period '{period}'", {"allowed": list(FUNNEL_PERIODS)}
            )
        since = days_ago(days, as_of)
        events = await self._repository.list_events(since=since)
        metrics = reducer.summarize_period(events, since, period)
        return FunnelPeriodMetricsResponse.model_validate(metrics)

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def refresh_days_in_funnel(
        self, as_of: datetime | None = None
    ) -> DaysInFunnelRefreshResponse:
        """Recompute days_in_funnel for every student in a funnel stage.

        Each student is written in its own savepoint; a failure is counted
        and the refresh continues with the next student.
        """
        reference = as_of or utc_now()
        students = await self._repository.list_staged_students()

        updated = failed = 0
        for student_id, stage_updated_at in students:
            days = max(0, math.floor(elapsed_days(stage_updated_at, reference)))
            try:
                await self._repository.set_days_in_funnel(student_id, days)
            except Exception as e:
                logger.error(
                    "days_in_funnel refresh failed for student %s: %s",
                    student_id,
                    e,
                    exc_info=True,
                )
                failed += 1
            else:
                updated += 1

        summary = DaysInFunnelSummary(considered=len(students), updated=updated, failed=failed)
        logger.info(
            "days_in_funnel refreshed: considered=%d updated=%d failed=%d",
            summary.considered,
            summary.updated,
            summary.failed,
        )
        return DaysInFunnelRefreshResponse.model_validate(summary)
