# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Data access for the funnel domain.

Funnel events are append-only: FunnelRepository inserts them and never
updates or deletes one. Reads are bounded by the configured read timeout.
"""

from datetime import datetime
from typing import Collection

from sqlalchemy import case, func, select, update

from academy_insights.domains.funnel.models import ContactStats, FunnelEventRecord
from academy_insights.infrastructure.database.models import Consultation, FunnelEvent, Student
from academy_insights.infrastructure.database.reads import TimedReader

# Consultation.method values counted per channel
PHONE = "phone"
TEXT = "text"
VISIT = "visit"


def _count_method(method: str):
    return func.sum(case((Consultation.method == method, 1), else_=0))


def _to_record(event: FunnelEvent, lead_source: str | None) -> FunnelEventRecord:
    return FunnelEventRecord(
        event_id=event.id,
        student_id=event.student_id,
        event_type=event.event_type,
        event_date=event.event_date,
        from_stage=event.from_stage,
        to_stage=event.to_stage,
        days_since_previous=event.days_since_previous,
        lead_source=lead_source,
    )


class FunnelRepository(TimedReader):
    """Queries over funnel events, students and consultations."""

    async def list_events(
        self,
        lead_source: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[FunnelEventRecord]:
        """Funnel events joined with the student's lead source, oldest first."""
        stmt = select(FunnelEvent, Student.lead_source).join(
            Student, Student.id == FunnelEvent.student_id
        )
        if lead_source:
            stmt = stmt.where(Student.lead_source == lead_source)
        if since:
            stmt = stmt.where(FunnelEvent.event_date >= since)
        if until:
            stmt = stmt.where(FunnelEvent.event_date <= until)
        stmt = stmt.order_by(FunnelEvent.event_date, FunnelEvent.created_at)

        rows = await self._rows(stmt, "funnel events")
        return [_to_record(event, source) for event, source in rows]

    async def list_latest_events_before(
        self, student_ids: Collection[str], before: datetime
    ) -> list[FunnelEventRecord]:
        """Each student's most recent event strictly before ``before``.

        Tells which stage a student already occupied when an analysis
        window opened. Students with no earlier event are left out.
        """
        if not student_ids:
            return []

        ranked = (
            select(
                FunnelEvent.id.label("event_id"),
                func.row_number()
                .over(
                    partition_by=FunnelEvent.student_id,
                    order_by=[FunnelEvent.event_date.desc(), FunnelEvent.created_at.desc()],
                )
                .label("rn"),
            )
            .where(
                FunnelEvent.student_id.in_(list(student_ids)),
                FunnelEvent.event_date < before,
            )
            .subquery()
        )
        stmt = (
            select(FunnelEvent, Student.lead_source)
            .join(ranked, ranked.c.event_id == FunnelEvent.id)
            .join(Student, Student.id == FunnelEvent.student_id)
            .where(ranked.c.rn == 1)
            .order_by(FunnelEvent.event_date)
        )
        rows = await self._rows(stmt, "earlier funnel events")
        return [_to_record(event, source) for event, source in rows]

    async def list_contact_stats(
        self, student_ids: Collection[str] | None = None
    ) -> dict[str, ContactStats]:
        """Consultation counts by channel, keyed by student id."""
        stmt = select(
            Consultation.student_id,
            func.count(Consultation.id),
            _count_method(PHONE),
            _count_method(TEXT),
            _count_method(VISIT),
            func.max(Consultation.contacted_at),
        ).group_by(Consultation.student_id)
        if student_ids is not None:
            if not student_ids:
                return {}
            stmt = stmt.where(Consultation.student_id.in_(list(student_ids)))

        rows = await self._rows(stmt, "consultation stats")
        return {
            student_id: ContactStats(
                student_id=student_id,
                consultation_count=total or 0,
                phone_count=phone or 0,
                text_count=text or 0,
                visit_count=visit or 0,
                last_contact_at=last_contact,
            )
            for student_id, total, phone, text, visit, last_contact in rows
        }

    async def get_student(self, student_id: str) -> Student | None:
        return await self._scalar(select(Student).where(Student.id == student_id), "student")

    async def get_latest_event(self, student_id: str) -> FunnelEvent | None:
        stmt = (
            select(FunnelEvent)
            .where(FunnelEvent.student_id == student_id)
            .order_by(FunnelEvent.event_date.desc(), FunnelEvent.created_at.desc())
            .limit(1)
        )
        return await self._scalar(stmt, "latest funnel event")

    async def add_event(self, event: FunnelEvent) -> FunnelEvent:
        self._db.add(event)
        await self._db.flush()
        return event

    async def list_staged_students(self) -> list[tuple[str, datetime]]:
        """Students currently in a funnel stage with their stage entry time."""
        stmt = (
            select(Student.id, Student.funnel_stage_updated_at)
            .where(
                Student.funnel_stage.is_not(None),
                Student.funnel_stage_updated_at.is_not(None),
            )
            .order_by(Student.id)
        )
        rows = await self._rows(stmt, "staged students")
        return [(student_id, updated_at) for student_id, updated_at in rows]

    async def set_days_in_funnel(self, student_id: str, days: int) -> None:
        """Store days_in_funnel for one student inside a savepoint."""
        async with self._db.begin_nested():
            await self._db.execute(
                update(Student).where(Student.id == student_id).values(days_in_funnel=days)
            )
