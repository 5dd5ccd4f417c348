# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Source activity tables read by the analytics core.

These tables belong to the academy management application. The analytics
core maps them for querying only and never migrates them.
"""

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from academy_insights.infrastructure.database.models.base import Base, UUIDPrimaryKeyMixin


class Student(UUIDPrimaryKeyMixin, Base):
    """Student or lead record."""

    __tablename__ = "students"
    __table_args__ = {"info": {"skip_autogenerate": True}}

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    lead_source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    first_contact_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    funnel_stage: Mapped[str | None] = mapped_column(String(30), nullable=True)
    funnel_stage_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    days_in_funnel: Mapped[int | None] = mapped_column(Integer, nullable=True)


class StudyLog(UUIDPrimaryKeyMixin, Base):
    """Per-session class record.

    attendance_status codes: 1 absent, 2 makeup, 3 early leave, 4 late,
    5 present. homework and focus are 1-5 ratings.
    """

    __tablename__ = "study_logs"
    __table_args__ = (
        Index("ix_study_logs_student_date", "student_id", "date"),
        {"info": {"skip_autogenerate": True}},
    )

    student_id: Mapped[str] = mapped_column(ForeignKey("students.id"), nullable=False)
    session_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    attendance_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    homework: Mapped[int | None] = mapped_column(Integer, nullable=True)
    focus: Mapped[int | None] = mapped_column(Integer, nullable=True)


class AssessmentLog(UUIDPrimaryKeyMixin, Base):
    """Assigned test; a null score means the test was not taken."""

    __tablename__ = "test_logs"
    __table_args__ = (
        Index("ix_test_logs_student_date", "student_id", "test_date"),
        {"info": {"skip_autogenerate": True}},
    )

    student_id: Mapped[str] = mapped_column(ForeignKey("students.id"), nullable=False)
    test_date: Mapped[date] = mapped_column(Date, nullable=False)
    score: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)


class Consultation(UUIDPrimaryKeyMixin, Base):
    """Contact with a student or guardian (phone, text, visit)."""

    __tablename__ = "consultations"
    __table_args__ = (
        Index("ix_consultations_student_date", "student_id", "date"),
        {"info": {"skip_autogenerate": True}},
    )

    student_id: Mapped[str] = mapped_column(ForeignKey("students.id"), nullable=False)
    contacted_at: Mapped[datetime] = mapped_column("date", DateTime(timezone=True), nullable=False)
    method: Mapped[str | None] = mapped_column(String(20), nullable=True)
