# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Append-only funnel event log."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from academy_insights.infrastructure.database.models.base import Base, UUIDPrimaryKeyMixin
from academy_insights.utils.datetime import utc_now


class FunnelEvent(UUIDPrimaryKeyMixin, Base):
    """One stage transition of a lead or student. Rows are never updated."""

    __tablename__ = "funnel_events"
    __table_args__ = (
        Index("ix_funnel_events_student_date", "student_id", "event_date"),
        Index("ix_funnel_events_type_date", "event_type", "event_date"),
    )

    student_id: Mapped[str] = mapped_column(ForeignKey("students.id"), nullable=False)
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    from_stage: Mapped[str | None] = mapped_column(String(40), nullable=True)
    to_stage: Mapped[str | None] = mapped_column(String(40), nullable=True)
    event_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    days_since_previous: Mapped[int | None] = mapped_column(Integer, nullable=True)
    event_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, default=dict, nullable=False
    )
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
