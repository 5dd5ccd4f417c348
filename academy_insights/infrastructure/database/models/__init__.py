# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy models for the academy database.

- academy: source activity tables (read only)
- funnel: append-only funnel event log
- risk: risk scores, alerts and config versions
"""

from academy_insights.infrastructure.database.models.academy import (
    AssessmentLog,
    Consultation,
    Student,
    StudyLog,
)
from academy_insights.infrastructure.database.models.base import Base
from academy_insights.infrastructure.database.models.funnel import FunnelEvent
from academy_insights.infrastructure.database.models.risk import (
    OPEN_ALERT_STATUSES,
    RiskAlert,
    RiskConfigVersion,
    StudentRiskScore,
)

__all__ = [
    "AssessmentLog",
    "Base",
    "Consultation",
    "FunnelEvent",
    "OPEN_ALERT_STATUSES",
    "RiskAlert",
    "RiskConfigVersion",
    "Student",
    "StudentRiskScore",
    "StudyLog",
]
