# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task actors for Academy Insights.

Usage:
    from academy_insights.infrastructure.background.tasks import run_risk_batch

    run_risk_batch.send()

Running Workers:
    dramatiq academy_insights.infrastructure.background.tasks --threads 1
"""

from academy_insights.infrastructure.background.tasks.base import run_async
from academy_insights.infrastructure.background.tasks.risk import (
    get_risk_actors,
    refresh_funnel_days,
    run_risk_batch,
)

__all__ = [
    "refresh_funnel_days",
    "run_risk_batch",
    "run_async",
    "get_all_actors",
]


def get_all_actors() -> list:
    """Get list of all defined actors."""
    return list(get_risk_actors())
