# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for Academy Insights.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime and calendar operations
"""

from academy_insights.utils.datetime import (
    days_ago,
    days_between,
    elapsed_days,
    ensure_utc,
    month_key,
    months_between,
    utc_now,
)
from academy_insights.utils.logging import bind_context, clear_context, setup_logging
from academy_insights.utils.numbers import mean, mean_rounded, percent, round_half_up

__all__ = [
    # Logging
    "setup_logging",
    "bind_context",
    "clear_context",
    # Datetime
    "utc_now",
    "ensure_utc",
    "days_ago",
    "days_between",
    "elapsed_days",
    "month_key",
    "months_between",
    # Numbers
    "mean",
    "mean_rounded",
    "percent",
    "round_half_up",
]
