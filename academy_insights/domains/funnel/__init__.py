# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Funnel domain package.

This package provides funnel functionality including:
- The append-only funnel event log
- Bottleneck, stage duration and cohort analysis
- Lead source and trailing-period conversion metrics
"""

from academy_insights.domains.funnel.repository import FunnelRepository
from academy_insights.domains.funnel.service import FunnelService

__all__ = [
    "FunnelRepository",
    "FunnelService",
]
