# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Risk domain package.

This package provides student risk functionality including:
- Factor aggregation from study, test and consultation logs
- Weighted risk scoring against a versioned RiskConfig
- Risk alerts and their lifecycle
- The batch run over all enrolled students
"""

from academy_insights.domains.risk.aggregator import MetricAggregator
from academy_insights.domains.risk.alerts import AlertEngine, AlertStateMachine
from academy_insights.domains.risk.batch import BatchSummary, RiskBatchOrchestrator
from academy_insights.domains.risk.config import RiskConfig
from academy_insights.domains.risk.repository import RiskRepository, repository_scope_factory
from academy_insights.domains.risk.scorer import RiskScorer
from academy_insights.domains.risk.service import RiskService

__all__ = [
    "AlertEngine",
    "AlertStateMachine",
    "BatchSummary",
    "MetricAggregator",
    "RiskBatchOrchestrator",
    "RiskConfig",
    "RiskRepository",
    "RiskScorer",
    "RiskService",
    "repository_scope_factory",
]
