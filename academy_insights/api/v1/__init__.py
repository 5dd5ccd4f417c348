# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

This package contains all v1 API endpoint definitions.
Each module provides a FastAPI router for a specific domain.

Modules:
    risk: Risk batch, risk scores, risk alerts and the risk config.
    funnel: Funnel events and funnel analytics.
"""

from fastapi import APIRouter

from academy_insights.api.v1 import funnel, risk

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

# Include domain routers
router.include_router(risk.router, prefix="/risk", tags=["Risk"])
router.include_router(funnel.router, prefix="/funnel", tags=["Funnel"])

__all__ = ["router"]
