# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Risk API endpoints.

This module provides endpoints for student risk:
- POST /batch - Run the risk batch over all enrolled students
- GET /scores - Latest score of every student
- GET /scores/{student_id} - Latest score and history of one student
- GET /alerts - List risk alerts
- POST /alerts/{alert_id}/status - Acknowledge, resolve or dismiss an alert
- GET /config - Current risk config
- PUT /config/{config_key} - Replace one risk config key

Mutations require an employee identity in the access token.

Example:
    POST /api/v1/risk/alerts/5b1c.../status
    {
        "action": "acknowledge",
        "note": "Called the parent"
    }
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Query

from academy_insights.api.dependencies import (
    AuthenticatedUser,
    BatchOrchestrator,
    EmployeeUser,
    RiskServiceDep,
)
from academy_insights.api.errors import to_http_exception
from academy_insights.core.exceptions import AnalyticsError
from academy_insights.domains.risk.models import AlertSeverity, AlertStatus, RiskLevel
from academy_insights.models.risk import (
    AlertStatusUpdateRequest,
    BatchSummaryResponse,
    RiskAlertListResponse,
    RiskAlertResponse,
    RiskConfigResponse,
    RiskConfigUpdateRequest,
    RiskScoreListResponse,
    StudentRiskResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/batch",
    response_model=BatchSummaryResponse,
    summary="Run risk batch",
    description="Score every enrolled student. Per-student failures are reported in the summary.",
)
async def run_batch(
    current_user: AuthenticatedUser,
    orchestrator: BatchOrchestrator,
) -> BatchSummaryResponse:
    """Run the risk batch inline and return its summary.

    The response is 200 even when some students failed; failures are
    listed in the summary.
    """
    logger.info("Risk batch triggered by user %s", current_user.id)
    try:
        summary = await orchestrator.run()
    except AnalyticsError as e:
        raise to_http_exception(e) from e
    return BatchSummaryResponse.model_validate(summary.to_dict())


@router.get(
    "/scores",
    response_model=RiskScoreListResponse,
    summary="List risk scores",
    description="Latest score of every student, riskiest first.",
)
async def list_scores(
    current_user: AuthenticatedUser,
    service: RiskServiceDep,
    risk_level: Annotated[RiskLevel | None, Query(description="Filter by risk level")] = None,
    limit: Annotated[int, Query(ge=1, le=200, description="Maximum results")] = 50,
    offset: Annotated[int, Query(ge=0, description="Pagination offset")] = 0,
) -> RiskScoreListResponse:
    try:
        return await service.list_scores(
            risk_level=risk_level.value if risk_level else None,
            limit=limit,
            offset=offset,
        )
    except AnalyticsError as e:
        raise to_http_exception(e) from e


@router.get(
    "/scores/{student_id}",
    response_model=StudentRiskResponse,
    summary="Get student risk",
    description="Latest score and recent history of one student.",
)
async def get_student_score(
    student_id: str,
    current_user: AuthenticatedUser,
    service: RiskServiceDep,
) -> StudentRiskResponse:
    try:
        return await service.get_student_score(student_id)
    except AnalyticsError as e:
        raise to_http_exception(e) from e


@router.get(
    "/alerts",
    response_model=RiskAlertListResponse,
    summary="List risk alerts",
    description="Risk alerts, newest first. Defaults to active alerts.",
)
async def list_alerts(
    current_user: AuthenticatedUser,
    service: RiskServiceDep,
    alert_status: Annotated[
        AlertStatus | None, Query(alias="status", description="Filter by status")
    ] = AlertStatus.ACTIVE,
    severity: Annotated[AlertSeverity | None, Query(description="Filter by severity")] = None,
    student_id: Annotated[str | None, Query(description="Filter by student")] = None,
    limit: Annotated[int, Query(ge=1, le=200, description="Maximum results")] = 50,
    offset: Annotated[int, Query(ge=0, description="Pagination offset")] = 0,
) -> RiskAlertListResponse:
    try:
        return await service.list_alerts(
            status=alert_status.value if alert_status else None,
            severity=severity.value if severity else None,
            student_id=student_id,
            limit=limit,
            offset=offset,
        )
    except AnalyticsError as e:
        raise to_http_exception(e) from e


@router.post(
    "/alerts/{alert_id}/status",
    response_model=RiskAlertResponse,
    summary="Update alert status",
    description="Acknowledge, resolve or dismiss an alert.",
)
async def update_alert_status(
    alert_id: str,
    data: AlertStatusUpdateRequest,
    current_user: EmployeeUser,
    service: RiskServiceDep,
) -> RiskAlertResponse:
    """Apply a lifecycle action to an alert.

    Raises:
        HTTPException: 422 for an unknown action, 404 for a missing alert,
            409 when the transition is not allowed.
    """
    logger.info(
        "Alert %s: %s requested by employee %s",
        alert_id,
        data.action,
        current_user.employee_id,
    )
    try:
        return await service.update_alert_status(
            alert_id,
            data.action,
            current_user.employee_id,
            data.note,
        )
    except AnalyticsError as e:
        raise to_http_exception(e) from e


@router.get(
    "/config",
    response_model=RiskConfigResponse,
    summary="Get risk config",
)
async def get_config(
    current_user: AuthenticatedUser,
    service: RiskServiceDep,
) -> RiskConfigResponse:
    try:
        return await service.get_config()
    except AnalyticsError as e:
        raise to_http_exception(e) from e


@router.put(
    "/config/{config_key}",
    response_model=RiskConfigResponse,
    summary="Update risk config",
    description=(
        "Replace one of score_weights, thresholds, alert_triggers or "
        "analysis_period_days. Stores a new config version."
    ),
)
async def update_config(
    config_key: str,
    data: RiskConfigUpdateRequest,
    current_user: EmployeeUser,
    service: RiskServiceDep,
) -> RiskConfigResponse:
    try:
        return await service.update_config(config_key, data.value, current_user.employee_id)
    except AnalyticsError as e:
        raise to_http_exception(e) from e
