# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Funnel API endpoints.

This module provides endpoints for the lead-to-enrollment funnel:
- GET /bottlenecks - Stages ranked by dropout rate
- GET /stage-durations - Most common stage transitions
- GET /cohorts - Monthly first-contact cohorts
- GET /lead-sources - Conversion per lead source
- GET /metrics - Counts over a trailing period
- POST /events - Append a funnel event
- POST /days-in-funnel/refresh - Recompute days_in_funnel
"""

import logging
from datetime import date
from typing import Annotated, Literal

from fastapi import APIRouter, Query, status

from academy_insights.api.dependencies import (
    AuthenticatedUser,
    EmployeeUser,
    FunnelServiceDep,
)
from academy_insights.api.errors import to_http_exception
from academy_insights.core.exceptions import AnalyticsError
from academy_insights.models.funnel import (
    BottleneckListResponse,
    CohortListResponse,
    DaysInFunnelRefreshResponse,
    FunnelEventCreateRequest,
    FunnelEventResponse,
    FunnelPeriodMetricsResponse,
    LeadSourceMetricsListResponse,
    StageDurationListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

LeadSourceQuery = Annotated[str | None, Query(description="Filter by lead source")]
StartDateQuery = Annotated[date | None, Query(description="Events on or after this date")]
EndDateQuery = Annotated[date | None, Query(description="Events on or before this date")]


@router.get(
    "/bottlenecks",
    response_model=BottleneckListResponse,
    summary="Funnel bottlenecks",
    description="Funnel stages ranked by dropout rate, worst first.",
)
async def get_bottlenecks(
    current_user: AuthenticatedUser,
    service: FunnelServiceDep,
    lead_source: LeadSourceQuery = None,
    start_date: StartDateQuery = None,
    end_date: EndDateQuery = None,
) -> BottleneckListResponse:
    try:
        return await service.get_bottlenecks(
            lead_source=lead_source, start_date=start_date, end_date=end_date
        )
    except AnalyticsError as e:
        raise to_http_exception(e) from e


@router.get(
    "/stage-durations",
    response_model=StageDurationListResponse,
    summary="Stage durations",
    description="Stage transitions with their mean elapsed days, most frequent first.",
)
async def get_stage_durations(
    current_user: AuthenticatedUser,
    service: FunnelServiceDep,
    lead_source: LeadSourceQuery = None,
    start_date: StartDateQuery = None,
    end_date: EndDateQuery = None,
) -> StageDurationListResponse:
    try:
        return await service.get_stage_durations(
            lead_source=lead_source, start_date=start_date, end_date=end_date
        )
    except AnalyticsError as e:
        raise to_http_exception(e) from e


@router.get(
    "/cohorts",
    response_model=CohortListResponse,
    summary="Cohort analysis",
    description="Monthly first-contact cohorts followed for four months, newest first.",
)
async def get_cohorts(
    current_user: AuthenticatedUser,
    service: FunnelServiceDep,
    lead_source: LeadSourceQuery = None,
    start_date: Annotated[
        date | None, Query(description="Students first contacted on or after this date")
    ] = None,
) -> CohortListResponse:
    try:
        return await service.get_cohorts(lead_source=lead_source, start_date=start_date)
    except AnalyticsError as e:
        raise to_http_exception(e) from e


@router.get(
    "/lead-sources",
    response_model=LeadSourceMetricsListResponse,
    summary="Lead source metrics",
)
async def get_lead_source_metrics(
    current_user: AuthenticatedUser,
    service: FunnelServiceDep,
) -> LeadSourceMetricsListResponse:
    try:
        return await service.get_lead_source_metrics()
    except AnalyticsError as e:
        raise to_http_exception(e) from e


@router.get(
    "/metrics",
    response_model=FunnelPeriodMetricsResponse,
    summary="Funnel period metrics",
)
async def get_period_metrics(
    current_user: AuthenticatedUser,
    service: FunnelServiceDep,
    period: Annotated[
        Literal["1month", "3months", "6months", "1year"],
        Query(description="Trailing period"),
    ] = "1month",
) -> FunnelPeriodMetricsResponse:
    try:
        return await service.get_period_metrics(period)
    except AnalyticsError as e:
        raise to_http_exception(e) from e


@router.post(
    "/events",
    response_model=FunnelEventResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record funnel event",
)
async def record_event(
    data: FunnelEventCreateRequest,
    current_user: EmployeeUser,
    service: FunnelServiceDep,
) -> FunnelEventResponse:
    """Append a funnel event attributed to the acting employee.

    Raises:
        HTTPException: 422 for an unknown event type or an out-of-order
            event, 404 when the student does not exist.
    """
    try:
        return await service.record_event(
            student_id=data.student_id,
            event_type=data.event_type,
            from_stage=data.from_stage,
            to_stage=data.to_stage,
            metadata=data.metadata,
            created_by=current_user.employee_id,
            occurred_at=data.occurred_at,
        )
    except AnalyticsError as e:
        raise to_http_exception(e) from e


@router.post(
    "/days-in-funnel/refresh",
    response_model=DaysInFunnelRefreshResponse,
    summary="Refresh days in funnel",
    description="Recompute days_in_funnel for every staged student. Failures are counted.",
)
async def refresh_days_in_funnel(
    current_user: AuthenticatedUser,
    service: FunnelServiceDep,
) -> DaysInFunnelRefreshResponse:
    logger.info("days_in_funnel refresh triggered by user %s", current_user.id)
    try:
        return await service.refresh_days_in_funnel()
    except AnalyticsError as e:
        raise to_http_exception(e) from e
