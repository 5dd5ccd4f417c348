# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for the funnel API endpoints."""

from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from academy_insights.core.exceptions import AnalyticsValidationError, NotFoundError
from academy_insights.models.funnel import (
    BottleneckListResponse,
    BottleneckResponse,
    DaysInFunnelRefreshResponse,
    FunnelEventResponse,
    FunnelPeriodMetricsResponse,
)

AS_OF = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestFunnelAnalyticsAPI:
    """Tests for the read endpoints."""

    def test_requires_authentication(self, client: TestClient) -> None:
        response = client.get("/api/v1/funnel/bottlenecks")

        assert response.status_code == 401

    def test_bottlenecks(
        self, client: TestClient, user_headers: dict, funnel_service: AsyncMock
    ) -> None:
        funnel_service.get_bottlenecks.return_value = BottleneckListResponse(
            items=[
                BottleneckResponse(
                    stage="test_scheduled",
                    student_count=100,
                    entries=100,
                    dropouts=40,
                    dropout_ratio=0.4,
                    dropout_rate=40.0,
                    avg_consultations=1.2,
                    avg_phone=0.8,
                    avg_text=0.3,
                    avg_visit=0.1,
                )
            ]
        )

        response = client.get(
            "/api/v1/funnel/bottlenecks",
            params={"lead_source": "blog", "start_date": "2025-01-01", "end_date": "2025-02-28"},
            headers=user_headers,
        )

        assert response.status_code == 200
        assert response.json()["items"][0]["dropout_rate"] == 40.0
        funnel_service.get_bottlenecks.assert_awaited_once_with(
            lead_source="blog", start_date=date(2025, 1, 1), end_date=date(2025, 2, 28)
        )

    def test_cohorts_pass_filters(
        self, client: TestClient, user_headers: dict, funnel_service: AsyncMock
    ) -> None:
        funnel_service.get_cohorts.return_value = {"items": []}

        response = client.get(
            "/api/v1/funnel/cohorts", params={"start_date": "2024-10-01"}, headers=user_headers
        )

        assert response.status_code == 200
        funnel_service.get_cohorts.assert_awaited_once_with(
            lead_source=None, start_date=date(2024, 10, 1)
        )

    def test_period_metrics(
        self, client: TestClient, user_headers: dict, funnel_service: AsyncMock
    ) -> None:
        funnel_service.get_period_metrics.return_value = FunnelPeriodMetricsResponse(
            period="3months",
            since=AS_OF,
            consultations=10,
            tests=5,
            enrollments=2,
            consultation_to_test_rate=50.0,
            test_to_enroll_rate=40.0,
            overall_conversion_rate=20.0,
        )

        response = client.get(
            "/api/v1/funnel/metrics", params={"period": "3months"}, headers=user_headers
        )

        assert response.status_code == 200
        assert response.json()["overall_conversion_rate"] == 20.0
        funnel_service.get_period_metrics.assert_awaited_once_with("3months")

    def test_unknown_period_is_rejected(self, client: TestClient, user_headers: dict) -> None:
        response = client.get(
            "/api/v1/funnel/metrics", params={"period": "2weeks"}, headers=user_headers
        )

        assert response.status_code == 422


class TestFunnelEventsAPI:
    """Tests for recording funnel events."""

    def test_record_event(
        self,
        client: TestClient,
        employee_headers: dict,
        funnel_service: AsyncMock,
        sample_employee_id: str,
    ) -> None:
        funnel_service.record_event.return_value = FunnelEventResponse(
            id="evt-1",
            student_id="student-1",
            event_type="test_completed",
            from_stage="test_scheduled",
            to_stage="test_completed",
            event_date=AS_OF,
            created_by=sample_employee_id,
        )

        response = client.post(
            "/api/v1/funnel/events",
            json={"student_id": "student-1", "event_type": "test_completed"},
            headers=employee_headers,
        )

        assert response.status_code == 201
        assert response.json()["to_stage"] == "test_completed"
        kwargs = funnel_service.record_event.await_args.kwargs
        assert kwargs["created_by"] == sample_employee_id
        assert kwargs["occurred_at"] is None

    def test_record_event_requires_employee(
        self, client: TestClient, user_headers: dict, funnel_service: AsyncMock
    ) -> None:
        response = client.post(
            "/api/v1/funnel/events",
            json={"student_id": "student-1", "event_type": "first_contact"},
            headers=user_headers,
        )

        assert response.status_code == 403
        funnel_service.record_event.assert_not_awaited()

    def test_out_of_order_event_is_422(
        self, client: TestClient, employee_headers: dict, funnel_service: AsyncMock
    ) -> None:
        funnel_service.record_event.side_effect = AnalyticsValidationError(
            "Funnel event is older than the student's latest event"
        )

        response = client.post(
            "/api/v1/funnel/events",
            json={
                "student_id": "student-1",
                "event_type": "test_scheduled",
                "occurred_at": "2024-01-01T00:00:00Z",
            },
            headers=employee_headers,
        )

        assert response.status_code == 422

    def test_unknown_student_is_404(
        self, client: TestClient, employee_headers: dict, funnel_service: AsyncMock
    ) -> None:
        funnel_service.record_event.side_effect = NotFoundError("student", "student-9")

        response = client.post(
            "/api/v1/funnel/events",
            json={"student_id": "student-9", "event_type": "first_contact"},
            headers=employee_headers,
        )

        assert response.status_code == 404

    def test_refresh_days_in_funnel(
        self, client: TestClient, user_headers: dict, funnel_service: AsyncMock
    ) -> None:
        funnel_service.refresh_days_in_funnel.return_value = DaysInFunnelRefreshResponse(
            considered=3, updated=2, failed=1
        )

        response = client.post("/api/v1/funnel/days-in-funnel/refresh", headers=user_headers)

        assert response.status_code == 200
        assert response.json() == {"considered": 3, "updated": 2, "failed": 1}
