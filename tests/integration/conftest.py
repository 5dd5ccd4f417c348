# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Fixtures for API integration tests.

The app is built with create_app() and served through TestClient without
entering the lifespan, so no database, broker or scheduler is started.
Services are replaced through dependency overrides.
"""

from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from academy_insights.api.app import create_app
from academy_insights.api.dependencies import (
    get_batch_orchestrator,
    get_funnel_service,
    get_risk_service,
)
from academy_insights.core.config import get_settings
from academy_insights.domains.auth.jwt import JWTManager


@pytest.fixture
def risk_service() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def funnel_service() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def orchestrator() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def app(
    risk_service: AsyncMock, funnel_service: AsyncMock, orchestrator: AsyncMock
) -> FastAPI:
    """Create the API with mocked services."""
    app = create_app()
    app.dependency_overrides[get_risk_service] = lambda: risk_service
    app.dependency_overrides[get_funnel_service] = lambda: funnel_service
    app.dependency_overrides[get_batch_orchestrator] = lambda: orchestrator
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture
def make_headers() -> Callable[..., dict[str, str]]:
    """Build Authorization headers with a token signed by the app's key."""

    def _make(user_id: str = "user-1", employee_id: str | None = None) -> dict[str, str]:
        token = JWTManager(get_settings().jwt).create_access_token(
            user_id=user_id, employee_id=employee_id
        )
        return {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def user_headers(make_headers: Callable[..., dict[str, str]]) -> dict[str, str]:
    """Headers of an authenticated user without an employee identity."""
    return make_headers()


@pytest.fixture
def employee_headers(
    make_headers: Callable[..., dict[str, str]], sample_employee_id: str
) -> dict[str, str]:
    """Headers of a counselor acting as an employee."""
    return make_headers(user_id="user-2", employee_id=sample_employee_id)
