# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for the authentication middleware.

Tests the middleware in isolation from the database.
"""

import time
from unittest.mock import MagicMock, patch

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from jose import jwt
from pydantic import SecretStr

from academy_insights.api.middleware.auth import AuthMiddleware, get_current_user
from academy_insights.domains.auth.jwt import JWTManager

SECRET = "test-secret-key-for-jwt-testing"


@pytest.fixture
def jwt_settings() -> MagicMock:
    """Create mock JWT settings."""
    settings = MagicMock()
    settings.secret_key = SecretStr(SECRET)
    settings.algorithm = "HS256"
    settings.audience = None
    settings.access_token_expire_minutes = 30
    return settings


@pytest.fixture
def jwt_manager(jwt_settings: MagicMock) -> JWTManager:
    """Create JWT manager with test settings."""
    return JWTManager(jwt_settings)


@pytest.fixture
def client(jwt_settings: MagicMock):
    """App echoing the authenticated user."""
    app = FastAPI()
    app.add_middleware(AuthMiddleware)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.get("/api/v1/whoami")
    async def whoami(request: Request) -> dict:
        user = get_current_user(request)
        if user is None:
            return {"user_id": None}
        return {
            "user_id": user.id,
            "employee_id": user.employee_id,
            "is_employee": user.is_employee,
            "roles": user.roles,
        }

    with patch("academy_insights.api.middleware.auth.get_settings") as mock_settings:
        mock_settings.return_value.jwt = jwt_settings
        yield TestClient(app)


class TestAuthMiddleware:
    """Tests for AuthMiddleware."""

    def test_public_path_bypasses_auth(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200

    def test_valid_token_sets_user(self, client: TestClient, jwt_manager: JWTManager) -> None:
        token = jwt_manager.create_access_token(
            user_id="user-1", employee_id="emp-1", roles=["counselor"]
        )

        response = client.get("/api/v1/whoami", headers={"Authorization": f"Bearer {token}"})

        assert response.json() == {
            "user_id": "user-1",
            "employee_id": "emp-1",
            "is_employee": True,
            "roles": ["counselor"],
        }

    def test_token_without_employee(self, client: TestClient, jwt_manager: JWTManager) -> None:
        token = jwt_manager.create_access_token(user_id="user-1")

        response = client.get("/api/v1/whoami", headers={"Authorization": f"Bearer {token}"})

        assert response.json()["is_employee"] is False

    def test_missing_header_leaves_user_unset(self, client: TestClient) -> None:
        response = client.get("/api/v1/whoami")

        assert response.json() == {"user_id": None}

    @pytest.mark.parametrize("header", ["Token abc", "Bearer", "Bearer a b"])
    def test_malformed_header_is_ignored(self, client: TestClient, header: str) -> None:
        response = client.get("/api/v1/whoami", headers={"Authorization": header})

        assert response.json() == {"user_id": None}

    def test_expired_token_leaves_user_unset(self, client: TestClient) -> None:
        now = int(time.time())
        token = jwt.encode(
            {"sub": "user-1", "type": "access", "exp": now - 60}, SECRET, algorithm="HS256"
        )

        response = client.get("/api/v1/whoami", headers={"Authorization": f"Bearer {token}"})

        assert response.json() == {"user_id": None}
