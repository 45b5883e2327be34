# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for authentication and request context middleware.

Tests the middleware components in isolation from database.
"""

from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from pydantic import SecretStr

from src.api.middleware.auth import AuthMiddleware, CurrentUser, get_current_user, is_public_path
from src.api.middleware.request_context import REQUEST_ID_HEADER, RequestContextMiddleware
from src.domains.auth.jwt import JWTManager

pytestmark = pytest.mark.integration


@pytest.fixture
def jwt_settings() -> MagicMock:
    """Create mock JWT settings."""
    settings = MagicMock()
    settings.secret_key = SecretStr("test-secret-key-for-jwt-testing")
    settings.algorithm = "HS256"
    settings.access_token_expire_minutes = 30
    settings.refresh_token_expire_days = 7
    return settings


@pytest.fixture
def jwt_manager(jwt_settings: MagicMock) -> JWTManager:
    """Create JWT manager with test settings."""
    return JWTManager(jwt_settings)


def build_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(AuthMiddleware)

    @app.get("/api/v1/whoami")
    async def whoami(request: Request) -> dict:
        user = get_current_user(request)
        return {
            "user_id": user.id if user else None,
            "agency_id": request.state.agency_id,
            "is_admin": user.is_admin if user else None,
        }

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app


class TestAuthMiddleware:
    """Tests for AuthMiddleware."""

    @patch("src.api.middleware.auth.get_settings")
    def test_public_path_bypasses_auth(
        self,
        mock_settings: MagicMock,
        jwt_settings: MagicMock,
    ) -> None:
        """Test that public paths don't require authentication."""
        mock_settings.return_value.jwt = jwt_settings

        response = TestClient(build_app()).get("/health")

        assert response.status_code == 200

    @patch("src.api.middleware.auth.get_settings")
    def test_valid_token_sets_user_and_agency(
        self,
        mock_settings: MagicMock,
        jwt_settings: MagicMock,
        jwt_manager: JWTManager,
    ) -> None:
        """Test that a valid token sets the user and the request agency."""
        mock_settings.return_value.jwt = jwt_settings
        user_id = str(uuid4())
        agency_id = str(uuid4())
        token = jwt_manager.create_access_token(
            user_id=user_id,
            agency_id=agency_id,
            role="agency_admin",
        )

        response = TestClient(build_app()).get(
            "/api/v1/whoami",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 200
        assert response.json() == {"user_id": user_id, "agency_id": agency_id, "is_admin": True}

    @patch("src.api.middleware.auth.get_settings")
    def test_no_token_sets_user_none(
        self,
        mock_settings: MagicMock,
        jwt_settings: MagicMock,
    ) -> None:
        """Test that missing token sets request.state.user to None."""
        mock_settings.return_value.jwt = jwt_settings

        response = TestClient(build_app()).get("/api/v1/whoami")

        assert response.status_code == 200
        assert response.json()["user_id"] is None
        assert response.json()["agency_id"] is None

    @patch("src.api.middleware.auth.get_settings")
    def test_invalid_token_sets_user_none(
        self,
        mock_settings: MagicMock,
        jwt_settings: MagicMock,
    ) -> None:
        """Test that invalid token sets request.state.user to None."""
        mock_settings.return_value.jwt = jwt_settings

        response = TestClient(build_app()).get(
            "/api/v1/whoami",
            headers={"Authorization": "Bearer invalid-token"},
        )

        assert response.status_code == 200
        assert response.json()["user_id"] is None

    @patch("src.api.middleware.auth.get_settings")
    def test_refresh_token_is_not_an_access_token(
        self,
        mock_settings: MagicMock,
        jwt_settings: MagicMock,
        jwt_manager: JWTManager,
    ) -> None:
        """Test that a refresh token cannot authenticate requests."""
        mock_settings.return_value.jwt = jwt_settings
        pair = jwt_manager.create_token_pair(str(uuid4()), str(uuid4()), "agency_user")

        response = TestClient(build_app()).get(
            "/api/v1/whoami",
            headers={"Authorization": f"Bearer {pair.refresh_token}"},
        )

        assert response.json()["user_id"] is None


class TestRequestContextMiddleware:
    """Tests for RequestContextMiddleware."""

    @patch("src.api.middleware.auth.get_settings")
    def test_request_id_is_echoed(
        self,
        mock_settings: MagicMock,
        jwt_settings: MagicMock,
    ) -> None:
        mock_settings.return_value.jwt = jwt_settings
        client = TestClient(build_app())

        generated = client.get("/health")
        provided = client.get("/health", headers={REQUEST_ID_HEADER: "req-123"})

        assert generated.headers[REQUEST_ID_HEADER]
        assert provided.headers[REQUEST_ID_HEADER] == "req-123"


class TestPublicPaths:
    """Tests for is_public_path."""

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/health", True),
            ("/api/v1/auth/login", True),
            ("/api/v1/invitations/accept", True),
            ("/api/v1/jobs/update-installment-statuses", True),
            ("/api/v1/payment-plans", False),
            ("/api/v1/auth/me", False),
        ],
    )
    def test_public_paths(self, path: str, expected: bool) -> None:
        assert is_public_path(path) is expected


class TestCurrentUser:
    """Tests for CurrentUser class."""

    def test_roles(self, jwt_manager: JWTManager) -> None:
        agency_id = str(uuid4())
        admin_token = jwt_manager.create_access_token(str(uuid4()), agency_id, "agency_admin")
        staff_token = jwt_manager.create_access_token(str(uuid4()), agency_id, "agency_user")

        admin = CurrentUser(jwt_manager.decode_token(admin_token))
        staff = CurrentUser(jwt_manager.decode_token(staff_token))

        assert admin.is_admin is True
        assert admin.agency_id == agency_id
        assert staff.is_admin is False
