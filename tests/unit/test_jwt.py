# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for JWT token utilities.

Tests the JWTManager class and token operations.
"""

import time
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from jose import jwt
from pydantic import SecretStr

from src.domains.auth.jwt import (
    InvalidTokenError,
    JWTManager,
    TokenExpiredError,
    TokenPair,
)


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


class TestJWTManager:
    """Tests for JWTManager class."""

    def test_create_token_pair_returns_valid_tokens(self, jwt_manager: JWTManager) -> None:
        result = jwt_manager.create_token_pair(
            user_id=str(uuid4()),
            agency_id=str(uuid4()),
            role="agency_admin",
            email="admin@agency.example",
        )

        assert isinstance(result, TokenPair)
        assert result.token_type == "Bearer"
        assert result.expires_in == 30 * 60
        assert result.refresh_expires_in == 7 * 24 * 60 * 60

    def test_access_token_carries_agency_and_role(self, jwt_manager: JWTManager) -> None:
        user_id = str(uuid4())
        agency_id = str(uuid4())

        token = jwt_manager.create_access_token(
            user_id=user_id,
            agency_id=agency_id,
            role="agency_user",
            email="user@agency.example",
        )
        payload = jwt_manager.decode_token(token, expected_type="access")

        assert payload.sub == user_id
        assert payload.agency_id == agency_id
        assert payload.role == "agency_user"
        assert payload.email == "user@agency.example"
        assert payload.type == "access"

    def test_refresh_token_decodes_as_refresh(self, jwt_manager: JWTManager) -> None:
        pair = jwt_manager.create_token_pair(user_id="u-1", agency_id="a-1", role="agency_user")

        payload = jwt_manager.decode_token(pair.refresh_token, expected_type="refresh")

        assert payload.sub == "u-1"
        assert payload.agency_id == "a-1"

    def test_wrong_token_type_raises(self, jwt_manager: JWTManager) -> None:
        pair = jwt_manager.create_token_pair(user_id="u-1", agency_id="a-1", role="agency_user")

        with pytest.raises(InvalidTokenError, match="Expected access token"):
            jwt_manager.decode_token(pair.refresh_token, expected_type="access")

    def test_expired_token_raises(self, jwt_manager: JWTManager, jwt_settings: MagicMock) -> None:
        now = int(time.time())
        token = jwt.encode(
            {
                "sub": "u-1",
                "type": "access",
                "agency_id": "a-1",
                "exp": now - 10,
                "iat": now - 100,
                "jti": "x",
            },
            jwt_settings.secret_key.get_secret_value(),
            algorithm="HS256",
        )

        with pytest.raises(TokenExpiredError):
            jwt_manager.decode_token(token)

    def test_token_without_agency_claim_is_rejected(
        self, jwt_manager: JWTManager, jwt_settings: MagicMock
    ) -> None:
        now = int(time.time())
        token = jwt.encode(
            {"sub": "u-1", "type": "access", "exp": now + 60, "iat": now, "jti": "x"},
            jwt_settings.secret_key.get_secret_value(),
            algorithm="HS256",
        )

        with pytest.raises(InvalidTokenError, match="agency"):
            jwt_manager.decode_token(token)

    def test_tampered_signature_is_rejected(self, jwt_manager: JWTManager) -> None:
        token = jwt_manager.create_access_token(user_id="u-1", agency_id="a-1", role="agency_user")
        other = JWTManager(
            MagicMock(
                secret_key=SecretStr("another-secret"),
                algorithm="HS256",
                access_token_expire_minutes=30,
                refresh_token_expire_days=7,
            )
        )

        with pytest.raises(InvalidTokenError):
            other.decode_token(token)

    def test_verify_token(self, jwt_manager: JWTManager) -> None:
        token = jwt_manager.create_access_token(user_id="u-1", agency_id="a-1", role="agency_user")

        assert jwt_manager.verify_token(token, "access") is True
        assert jwt_manager.verify_token("garbage") is False
