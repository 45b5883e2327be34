# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Signed session tokens for agency staff.

A session is an access token (short lived, carries role and email for the
auth middleware) plus a refresh token (long lived, identity only). Both are
HS256 JWTs signed with python-jose and both carry agency_id: the middleware
hands that claim to the database session as the RLS tenant, so a token
without one is never accepted.

Example:
    >>> manager = JWTManager(get_settings().jwt)
    >>> pair = manager.create_token_pair("u-1", "a-1", "agency_admin")
    >>> manager.decode_token(pair.access_token, "access").agency_id
    'a-1'
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Literal
from uuid import UUID

from jose import ExpiredSignatureError, JWTError as JoseJWTError, jwt
from pydantic import BaseModel, Field, ValidationError

from src.core.config.settings import JWTSettings
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

TokenType = Literal["access", "refresh"]


class TokenPayload(BaseModel):
    """Decoded claims. ``role`` and ``email`` are only present on access tokens."""

    sub: str
    type: TokenType
    agency_id: str = Field(min_length=1)
    role: str | None = None
    email: str | None = None
    exp: int
    iat: int
    jti: str


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_expires_in: int


class JWTError(Exception):
    """Base exception for token handling."""


class TokenExpiredError(JWTError):
    """The token's exp claim is in the past."""


class InvalidTokenError(JWTError):
    """Bad signature, malformed claims or the wrong token type."""


class JWTManager:
    """Issues and validates session tokens with the configured secret."""

    def __init__(self, settings: JWTSettings) -> None:
        self._settings = settings

    @property
    def access_ttl(self) -> timedelta:
        return timedelta(minutes=self._settings.access_token_expire_minutes)

    @property
    def refresh_ttl(self) -> timedelta:
        return timedelta(days=self._settings.refresh_token_expire_days)

    def _sign(
        self,
        token_type: TokenType,
        user_id: str | UUID,
        agency_id: str | UUID,
        issued_at: datetime,
        **extra: Any,
    ) -> str:
        ttl = self.access_ttl if token_type == "access" else self.refresh_ttl
        claims = {
            "sub": str(user_id),
            "type": token_type,
            "agency_id": str(agency_id),
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + ttl).timestamp()),
            "jti": secrets.token_urlsafe(16),
            **extra,
        }
        return jwt.encode(
            claims,
            self._settings.secret_key.get_secret_value(),
            algorithm=self._settings.algorithm,
        )

    def create_access_token(
        self,
        user_id: str | UUID,
        agency_id: str | UUID,
        role: str,
        email: str | None = None,
    ) -> str:
        return self._sign("access", user_id, agency_id, utc_now(), role=role, email=email)

    def create_token_pair(
        self,
        user_id: str | UUID,
        agency_id: str | UUID,
        role: str,
        email: str | None = None,
    ) -> TokenPair:
        """Issue a fresh access and refresh token for one login or refresh.

        Args:
            user_id: The staff user's id.
            agency_id: The agency the user belongs to.
            role: agency_admin or agency_user.
            email: Login email, copied into the access token only.

        Returns:
            TokenPair whose lifetimes are reported in seconds.
        """
        issued_at = utc_now()
        return TokenPair(
            access_token=self._sign(
                "access", user_id, agency_id, issued_at, role=role, email=email
            ),
            refresh_token=self._sign("refresh", user_id, agency_id, issued_at),
            expires_in=int(self.access_ttl.total_seconds()),
            refresh_expires_in=int(self.refresh_ttl.total_seconds()),
        )

    def decode_token(self, token: str, expected_type: TokenType | None = None) -> TokenPayload:
        """Verify a token's signature and expiry and return its claims.

        Raises:
            TokenExpiredError: The token has expired.
            InvalidTokenError: The signature or claims are invalid, the agency
                claim is missing or the type does not match expected_type.
        """
        try:
            claims = jwt.decode(
                token,
                self._settings.secret_key.get_secret_value(),
                algorithms=[self._settings.algorithm],
            )
        except ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except JoseJWTError as e:
            logger.warning("Rejected token: %s", e)
            raise InvalidTokenError(f"Invalid token: {e}") from e

        if expected_type is not None and claims.get("type") != expected_type:
            raise InvalidTokenError(f"Expected {expected_type} token, got {claims.get('type')}")
        if not claims.get("agency_id"):
            raise InvalidTokenError("Token has no agency claim")

        try:
            return TokenPayload.model_validate(claims)
        except ValidationError as e:
            raise InvalidTokenError(f"Invalid token claims: {e.error_count()} errors") from e

    def verify_token(self, token: str, expected_type: TokenType | None = None) -> bool:
        try:
            self.decode_token(token, expected_type)
        except JWTError:
            return False
        return True
