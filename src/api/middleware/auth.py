# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bearer token authentication for agency staff.

The middleware only identifies the caller: a valid access token becomes
``request.state.user``, anything else leaves it None. Rejecting anonymous
callers is left to the ``require_auth`` dependency so that one route table
can mix public and protected endpoints. The agency on the token is what
RequestContextMiddleware and the database session later use as the tenant.
"""

import logging
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.core.config import get_settings
from src.domains.auth.jwt import JWTError, JWTManager, TokenPayload

logger = logging.getLogger(__name__)

ADMIN_ROLE = "agency_admin"
STAFF_ROLE = "agency_user"

PUBLIC_PATHS = frozenset({
    "/",
    "/health",
    "/health/ready",
    "/health/live",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/api/v1/auth/login",
    "/api/v1/auth/refresh",
    "/api/v1/invitations/accept",
})

# Scheduler endpoints check X-API-Key themselves.
PUBLIC_PATH_PREFIXES = ("/api/v1/jobs/",)


class CurrentUser:
    """The staff member behind an access token."""

    __slots__ = ("id", "agency_id", "role", "email")

    def __init__(self, payload: TokenPayload) -> None:
        self.id = payload.sub
        self.agency_id = payload.agency_id
        self.role = payload.role or STAFF_ROLE
        self.email = payload.email

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    def __repr__(self) -> str:
        return f"CurrentUser(id={self.id!r}, agency_id={self.agency_id!r}, role={self.role!r})"


def is_public_path(path: str) -> bool:
    return path in PUBLIC_PATHS or path.startswith(PUBLIC_PATH_PREFIXES)


def extract_bearer_token(request: Request) -> str | None:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip() or " " in token.strip():
        return None
    return token.strip()


def get_current_user(request: Request) -> CurrentUser | None:
    return getattr(request.state, "user", None)


class AuthMiddleware(BaseHTTPMiddleware):
    """Decodes the access token and attaches a CurrentUser to the request."""

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)
        self._jwt_manager = JWTManager(get_settings().jwt)

    def _authenticate(self, request: Request) -> CurrentUser | None:
        token = extract_bearer_token(request)
        if token is None:
            return None
        try:
            payload = self._jwt_manager.decode_token(token, expected_type="access")
        except JWTError as e:
            logger.debug("Ignoring bearer token on %s: %s", request.url.path, e)
            return None
        return CurrentUser(payload)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request.state.user = None
        if not is_public_path(request.url.path):
            request.state.user = self._authenticate(request)
        return await call_next(request)
