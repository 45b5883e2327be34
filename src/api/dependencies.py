# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Shared FastAPI dependencies.

Route handlers pick one of two sessions:

    get_agency_db  staff endpoints. Requires a user and sets the RLS tenant
                   to the user's agency, so queries only ever see that
                   agency's rows.
    get_db         login, invitation acceptance and scheduler endpoints,
                   which have no user yet and scope their queries by hand.

Auth failures raise AppError subclasses so they leave through the same
error envelope as everything else.
"""

import logging
import secrets
from typing import Annotated, AsyncGenerator

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.middleware.auth import CurrentUser, get_current_user
from src.core.config import Settings, get_settings
from src.core.errors import ForbiddenError, UnauthorizedError
from src.domains.auth.jwt import JWTManager
from src.infrastructure.database import get_session

logger = logging.getLogger(__name__)


def require_auth(request: Request) -> CurrentUser:
    user = get_current_user(request)
    if user is None:
        raise UnauthorizedError("Not authenticated")
    return user


def require_admin(user: CurrentUser = Depends(require_auth)) -> CurrentUser:
    if not user.is_admin:
        logger.info("User %s is not an agency admin", user.id)
        raise ForbiddenError("Admin access required")
    return user


def require_jobs_api_key(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """Guard for the scheduler endpoints, compared in constant time."""
    expected = get_settings().jobs.api_key.get_secret_value()
    if not x_api_key or not secrets.compare_digest(x_api_key, expected):
        logger.warning("Rejected job request with missing or invalid API key")
        raise UnauthorizedError("Invalid or missing API key")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with get_session() as session:
        yield session


async def get_agency_db(
    user: CurrentUser = Depends(require_auth),
) -> AsyncGenerator[AsyncSession, None]:
    async with get_session(user.agency_id) as session:
        yield session


def get_app_settings() -> Settings:
    return get_settings()


def get_jwt_manager() -> JWTManager:
    return JWTManager(get_settings().jwt)
