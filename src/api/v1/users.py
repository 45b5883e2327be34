# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User management API endpoints.

This module provides endpoints for agency staff:
- GET / - List users with filtering
- GET /{user_id} - Get user details
- PATCH /me/profile - Update own profile
- PATCH /me/password - Change own password
- PATCH /me/email-notifications - Opt in or out of notification emails
- PATCH /{user_id}/role - Change role (admin)
- PATCH /{user_id}/status - Activate or deactivate (admin)
- DELETE /{user_id} - Delete user (admin)

New users join through invitations, see invitations.py.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_agency_db, require_admin, require_auth
from src.api.middleware.auth import CurrentUser
from src.domains.user.service import UserService
from src.models.common import MessageResponse
from src.models.user import (
    EmailNotificationsUpdateRequest,
    PasswordChangeRequest,
    UserListResponse,
    UserProfileUpdateRequest,
    UserResponse,
    UserRole,
    UserRoleUpdateRequest,
    UserStatus,
    UserStatusUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_user_service(db: AsyncSession, current_user: CurrentUser) -> UserService:
    return UserService(db, current_user.agency_id)


@router.get(
    "",
    response_model=UserListResponse,
    summary="List users",
    description="List agency users with optional role and status filters.",
)
async def list_users(
    role: Annotated[UserRole | None, Query(description="Filter by role")] = None,
    user_status: Annotated[UserStatus | None, Query(alias="status", description="Filter by status")] = None,
    limit: Annotated[int, Query(ge=1, le=100, description="Maximum results")] = 50,
    offset: Annotated[int, Query(ge=0, description="Pagination offset")] = 0,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> UserListResponse:
    service = _get_user_service(db, current_user)
    users, total = await service.list_users(
        role=role,
        status=user_status,
        limit=limit,
        offset=offset,
    )
    return UserListResponse(items=users, total=total, limit=limit, offset=offset)


@router.patch(
    "/me/profile",
    response_model=UserResponse,
    summary="Update own profile",
)
async def update_profile(
    data: UserProfileUpdateRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> UserResponse:
    service = _get_user_service(db, current_user)
    return await service.update_profile(current_user.id, data.full_name)


@router.patch(
    "/me/password",
    response_model=MessageResponse,
    summary="Change own password",
    description="Requires the current password. The new one must meet the password policy.",
)
async def change_password(
    data: PasswordChangeRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> MessageResponse:
    service = _get_user_service(db, current_user)
    await service.change_password(current_user.id, data.current_password, data.new_password)
    return MessageResponse(message="Password changed successfully")


@router.patch(
    "/me/email-notifications",
    response_model=UserResponse,
    summary="Update email notification preference",
)
async def update_email_notifications(
    data: EmailNotificationsUpdateRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> UserResponse:
    service = _get_user_service(db, current_user)
    return await service.update_email_notifications(current_user.id, data.enabled)


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get user",
)
async def get_user(
    user_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> UserResponse:
    return await _get_user_service(db, current_user).get_user(user_id)


@router.patch(
    "/{user_id}/role",
    response_model=UserResponse,
    summary="Change user role",
    description="Requires admin access. Admins cannot demote themselves.",
)
async def update_role(
    user_id: str,
    data: UserRoleUpdateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> UserResponse:
    logger.info("Changing role of %s to %s by %s", user_id, data.role, current_user.id)
    service = _get_user_service(db, current_user)
    return await service.update_role(user_id, data.role, acting_user_id=current_user.id)


@router.patch(
    "/{user_id}/status",
    response_model=UserResponse,
    summary="Change user status",
    description="Requires admin access. Admins cannot deactivate themselves.",
)
async def update_status(
    user_id: str,
    data: UserStatusUpdateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> UserResponse:
    logger.info("Changing status of %s to %s by %s", user_id, data.status, current_user.id)
    service = _get_user_service(db, current_user)
    return await service.update_status(user_id, data.status, acting_user_id=current_user.id)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete user",
    description="Requires admin access. Admins cannot delete themselves.",
)
async def delete_user(
    user_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> None:
    service = _get_user_service(db, current_user)
    await service.delete_user(user_id, acting_user_id=current_user.id)
