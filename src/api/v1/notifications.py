# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-app notification endpoints.

- GET / - The caller's and agency-wide notifications with unread count
- PATCH /{notification_id}/read - Mark one read
- POST /read-all - Mark all read
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_agency_db, require_auth
from src.api.middleware.auth import CurrentUser
from src.domains.notification.in_app import InAppNotificationService
from src.models.notification import NotificationListResponse, NotificationResponse

router = APIRouter()


class MarkAllReadResponse(BaseModel):
    """Number of notifications marked read."""

    updated: int


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="List notifications",
)
async def list_notifications(
    unread_only: Annotated[bool, Query()] = False,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> NotificationListResponse:
    service = InAppNotificationService(db, current_user.agency_id)
    return await service.list_notifications(
        current_user.id,
        unread_only=unread_only,
        limit=limit,
        offset=offset,
    )


@router.patch(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark notification read",
)
async def mark_read(
    notification_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> NotificationResponse:
    service = InAppNotificationService(db, current_user.agency_id)
    return await service.mark_read(notification_id, current_user.id)


@router.post(
    "/read-all",
    response_model=MarkAllReadResponse,
    summary="Mark all notifications read",
)
async def mark_all_read(
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> MarkAllReadResponse:
    service = InAppNotificationService(db, current_user.agency_id)
    return MarkAllReadResponse(updated=await service.mark_all_read(current_user.id))
