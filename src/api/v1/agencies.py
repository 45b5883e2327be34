# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Agency settings endpoints.

- GET /current - The caller's agency
- PATCH /current - Update agency details (admin)
- PATCH /current/notification-settings - Overdue cutoff and due soon threshold (admin)
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_agency_db, require_admin, require_auth
from src.api.middleware.auth import CurrentUser
from src.domains.agency.service import AgencyService
from src.models.agency import (
    AgencyResponse,
    AgencyUpdateRequest,
    NotificationSettingsUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/current",
    response_model=AgencyResponse,
    summary="Get current agency",
)
async def get_current_agency(
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> AgencyResponse:
    return await AgencyService(db, current_user.agency_id).get_current_agency()


@router.patch(
    "/current",
    response_model=AgencyResponse,
    summary="Update agency",
    description="Update agency details. Requires admin access.",
)
async def update_agency(
    data: AgencyUpdateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> AgencyResponse:
    service = AgencyService(db, current_user.agency_id)
    return await service.update_agency(data, user_id=current_user.id)


@router.patch(
    "/current/notification-settings",
    response_model=AgencyResponse,
    summary="Update notification settings",
    description="Change the overdue cutoff time and due soon threshold. Requires admin access.",
)
async def update_notification_settings(
    data: NotificationSettingsUpdateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> AgencyResponse:
    service = AgencyService(db, current_user.agency_id)
    return await service.update_notification_settings(data, user_id=current_user.id)
