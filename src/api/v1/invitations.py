# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Staff invitation endpoints.

- POST / - Invite a user by email (admin)
- GET / - List invitations (admin)
- POST /{invitation_id}/resend - New token and expiry (admin)
- DELETE /{invitation_id} - Withdraw an unused invitation (admin)
- POST /accept - Accept an invitation (public)
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_agency_db, get_app_settings, get_db, require_admin
from src.api.middleware.auth import CurrentUser
from src.core.config import Settings
from src.domains.user.invitation import InvitationService, build_invitation_email
from src.infrastructure.notifications.channels import DeliveryStatus, EmailChannel
from src.models.user import (
    InvitationAcceptRequest,
    InvitationCreateRequest,
    InvitationListResponse,
    InvitationResponse,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _send_invitation_email(
    service: InvitationService,
    invitation: InvitationResponse,
    token: str,
    settings: Settings,
) -> None:
    """Email the invitation link. Delivery failures are logged, the invitation stays valid."""
    agency_name = await service.get_agency_name()
    payload = build_invitation_email(invitation.email, agency_name, token, settings.api.public_url)
    result = await EmailChannel(settings.email).send(payload)
    if result.status != DeliveryStatus.SENT:
        logger.warning(
            "Invitation email to %s not sent: %s",
            invitation.email,
            result.error_message,
        )


@router.post(
    "",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invite user",
    description="Invite a user by email. Requires admin access.",
)
async def create_invitation(
    data: InvitationCreateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
    settings: Settings = Depends(get_app_settings),
) -> InvitationResponse:
    service = InvitationService(db, current_user.agency_id)
    invitation, token = await service.create_invitation(
        email=data.email,
        role=data.role,
        invited_by=current_user.id,
    )
    await _send_invitation_email(service, invitation, token, settings)
    return invitation


@router.get(
    "",
    response_model=InvitationListResponse,
    summary="List invitations",
)
async def list_invitations(
    pending_only: Annotated[bool, Query(description="Only unused, unexpired invitations")] = False,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> InvitationListResponse:
    service = InvitationService(db, current_user.agency_id)
    items, total = await service.list_invitations(pending_only=pending_only)
    return InvitationListResponse(items=items, total=total)


@router.post(
    "/{invitation_id}/resend",
    response_model=InvitationResponse,
    summary="Resend invitation",
    description="Issue a new token with a fresh seven day expiry and email it again.",
)
async def resend_invitation(
    invitation_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
    settings: Settings = Depends(get_app_settings),
) -> InvitationResponse:
    service = InvitationService(db, current_user.agency_id)
    invitation, token = await service.resend_invitation(invitation_id)
    await _send_invitation_email(service, invitation, token, settings)
    return invitation


@router.delete(
    "/{invitation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete invitation",
    description="Withdraw a pending or expired invitation. Used invitations cannot be deleted.",
)
async def delete_invitation(
    invitation_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> None:
    service = InvitationService(db, current_user.agency_id)
    await service.delete_invitation(invitation_id, deleted_by=current_user.id)


@router.post(
    "/accept",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Accept invitation",
    description="Create the invited account. Public endpoint authenticated by the token.",
)
async def accept_invitation(
    data: InvitationAcceptRequest,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    service = InvitationService(db)
    return await service.accept_invitation(data.token, data.full_name, data.password)
