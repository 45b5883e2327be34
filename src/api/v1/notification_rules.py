# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification rule and email template endpoints.

Rules decide who gets emailed for each event, templates decide what
they receive. Changes require admin access, reads do not.

Rules:
- GET / POST /rules, POST /rules/batch
- GET / PATCH / DELETE /rules/{rule_id}

Templates:
- GET / POST /templates
- GET / PATCH / DELETE /templates/{template_id}
- POST /templates/{template_id}/preview
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_agency_db, require_admin, require_auth
from src.api.middleware.auth import CurrentUser
from src.domains.notification.rules import EmailTemplateService, NotificationRuleService
from src.models.notification import (
    EmailTemplateCreateRequest,
    EmailTemplatePreviewRequest,
    EmailTemplatePreviewResponse,
    EmailTemplateResponse,
    EmailTemplateUpdateRequest,
    EventType,
    NotificationRuleBatchRequest,
    NotificationRuleCreateRequest,
    NotificationRuleResponse,
    NotificationRuleUpdateRequest,
)

router = APIRouter()


# =========================================================================
# Rules
# =========================================================================


@router.get(
    "/rules",
    response_model=list[NotificationRuleResponse],
    summary="List notification rules",
)
async def list_rules(
    event_type: Annotated[EventType | None, Query()] = None,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> list[NotificationRuleResponse]:
    return await NotificationRuleService(db, current_user.agency_id).list_rules(event_type)


@router.post(
    "/rules",
    response_model=NotificationRuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create notification rule",
    description="One rule per recipient type and event type.",
)
async def create_rule(
    data: NotificationRuleCreateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> NotificationRuleResponse:
    return await NotificationRuleService(db, current_user.agency_id).create_rule(data)


@router.post(
    "/rules/batch",
    response_model=list[NotificationRuleResponse],
    summary="Create or update several rules",
    description="Upsert on recipient type and event type, as saved by the settings matrix.",
)
async def batch_upsert_rules(
    data: NotificationRuleBatchRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> list[NotificationRuleResponse]:
    return await NotificationRuleService(db, current_user.agency_id).batch_upsert(data.rules)


@router.get(
    "/rules/{rule_id}",
    response_model=NotificationRuleResponse,
    summary="Get notification rule",
)
async def get_rule(
    rule_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> NotificationRuleResponse:
    return await NotificationRuleService(db, current_user.agency_id).get_rule(rule_id)


@router.patch(
    "/rules/{rule_id}",
    response_model=NotificationRuleResponse,
    summary="Update notification rule",
)
async def update_rule(
    rule_id: str,
    data: NotificationRuleUpdateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> NotificationRuleResponse:
    return await NotificationRuleService(db, current_user.agency_id).update_rule(rule_id, data)


@router.delete(
    "/rules/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete notification rule",
)
async def delete_rule(
    rule_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> None:
    await NotificationRuleService(db, current_user.agency_id).delete_rule(rule_id)


# =========================================================================
# Templates
# =========================================================================


@router.get(
    "/templates",
    response_model=list[EmailTemplateResponse],
    summary="List email templates",
)
async def list_templates(
    template_type: Annotated[str | None, Query()] = None,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> list[EmailTemplateResponse]:
    return await EmailTemplateService(db, current_user.agency_id).list_templates(template_type)


@router.post(
    "/templates",
    response_model=EmailTemplateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create email template",
)
async def create_template(
    data: EmailTemplateCreateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> EmailTemplateResponse:
    return await EmailTemplateService(db, current_user.agency_id).create_template(data)


@router.get(
    "/templates/{template_id}",
    response_model=EmailTemplateResponse,
    summary="Get email template",
)
async def get_template(
    template_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> EmailTemplateResponse:
    return await EmailTemplateService(db, current_user.agency_id).get_template(template_id)


@router.patch(
    "/templates/{template_id}",
    response_model=EmailTemplateResponse,
    summary="Update email template",
)
async def update_template(
    template_id: str,
    data: EmailTemplateUpdateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> EmailTemplateResponse:
    service = EmailTemplateService(db, current_user.agency_id)
    return await service.update_template(template_id, data)


@router.delete(
    "/templates/{template_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete email template",
)
async def delete_template(
    template_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> None:
    await EmailTemplateService(db, current_user.agency_id).delete_template(template_id)


@router.post(
    "/templates/{template_id}/preview",
    response_model=EmailTemplatePreviewResponse,
    summary="Preview email template",
    description="Render the template with sample values, overridden by the given variables.",
)
async def preview_template(
    template_id: str,
    data: EmailTemplatePreviewRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> EmailTemplatePreviewResponse:
    service = EmailTemplateService(db, current_user.agency_id)
    return await service.preview_template(template_id, data.variables)
