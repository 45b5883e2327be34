# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification rule and email template management.

Rules decide which recipient types are emailed for an event. Each rule
may point at an agency email template; without one the built-in default
for the event is used.
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import ConflictError, NotFoundError, ValidationError
from src.domains.notification.templates import SAMPLE_VARIABLES, render_template
from src.infrastructure.database.models import EmailTemplate, NotificationRule
from src.models.notification import (
    EmailTemplateCreateRequest,
    EmailTemplatePreviewResponse,
    EmailTemplateResponse,
    EmailTemplateUpdateRequest,
    NotificationRuleCreateRequest,
    NotificationRuleResponse,
    NotificationRuleUpdateRequest,
)

logger = logging.getLogger(__name__)


class NotificationRuleNotFoundError(NotFoundError):
    """Raised when a rule is not found."""

    pass


class NotificationRuleExistsError(ConflictError):
    """Raised when the agency already has a rule for the recipient and event."""

    pass


class EmailTemplateNotFoundError(NotFoundError):
    """Raised when an email template is not found."""

    pass


class InvalidTemplateReferenceError(ValidationError):
    """Raised when a rule references a template of another agency."""

    pass


class NotificationRuleService:
    """Service for notification rules.

    Attributes:
        _db: Async database session.
        _agency_id: Caller's agency.
    """

    def __init__(self, db: AsyncSession, agency_id: str) -> None:
        self._db = db
        self._agency_id = agency_id

    async def list_rules(self, event_type: str | None = None) -> list[NotificationRuleResponse]:
        query = select(NotificationRule).where(NotificationRule.agency_id == self._agency_id)
        if event_type:
            query = query.where(NotificationRule.event_type == event_type)
        query = query.order_by(NotificationRule.event_type, NotificationRule.recipient_type)

        result = await self._db.execute(query)
        return [NotificationRuleResponse.model_validate(r) for r in result.scalars().all()]

    async def get_rule(self, rule_id: str) -> NotificationRuleResponse:
        return NotificationRuleResponse.model_validate(await self._get_rule(rule_id))

    async def create_rule(self, request: NotificationRuleCreateRequest) -> NotificationRuleResponse:
        """Create a rule.

        Raises:
            NotificationRuleExistsError: If a rule for the pair already exists.
            InvalidTemplateReferenceError: If the template is not the agency's.
        """
        existing = await self._find_rule(request.recipient_type, request.event_type)
        if existing is not None:
            raise NotificationRuleExistsError(
                f"A {request.event_type} rule for {request.recipient_type} already exists",
                details={"rule_id": existing.id},
            )
        await self._ensure_template(request.template_id)

        rule = NotificationRule(
            agency_id=self._agency_id,
            recipient_type=request.recipient_type,
            event_type=request.event_type,
            is_enabled=request.is_enabled,
            template_id=request.template_id,
            trigger_config=request.trigger_config.model_dump(exclude_none=True),
        )
        self._db.add(rule)
        await self._db.commit()
        await self._db.refresh(rule)

        logger.info(
            "Notification rule created: %s %s -> %s",
            rule.id,
            rule.event_type,
            rule.recipient_type,
        )
        return NotificationRuleResponse.model_validate(rule)

    async def update_rule(
        self,
        rule_id: str,
        request: NotificationRuleUpdateRequest,
    ) -> NotificationRuleResponse:
        rule = await self._get_rule(rule_id)
        changes = request.model_dump(exclude_unset=True)

        if "template_id" in changes:
            await self._ensure_template(changes["template_id"])
            rule.template_id = changes["template_id"]
        if changes.get("is_enabled") is not None:
            rule.is_enabled = changes["is_enabled"]
        if request.trigger_config is not None:
            rule.trigger_config = request.trigger_config.model_dump(exclude_none=True)

        await self._db.commit()
        await self._db.refresh(rule)
        return NotificationRuleResponse.model_validate(rule)

    async def delete_rule(self, rule_id: str) -> None:
        rule = await self._get_rule(rule_id)
        await self._db.delete(rule)
        await self._db.commit()
        logger.info("Notification rule deleted: %s", rule_id)

    async def batch_upsert(
        self,
        requests: list[NotificationRuleCreateRequest],
    ) -> list[NotificationRuleResponse]:
        """Create or update rules keyed on (recipient_type, event_type).

        All rules are saved in one transaction. A later entry for the same
        pair overrides an earlier one.

        Returns:
            The saved rules in request order, without duplicates.
        """
        saved: dict[tuple[str, str], NotificationRule] = {}

        for request in requests:
            await self._ensure_template(request.template_id)
            key = (request.recipient_type, request.event_type)

            rule = saved.get(key) or await self._find_rule(*key)
            if rule is None:
                rule = NotificationRule(
                    agency_id=self._agency_id,
                    recipient_type=request.recipient_type,
                    event_type=request.event_type,
                )
                self._db.add(rule)

            rule.is_enabled = request.is_enabled
            rule.template_id = request.template_id
            rule.trigger_config = request.trigger_config.model_dump(exclude_none=True)
            saved[key] = rule

        await self._db.commit()
        for rule in saved.values():
            await self._db.refresh(rule)

        logger.info("Upserted %d notification rules for agency %s", len(saved), self._agency_id)
        return [NotificationRuleResponse.model_validate(r) for r in saved.values()]

    async def _find_rule(self, recipient_type: str, event_type: str) -> NotificationRule | None:
        result = await self._db.execute(
            select(NotificationRule).where(
                NotificationRule.agency_id == self._agency_id,
                NotificationRule.recipient_type == recipient_type,
                NotificationRule.event_type == event_type,
            )
        )
        return result.scalar_one_or_none()

    async def _get_rule(self, rule_id: str) -> NotificationRule:
        result = await self._db.execute(
            select(NotificationRule).where(
                NotificationRule.id == rule_id,
                NotificationRule.agency_id == self._agency_id,
            )
        )
        rule = result.scalar_one_or_none()
        if rule is None:
            raise NotificationRuleNotFoundError(f"Notification rule not found: {rule_id}")
        return rule

    async def _ensure_template(self, template_id: str | None) -> None:
        if template_id is None:
            return
        result = await self._db.execute(
            select(EmailTemplate.id).where(
                EmailTemplate.id == template_id,
                EmailTemplate.agency_id == self._agency_id,
            )
        )
        if result.scalar_one_or_none() is None:
            raise InvalidTemplateReferenceError(
                f"Email template not found: {template_id}",
                details={"template_id": template_id},
            )


class EmailTemplateService:
    """Service for agency email templates."""

    def __init__(self, db: AsyncSession, agency_id: str) -> None:
        self._db = db
        self._agency_id = agency_id

    async def list_templates(self, template_type: str | None = None) -> list[EmailTemplateResponse]:
        query = select(EmailTemplate).where(EmailTemplate.agency_id == self._agency_id)
        if template_type:
            query = query.where(EmailTemplate.template_type == template_type)
        query = query.order_by(EmailTemplate.created_at.desc())

        result = await self._db.execute(query)
        return [EmailTemplateResponse.model_validate(t) for t in result.scalars().all()]

    async def get_template(self, template_id: str) -> EmailTemplateResponse:
        return EmailTemplateResponse.model_validate(await self._get_template(template_id))

    async def create_template(self, request: EmailTemplateCreateRequest) -> EmailTemplateResponse:
        template = EmailTemplate(agency_id=self._agency_id, **request.model_dump())
        self._db.add(template)
        await self._db.commit()
        await self._db.refresh(template)

        logger.info("Email template created: %s (%s)", template.id, template.template_type)
        return EmailTemplateResponse.model_validate(template)

    async def update_template(
        self,
        template_id: str,
        request: EmailTemplateUpdateRequest,
    ) -> EmailTemplateResponse:
        template = await self._get_template(template_id)

        changes: dict[str, Any] = request.model_dump(exclude_unset=True)
        for field_name, value in changes.items():
            if value is not None:
                setattr(template, field_name, value)

        await self._db.commit()
        await self._db.refresh(template)
        return EmailTemplateResponse.model_validate(template)

    async def delete_template(self, template_id: str) -> None:
        """Delete a template. Rules using it fall back to the default."""
        template = await self._get_template(template_id)
        await self._db.delete(template)
        await self._db.commit()
        logger.info("Email template deleted: %s", template_id)

    async def preview_template(
        self,
        template_id: str,
        variables: dict[str, Any] | None = None,
    ) -> EmailTemplatePreviewResponse:
        """Render a template with sample values, overridden by the given ones."""
        template = await self._get_template(template_id)
        values: dict[str, Any] = {**SAMPLE_VARIABLES, **(variables or {})}

        return EmailTemplatePreviewResponse(
            subject=render_template(template.subject, values),
            body_html=render_template(template.body_html, values, escape=True),
        )

    async def _get_template(self, template_id: str) -> EmailTemplate:
        result = await self._db.execute(
            select(EmailTemplate).where(
                EmailTemplate.id == template_id,
                EmailTemplate.agency_id == self._agency_id,
            )
        )
        template = result.scalar_one_or_none()
        if template is None:
            raise EmailTemplateNotFoundError(f"Email template not found: {template_id}")
        return template
