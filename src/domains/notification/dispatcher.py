# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Email dispatch for installment events.

For a batch of installments and one event type, the dispatcher:
1. Loads each installment with its plan, student, branch, college and agency
2. Loads the agency's enabled rules for the event
3. Resolves recipients per rule and installment
4. Skips recipients already recorded in notification_log
5. Renders the rule template (or the event default) and sends it
6. Records each successful send and stamps last_notified_date

The dispatcher runs outside any agency scope because jobs cover every
agency. All lookups filter by the installment's agency explicitly.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.domains.notification.templates import build_template_variables, render_email
from src.infrastructure.database.models import (
    Agency,
    Branch,
    College,
    Enrollment,
    Installment,
    NotificationLog,
    NotificationRule,
    PaymentPlan,
    User,
)
from src.infrastructure.notifications.channels import EmailChannel, NotificationPayload
from src.models.notification import DispatchResult, DispatchSummary
from src.utils.datetime import agency_today

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recipient:
    """Email recipient resolved from a rule."""

    email: str
    name: str | None = None


class NotificationDispatcher:
    """Sends rule-driven emails about installments.

    Attributes:
        _db: Unscoped async database session.
        _channel: Email channel used for delivery.
        _public_url: Base URL for links in emails.
    """

    def __init__(self, db: AsyncSession, channel: EmailChannel, public_url: str) -> None:
        self._db = db
        self._channel = channel
        self._public_url = public_url

    async def send_notifications(
        self,
        installment_ids: list[str],
        event_type: str,
    ) -> DispatchSummary:
        """Send notifications for installments.

        Args:
            installment_ids: Installments the event happened to.
            event_type: overdue, due_soon or payment_received.

        Returns:
            DispatchSummary with a result per recipient and installment.
        """
        summary = DispatchSummary(event_type=event_type)
        if not installment_ids:
            return summary

        installments = await self._load_installments(installment_ids)
        if not installments:
            logger.info("No installments found for %s notifications", event_type)
            return summary

        by_agency: dict[str, list[Installment]] = defaultdict(list)
        for installment in installments:
            by_agency[installment.agency_id].append(installment)

        logger.info(
            "Processing %d installments across %d agencies for %s notifications",
            len(installments),
            len(by_agency),
            event_type,
        )

        for agency_id, agency_installments in by_agency.items():
            agency = await self._db.get(Agency, agency_id)
            rules = await self._load_rules(agency_id, event_type)
            if not rules:
                logger.info(
                    "No enabled %s notification rules for agency %s", event_type, agency_id
                )
                continue

            agency_users: list[Recipient] | None = None
            for rule in rules:
                if rule.recipient_type == "agency_user" and agency_users is None:
                    agency_users = await self._agency_user_recipients(agency_id)

                for installment in agency_installments:
                    recipients = await self._resolve_recipients(
                        rule.recipient_type, installment, agency_users or []
                    )
                    for recipient in recipients:
                        result = await self._send_one(
                            agency, rule, installment, recipient, event_type
                        )
                        summary.results.append(result)

        summary.sent = sum(1 for r in summary.results if r.status == "sent")
        summary.failed = sum(1 for r in summary.results if r.status == "failed")
        summary.skipped = sum(1 for r in summary.results if r.status == "skipped")

        logger.info(
            "%s notifications: %d sent, %d failed, %d skipped",
            event_type,
            summary.sent,
            summary.failed,
            summary.skipped,
        )
        return summary

    async def _send_one(
        self,
        agency: Agency,
        rule: NotificationRule,
        installment: Installment,
        recipient: Recipient,
        event_type: str,
    ) -> DispatchResult:
        result = DispatchResult(
            installment_id=installment.id,
            recipient_type=rule.recipient_type,
            recipient_email=recipient.email,
            status="skipped",
        )

        if await self.already_notified(
            installment.id, rule.recipient_type, recipient.email, event_type
        ):
            logger.debug(
                "Already notified %s (%s) for installment %s",
                recipient.email,
                rule.recipient_type,
                installment.id,
            )
            result.error = "Already notified"
            return result

        enrollment = installment.payment_plan.enrollment
        branch = enrollment.branch if enrollment else None
        variables = build_template_variables(
            installment,
            student=enrollment.student if enrollment else None,
            college=branch.college if branch else None,
            branch=branch,
            agency=agency,
            public_url=self._public_url,
        )
        template = rule.template
        subject, body_html = render_email(
            event_type,
            variables,
            subject=template.subject if template else None,
            body_html=template.body_html if template else None,
        )

        sent = await self._channel.send(
            NotificationPayload(
                recipient_email=recipient.email,
                subject=subject,
                html=body_html,
                metadata={"installment_id": installment.id, "rule_id": rule.id},
            )
        )
        if not sent.is_success:
            result.status = sent.status.value
            result.error = sent.error_message
            return result

        await self._db.execute(
            insert(NotificationLog)
            .values(
                installment_id=installment.id,
                recipient_type=rule.recipient_type,
                recipient_email=recipient.email,
                event_type=event_type,
                template_id=rule.template_id,
                email_subject=subject,
                provider_message_id=sent.message_id,
            )
            .on_conflict_do_nothing(constraint="uq_notification_log_dedup")
        )
        installment.last_notified_date = agency_today(agency.timezone)
        await self._db.commit()

        logger.info(
            "Sent %s notification to %s (%s) for installment %s",
            event_type,
            recipient.email,
            rule.recipient_type,
            installment.id,
        )
        result.status = "sent"
        return result

    async def already_notified(
        self,
        installment_id: str,
        recipient_type: str,
        recipient_email: str,
        event_type: str,
    ) -> bool:
        """Check the notification log for an earlier send."""
        result = await self._db.execute(
            select(NotificationLog.id).where(
                NotificationLog.installment_id == installment_id,
                NotificationLog.recipient_type == recipient_type,
                NotificationLog.recipient_email == recipient_email,
                NotificationLog.event_type == event_type,
            )
        )
        return result.scalar_one_or_none() is not None

    async def _load_installments(self, installment_ids: list[str]) -> list[Installment]:
        result = await self._db.execute(
            select(Installment)
            .where(Installment.id.in_(installment_ids))
            .options(
                selectinload(Installment.payment_plan)
                .selectinload(PaymentPlan.enrollment)
                .selectinload(Enrollment.student),
                selectinload(Installment.payment_plan)
                .selectinload(PaymentPlan.enrollment)
                .selectinload(Enrollment.branch)
                .selectinload(Branch.college)
                .selectinload(College.contacts),
            )
        )
        return list(result.scalars().all())

    async def _load_rules(self, agency_id: str, event_type: str) -> list[NotificationRule]:
        result = await self._db.execute(
            select(NotificationRule)
            .where(
                NotificationRule.agency_id == agency_id,
                NotificationRule.event_type == event_type,
                NotificationRule.is_enabled.is_(True),
            )
            .options(selectinload(NotificationRule.template))
            .order_by(NotificationRule.recipient_type)
        )
        return list(result.scalars().all())

    async def _agency_user_recipients(self, agency_id: str) -> list[Recipient]:
        result = await self._db.execute(
            select(User).where(
                User.agency_id == agency_id,
                User.status == "active",
                User.email_notifications_enabled.is_(True),
            )
        )
        return [Recipient(email=u.email, name=u.full_name) for u in result.scalars().all()]

    async def _resolve_recipients(
        self,
        recipient_type: str,
        installment: Installment,
        agency_users: list[Recipient],
    ) -> list[Recipient]:
        """Resolve the unique recipients of a rule for one installment."""
        enrollment = installment.payment_plan.enrollment
        student = enrollment.student if enrollment else None
        college = enrollment.branch.college if enrollment and enrollment.branch else None

        candidates: list[Recipient] = []
        if recipient_type == "agency_user":
            candidates = agency_users
        elif recipient_type == "student":
            if student is not None and student.email:
                candidates = [Recipient(email=student.email, name=student.full_name)]
        elif recipient_type == "college":
            if college is not None:
                if college.contact_email:
                    candidates.append(Recipient(email=college.contact_email, name=college.name))
                candidates.extend(
                    Recipient(email=c.email, name=c.name) for c in college.contacts if c.email
                )
        elif recipient_type == "sales_agent":
            if student is not None and student.assigned_user_id:
                agent = await self._db.get(User, student.assigned_user_id)
                if agent is not None and agent.status == "active" and agent.email:
                    candidates = [Recipient(email=agent.email, name=agent.full_name)]

        unique: dict[str, Recipient] = {}
        for candidate in candidates:
            unique.setdefault(candidate.email.lower(), candidate)
        return list(unique.values())
