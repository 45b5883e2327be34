# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Overdue payment reminders sent by staff.

Staff can email a student about an overdue installment straight from the
overdue payments widget. Each send is recorded in student_notifications and
a student hears about the same installment at most once per 24 hours.
Rule based overdue emails are independent of this and go through
NotificationDispatcher.

Example:
    >>> service = OverdueReminderService(db, agency_id, EmailChannel(settings.email), url)
    >>> result = await service.send_reminder(installment_id, student_id, user_id)
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.errors import ExternalServiceError, ForbiddenError, NotFoundError, ValidationError
from src.domains.notification.templates import build_template_variables, render_email
from src.infrastructure.database.models import (
    Agency,
    Branch,
    Enrollment,
    Installment,
    NotificationRule,
    PaymentPlan,
    StudentNotification,
)
from src.infrastructure.notifications.channels import EmailChannel, NotificationPayload
from src.models.notification import OverdueReminderResponse
from src.utils.datetime import hours_since, utc_now

logger = logging.getLogger(__name__)

REMINDER_COOLDOWN = timedelta(hours=24)


class ReminderNotAllowedError(ForbiddenError):
    """Raised when the installment does not belong to the given student."""

    pass


class StudentEmailMissingError(ValidationError):
    """Raised when the student has no email address on file."""

    pass


class OverdueReminderService:
    """Sends overdue reminders on demand.

    Attributes:
        _db: Agency scoped async database session.
        _agency_id: Caller's agency.
        _channel: Email channel used for delivery.
        _public_url: Base URL for links in emails.
    """

    def __init__(
        self,
        db: AsyncSession,
        agency_id: str,
        channel: EmailChannel,
        public_url: str,
    ) -> None:
        self._db = db
        self._agency_id = agency_id
        self._channel = channel
        self._public_url = public_url

    async def send_reminder(
        self,
        installment_id: str,
        student_id: str,
        user_id: str | None = None,
        now: datetime | None = None,
    ) -> OverdueReminderResponse:
        """Email the student a reminder about one installment.

        Args:
            installment_id: Installment to remind about.
            student_id: Student the caller expects to own the installment.
            user_id: Staff member sending the reminder.
            now: Current time, for tests.

        Returns:
            The send outcome. Within the cooldown nothing is sent and
            success is False.

        Raises:
            NotFoundError: If the installment is not in the agency.
            ReminderNotAllowedError: If the installment belongs to another student.
            StudentEmailMissingError: If the student has no email.
            ExternalServiceError: If the email provider rejects the send.
        """
        now = now or utc_now()
        installment = await self._load_installment(installment_id)
        enrollment = installment.payment_plan.enrollment
        student = enrollment.student
        if student.id != student_id:
            raise ReminderNotAllowedError("Installment does not belong to this student")
        if not student.email:
            raise StudentEmailMissingError(f"Student {student.full_name} has no email address")

        last_sent = await self.last_sent_at(
            installment_id, student_id, since=now - REMINDER_COOLDOWN
        )
        if last_sent is not None:
            hours = int(hours_since(last_sent, now))
            logger.info(
                "Reminder for installment %s skipped, last sent %d hours ago",
                installment_id,
                hours,
            )
            return OverdueReminderResponse(
                success=False,
                message=(
                    f"Email already sent {hours} hours ago. "
                    "Please wait 24 hours between sends."
                ),
                hours_since_last_send=hours,
            )

        agency = await self._db.get(Agency, self._agency_id)
        branch = enrollment.branch
        variables = build_template_variables(
            installment,
            student=student,
            college=branch.college if branch else None,
            branch=branch,
            agency=agency,
            public_url=self._public_url,
        )
        template = await self._student_overdue_template()
        subject, body_html = render_email(
            "overdue",
            variables,
            subject=template.subject if template else None,
            body_html=template.body_html if template else None,
        )

        sent = await self._channel.send(
            NotificationPayload(
                recipient_email=student.email,
                subject=subject,
                html=body_html,
                metadata={"installment_id": installment.id, "type": "manual_reminder"},
            )
        )
        if not sent.is_success:
            logger.error(
                "Reminder for installment %s not sent: %s", installment_id, sent.error_message
            )
            raise ExternalServiceError(
                "Failed to send email", details={"error": sent.error_message}
            )

        self._db.add(
            StudentNotification(
                agency_id=self._agency_id,
                student_id=student.id,
                installment_id=installment.id,
                sent_by=user_id,
                notification_type="overdue",
                channel="email",
                recipient_email=student.email,
                provider_message_id=sent.message_id,
                delivery_status="sent",
                sent_at=now,
            )
        )
        await self._db.commit()

        logger.info("Overdue reminder sent for installment %s by %s", installment_id, user_id)
        return OverdueReminderResponse(
            success=True,
            message=f"Email sent successfully to {student.full_name}",
            message_id=sent.message_id,
            sent_to=student.email,
        )

    async def last_sent_at(
        self,
        installment_id: str,
        student_id: str,
        since: datetime,
    ) -> datetime | None:
        """Latest email reminder for the installment and student sent after ``since``."""
        result = await self._db.execute(
            select(StudentNotification.sent_at)
            .where(
                StudentNotification.installment_id == installment_id,
                StudentNotification.student_id == student_id,
                StudentNotification.channel == "email",
                StudentNotification.sent_at >= since,
            )
            .order_by(StudentNotification.sent_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _load_installment(self, installment_id: str) -> Installment:
        result = await self._db.execute(
            select(Installment)
            .where(
                Installment.id == installment_id,
                Installment.agency_id == self._agency_id,
            )
            .options(
                selectinload(Installment.payment_plan)
                .selectinload(PaymentPlan.enrollment)
                .selectinload(Enrollment.student),
                selectinload(Installment.payment_plan)
                .selectinload(PaymentPlan.enrollment)
                .selectinload(Enrollment.branch)
                .selectinload(Branch.college),
            )
        )
        installment = result.scalar_one_or_none()
        if not installment:
            raise NotFoundError("Installment not found")
        return installment

    async def _student_overdue_template(self):
        """The agency's student overdue template, used even when the rule is off."""
        result = await self._db.execute(
            select(NotificationRule)
            .where(
                NotificationRule.agency_id == self._agency_id,
                NotificationRule.recipient_type == "student",
                NotificationRule.event_type == "overdue",
            )
            .options(selectinload(NotificationRule.template))
        )
        rule = result.scalar_one_or_none()
        return rule.template if rule else None
