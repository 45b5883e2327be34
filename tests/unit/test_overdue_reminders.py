# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for overdue reminders sent by staff."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from src.core.errors import ExternalServiceError, NotFoundError
from src.domains.notification.reminders import (
    OverdueReminderService,
    ReminderNotAllowedError,
    StudentEmailMissingError,
)
from src.infrastructure.database.models import StudentNotification
from src.infrastructure.notifications import ChannelResult, ChannelType, DeliveryStatus
from tests.conftest import result_with

NOW = datetime(2025, 3, 20, 9, 0, tzinfo=timezone.utc)


def make_installment(agency_id: str) -> MagicMock:
    installment = MagicMock()
    installment.id = "inst-1"
    installment.agency_id = agency_id
    installment.amount = Decimal("1500.00")
    installment.student_due_date = date(2025, 3, 10)

    plan = installment.payment_plan
    plan.currency = "AUD"
    student = plan.enrollment.student
    student.id = "student-1"
    student.full_name = "Mei Chen"
    student.email = "mei@student.example"
    student.phone = None
    branch = plan.enrollment.branch
    branch.name = "Brisbane Campus"
    branch.college.name = "Coastal College"
    return installment


def sent(message_id: str = "msg-1") -> ChannelResult:
    return ChannelResult(
        channel=ChannelType.EMAIL, status=DeliveryStatus.SENT, message_id=message_id
    )


@pytest.fixture
def channel() -> AsyncMock:
    channel = AsyncMock()
    channel.send.return_value = sent()
    return channel


@pytest.fixture
def reminders(mock_db, agency_id, sample_agency, channel) -> OverdueReminderService:
    mock_db.get.return_value = sample_agency
    return OverdueReminderService(mock_db, agency_id, channel, "https://app.pleeno.test")


def recorded(mock_db) -> list[StudentNotification]:
    return [
        c.args[0]
        for c in mock_db.add.call_args_list
        if isinstance(c.args[0], StudentNotification)
    ]


class TestSendReminder:
    """Tests for OverdueReminderService.send_reminder."""

    @pytest.mark.asyncio
    async def test_sends_and_records_reminder(
        self, reminders, mock_db, channel, agency_id
    ) -> None:
        mock_db.execute.side_effect = [
            result_with(make_installment(agency_id)),
            result_with(None),
            result_with(None),
        ]

        response = await reminders.send_reminder("inst-1", "student-1", "user-1", now=NOW)

        assert response.success is True
        assert response.message == "Email sent successfully to Mei Chen"
        assert response.sent_to == "mei@student.example"
        assert response.message_id == "msg-1"

        payload = channel.send.await_args.args[0]
        assert payload.recipient_email == "mei@student.example"
        assert payload.subject == "Payment Reminder: Mei Chen - $1,500.00 AUD overdue"

        [notification] = recorded(mock_db)
        assert notification.agency_id == agency_id
        assert notification.sent_by == "user-1"
        assert notification.channel == "email"
        assert notification.provider_message_id == "msg-1"
        assert notification.sent_at == NOW
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_second_send_within_a_day_is_refused(
        self, reminders, mock_db, channel, agency_id
    ) -> None:
        mock_db.execute.side_effect = [
            result_with(make_installment(agency_id)),
            result_with(NOW - timedelta(hours=3, minutes=40)),
        ]

        response = await reminders.send_reminder("inst-1", "student-1", "user-1", now=NOW)

        assert response.success is False
        assert response.message == (
            "Email already sent 3 hours ago. Please wait 24 hours between sends."
        )
        assert response.hours_since_last_send == 3
        channel.send.assert_not_awaited()
        mock_db.add.assert_not_called()

        cooldown = mock_db.execute.await_args_list[1].args[0]
        compiled = cooldown.compile(dialect=postgresql.dialect())
        assert "student_notifications.sent_at >= " in str(compiled)
        assert "ORDER BY student_notifications.sent_at DESC" in str(compiled)
        assert NOW - timedelta(hours=24) in compiled.params.values()

    @pytest.mark.asyncio
    async def test_agency_template_is_used(self, reminders, mock_db, channel, agency_id) -> None:
        template = MagicMock()
        template.subject = "Hi {{student_name}}, a payment is overdue"
        template.body_html = "<p>{{amount}} was due {{due_date}}</p>"
        rule = MagicMock(template=template)
        mock_db.execute.side_effect = [
            result_with(make_installment(agency_id)),
            result_with(None),
            result_with(rule),
        ]

        await reminders.send_reminder("inst-1", "student-1", now=NOW)

        payload = channel.send.await_args.args[0]
        assert payload.subject == "Hi Mei Chen, a payment is overdue"
        assert payload.html == "<p>$1,500.00 AUD was due 10 March 2025</p>"

    @pytest.mark.asyncio
    async def test_installment_of_another_student_is_forbidden(
        self, reminders, mock_db, agency_id
    ) -> None:
        mock_db.execute.return_value = result_with(make_installment(agency_id))

        with pytest.raises(ReminderNotAllowedError) as exc_info:
            await reminders.send_reminder("inst-1", "student-9", now=NOW)

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_student_without_email(self, reminders, mock_db, agency_id) -> None:
        installment = make_installment(agency_id)
        installment.payment_plan.enrollment.student.email = None
        mock_db.execute.return_value = result_with(installment)

        with pytest.raises(StudentEmailMissingError, match="Mei Chen") as exc_info:
            await reminders.send_reminder("inst-1", "student-1", now=NOW)

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_installment(self, reminders, mock_db) -> None:
        mock_db.execute.return_value = result_with(None)

        with pytest.raises(NotFoundError, match="Installment not found"):
            await reminders.send_reminder("inst-9", "student-1", now=NOW)

    @pytest.mark.asyncio
    async def test_provider_failure_records_nothing(
        self, reminders, mock_db, channel, agency_id
    ) -> None:
        channel.send.return_value = ChannelResult(
            channel=ChannelType.EMAIL,
            status=DeliveryStatus.FAILED,
            error_message="SMTP unavailable",
        )
        mock_db.execute.side_effect = [
            result_with(make_installment(agency_id)),
            result_with(None),
            result_with(None),
        ]

        with pytest.raises(ExternalServiceError) as exc_info:
            await reminders.send_reminder("inst-1", "student-1", now=NOW)

        assert exc_info.value.status_code == 502
        assert exc_info.value.details == {"error": "SMTP unavailable"}
        mock_db.add.assert_not_called()
        mock_db.commit.assert_not_called()
