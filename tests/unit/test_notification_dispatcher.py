# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the notification dispatcher."""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.sql.dml import Insert

from src.domains.notification.dispatcher import NotificationDispatcher
from src.infrastructure.database.models import (
    Installment,
    NotificationLog,
    NotificationRule,
    User,
)
from src.infrastructure.notifications import ChannelResult, ChannelType, DeliveryStatus
from tests.conftest import result_with


def make_installment(agency_id: str) -> MagicMock:
    installment = MagicMock()
    installment.id = "inst-1"
    installment.agency_id = agency_id
    installment.amount = Decimal("1500.00")
    installment.student_due_date = date(2025, 5, 15)
    installment.last_notified_date = None

    plan = installment.payment_plan
    plan.currency = "AUD"
    student = plan.enrollment.student
    student.full_name = "Jane Doe"
    student.email = "jane@student.example"
    student.phone = None
    student.assigned_user_id = "agent-1"
    branch = plan.enrollment.branch
    branch.name = "Brisbane Campus"
    branch.college.name = "Coastal College"
    branch.college.contact_email = "Accounts@coastal.example"
    contact_a = MagicMock(email="accounts@coastal.example")
    contact_a.name = "Accounts"
    contact_b = MagicMock(email="registrar@coastal.example")
    contact_b.name = "Registrar"
    branch.college.contacts = [contact_a, contact_b]
    return installment


def make_rule(recipient_type: str, template=None) -> MagicMock:
    rule = MagicMock()
    rule.id = f"rule-{recipient_type}"
    rule.recipient_type = recipient_type
    rule.template = template
    rule.template_id = template.id if template else None
    return rule


def make_user(email: str, name: str, status: str = "active") -> MagicMock:
    user = MagicMock()
    user.email = email
    user.full_name = name
    user.status = status
    return user


class FakeDatabase:
    """Answers dispatcher queries by the entity they select."""

    def __init__(self, mock_db, installments, rules, users=None, logged=False) -> None:
        self.inserts: list = []
        self._installments = installments
        self._rules = rules
        self._users = users or []
        self._logged = logged
        mock_db.execute.side_effect = self._execute

    async def _execute(self, stmt, *args, **kwargs):
        if isinstance(stmt, Insert):
            self.inserts.append(stmt.compile().params)
            return MagicMock()
        entity = stmt.column_descriptions[0]["entity"]
        if entity is Installment:
            return result_with(scalars=self._installments)
        if entity is NotificationRule:
            return result_with(scalars=self._rules)
        if entity is User:
            return result_with(scalars=self._users)
        if entity is NotificationLog:
            return result_with("log-1" if self._logged else None)
        raise AssertionError(f"Unexpected query for {entity}")


@pytest.fixture
def channel() -> AsyncMock:
    channel = AsyncMock()
    channel.send.return_value = ChannelResult(
        channel=ChannelType.EMAIL, status=DeliveryStatus.SENT, message_id="msg-1"
    )
    return channel


@pytest.fixture
def dispatcher(mock_db, channel, sample_agency) -> NotificationDispatcher:
    mock_db.get.return_value = sample_agency
    return NotificationDispatcher(mock_db, channel, "https://app.pleeno.example/")


class TestSendNotifications:
    """Tests for NotificationDispatcher.send_notifications."""

    @pytest.mark.asyncio
    async def test_student_rule_sends_and_logs(
        self, dispatcher, mock_db, channel, agency_id
    ) -> None:
        installment = make_installment(agency_id)
        db = FakeDatabase(mock_db, [installment], [make_rule("student")])

        summary = await dispatcher.send_notifications(["inst-1"], "overdue")

        assert (summary.sent, summary.failed, summary.skipped) == (1, 0, 0)
        payload = channel.send.await_args.args[0]
        assert payload.recipient_email == "jane@student.example"
        assert payload.subject == "Payment Reminder: Jane Doe - $1,500.00 AUD overdue"
        assert "15 May 2025" in payload.html
        assert "https://app.pleeno.example/payments/inst-1" in payload.html

        [logged] = db.inserts
        assert logged["installment_id"] == "inst-1"
        assert logged["recipient_type"] == "student"
        assert logged["event_type"] == "overdue"
        assert logged["provider_message_id"] == "msg-1"
        assert installment.last_notified_date is not None
        mock_db.commit.assert_awaited()

    @pytest.mark.asyncio
    async def test_already_notified_recipient_is_skipped(
        self, dispatcher, mock_db, channel, agency_id
    ) -> None:
        installment = make_installment(agency_id)
        db = FakeDatabase(mock_db, [installment], [make_rule("student")], logged=True)

        summary = await dispatcher.send_notifications(["inst-1"], "overdue")

        assert summary.skipped == 1
        assert summary.results[0].error == "Already notified"
        channel.send.assert_not_awaited()
        assert db.inserts == []
        assert installment.last_notified_date is None

    @pytest.mark.asyncio
    async def test_college_recipients_are_deduplicated(
        self, dispatcher, mock_db, channel, agency_id
    ) -> None:
        FakeDatabase(mock_db, [make_installment(agency_id)], [make_rule("college")])

        summary = await dispatcher.send_notifications(["inst-1"], "due_soon")

        emails = [r.recipient_email for r in summary.results]
        assert emails == ["Accounts@coastal.example", "registrar@coastal.example"]
        assert summary.sent == 2

    @pytest.mark.asyncio
    async def test_agency_users_receive_rule_emails(
        self, dispatcher, mock_db, channel, agency_id
    ) -> None:
        users = [
            make_user("owner@agency.example", "Owner"),
            make_user("staff@agency.example", "Staff"),
        ]
        FakeDatabase(mock_db, [make_installment(agency_id)], [make_rule("agency_user")], users)

        summary = await dispatcher.send_notifications(["inst-1"], "overdue")

        assert [r.recipient_email for r in summary.results] == [
            "owner@agency.example",
            "staff@agency.example",
        ]

    @pytest.mark.asyncio
    async def test_sales_agent_must_be_active(
        self, dispatcher, mock_db, channel, agency_id, sample_agency
    ) -> None:
        FakeDatabase(mock_db, [make_installment(agency_id)], [make_rule("sales_agent")])
        agent = make_user("agent@agency.example", "Agent", status="inactive")
        mock_db.get.side_effect = lambda model, key: sample_agency if key == agency_id else agent

        summary = await dispatcher.send_notifications(["inst-1"], "overdue")

        assert summary.results == []
        channel.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_agency_template_is_rendered(
        self, dispatcher, mock_db, channel, agency_id
    ) -> None:
        template = MagicMock()
        template.id = "tpl-1"
        template.subject = "{{agency_name}}: {{amount}} for {{student_name}}"
        template.body_html = "<p>Hi {{student_name}}, {{custom}}</p>"
        db = FakeDatabase(mock_db, [make_installment(agency_id)], [make_rule("student", template)])

        await dispatcher.send_notifications(["inst-1"], "overdue")

        payload = channel.send.await_args.args[0]
        assert payload.subject == "Sunrise Education: $1,500.00 AUD for Jane Doe"
        assert payload.html == "<p>Hi Jane Doe, {{custom}}</p>"
        assert db.inserts[0]["template_id"] == "tpl-1"

    @pytest.mark.asyncio
    async def test_failed_send_is_not_logged(
        self, dispatcher, mock_db, channel, agency_id
    ) -> None:
        installment = make_installment(agency_id)
        channel.send.return_value = ChannelResult(
            channel=ChannelType.EMAIL,
            status=DeliveryStatus.FAILED,
            error_message="Resend error 500",
        )
        db = FakeDatabase(mock_db, [installment], [make_rule("student")])

        summary = await dispatcher.send_notifications(["inst-1"], "overdue")

        assert summary.failed == 1
        assert summary.results[0].error == "Resend error 500"
        assert db.inserts == []
        assert installment.last_notified_date is None

    @pytest.mark.asyncio
    async def test_no_enabled_rules_sends_nothing(
        self, dispatcher, mock_db, channel, agency_id
    ) -> None:
        FakeDatabase(mock_db, [make_installment(agency_id)], [])

        summary = await dispatcher.send_notifications(["inst-1"], "overdue")

        assert summary.results == []
        channel.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_batch(self, dispatcher, mock_db) -> None:
        summary = await dispatcher.send_notifications([], "overdue")

        assert summary.sent == 0
        mock_db.execute.assert_not_awaited()
