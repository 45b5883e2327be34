# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification rule, template, delivery log and in-app notification models.

notification_log is the deduplication ledger for outgoing email. Its unique
key (installment_id, recipient_type, recipient_email, event_type) guarantees
that a recipient hears about an event for an installment at most once.
student_notifications holds reminders sent by hand, which may repeat.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.infrastructure.database.models.base import (
    AgencyScopedMixin,
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)

RECIPIENT_TYPES = ("agency_user", "student", "college", "sales_agent")
EVENT_TYPES = ("overdue", "due_soon", "payment_received")
IN_APP_TYPES = ("overdue_payment", "due_soon", "payment_received", "system")


class EmailTemplate(Base, UUIDPrimaryKeyMixin, TimestampMixin, AgencyScopedMixin):
    """Agency customised email with {{variable}} placeholders."""

    __tablename__ = "email_templates"

    template_type: Mapped[str] = mapped_column(String(100), nullable=False)
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    body_html: Mapped[str] = mapped_column(Text, nullable=False)
    variables: Mapped[dict[str, Any]] = mapped_column(
        JSONB, nullable=False, server_default=text("'{}'::jsonb")
    )


class NotificationRule(Base, UUIDPrimaryKeyMixin, TimestampMixin, AgencyScopedMixin):
    """Which recipients hear about which event, and with which template."""

    __tablename__ = "notification_rules"

    recipient_type: Mapped[str] = mapped_column(String(20), nullable=False)
    event_type: Mapped[str] = mapped_column(String(20), nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    template_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("email_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    trigger_config: Mapped[dict[str, Any]] = mapped_column(
        JSONB, nullable=False, server_default=text("'{}'::jsonb")
    )

    template: Mapped[EmailTemplate | None] = relationship()

    __table_args__ = (
        UniqueConstraint(
            "agency_id", "recipient_type", "event_type", name="uq_notification_rules_agency_event"
        ),
        CheckConstraint(
            "recipient_type IN ('agency_user', 'student', 'college', 'sales_agent')",
            name="recipient_type_valid",
        ),
        CheckConstraint(
            "event_type IN ('overdue', 'due_soon', 'payment_received')", name="event_type_valid"
        ),
    )


class NotificationLog(Base, UUIDPrimaryKeyMixin):
    """Record of an email that was delivered."""

    __tablename__ = "notification_log"

    installment_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("installments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    recipient_type: Mapped[str] = mapped_column(String(20), nullable=False)
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    event_type: Mapped[str] = mapped_column(String(20), nullable=False)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )
    template_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("email_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    email_subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    provider_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "installment_id",
            "recipient_type",
            "recipient_email",
            "event_type",
            name="uq_notification_log_dedup",
        ),
        CheckConstraint(
            "recipient_type IN ('agency_user', 'student', 'college', 'sales_agent')",
            name="recipient_type_valid",
        ),
        CheckConstraint(
            "event_type IN ('overdue', 'due_soon', 'payment_received')", name="event_type_valid"
        ),
    )


class Notification(Base, UUIDPrimaryKeyMixin, TimestampMixin, AgencyScopedMixin):
    """In-app notification. A null user_id targets the whole agency."""

    __tablename__ = "notifications"

    user_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "type IN ('overdue_payment', 'due_soon', 'payment_received', 'system')",
            name="type_valid",
        ),
    )


class StudentNotification(Base, UUIDPrimaryKeyMixin, AgencyScopedMixin):
    """Reminder a staff member sent to a student by hand."""

    __tablename__ = "student_notifications"

    student_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
    )
    installment_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("installments.id", ondelete="CASCADE"),
        nullable=False,
    )
    sent_by: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    notification_type: Mapped[str] = mapped_column(String(20), nullable=False)
    channel: Mapped[str] = mapped_column(String(20), nullable=False, server_default="email")
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    provider_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    delivery_status: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default="sent"
    )
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )

    __table_args__ = (
        Index(
            "ix_student_notifications_cooldown",
            "installment_id",
            "student_id",
            "channel",
            "sent_at",
        ),
        CheckConstraint("notification_type IN ('overdue')", name="type_valid"),
        CheckConstraint("channel IN ('email')", name="channel_valid"),
        CheckConstraint("delivery_status IN ('sent', 'failed')", name="delivery_status_valid"),
    )
