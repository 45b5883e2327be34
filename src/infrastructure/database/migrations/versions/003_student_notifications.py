# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Manually sent student reminders.

student_notifications records reminders staff send from the overdue
payments widget. Unlike notification_log it allows repeat sends; the
24 hour cooldown between them is read from sent_at.

Revision ID: 003_student_notifications
Revises: 002_row_level_security
Create Date: 2025-03-18
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "003_student_notifications"
down_revision: Union[str, None] = "002_row_level_security"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

APP_ROLE = "pleeno_app"


def _fk(name: str, target: str, ondelete: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey(target, ondelete=ondelete),
        nullable=nullable,
    )


def upgrade() -> None:
    """Create student_notifications with its agency isolation policy."""
    op.create_table(
        "student_notifications",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=False),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        _fk("agency_id", "agencies.id", "CASCADE"),
        _fk("student_id", "students.id", "CASCADE"),
        _fk("installment_id", "installments.id", "CASCADE"),
        _fk("sent_by", "users.id", "SET NULL", nullable=True),
        sa.Column("notification_type", sa.String(20), nullable=False),
        sa.Column("channel", sa.String(20), nullable=False, server_default="email"),
        sa.Column("recipient_email", sa.String(255), nullable=False),
        sa.Column("provider_message_id", sa.String(255), nullable=True),
        sa.Column("delivery_status", sa.String(20), nullable=False, server_default="sent"),
        sa.Column(
            "sent_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "notification_type IN ('overdue')",
            name="ck_student_notifications_type_valid",
        ),
        sa.CheckConstraint(
            "channel IN ('email')",
            name="ck_student_notifications_channel_valid",
        ),
        sa.CheckConstraint(
            "delivery_status IN ('sent', 'failed')",
            name="ck_student_notifications_delivery_status_valid",
        ),
    )
    op.create_index(
        "ix_student_notifications_agency_id", "student_notifications", ["agency_id"]
    )
    op.create_index(
        "ix_student_notifications_cooldown",
        "student_notifications",
        ["installment_id", "student_id", "channel", "sent_at"],
    )

    op.execute(
        f"GRANT SELECT, INSERT, UPDATE, DELETE ON student_notifications TO {APP_ROLE}"
    )
    op.execute("ALTER TABLE student_notifications ENABLE ROW LEVEL SECURITY")
    op.execute(
        "CREATE POLICY agency_isolation ON student_notifications "
        "USING (agency_id = current_agency_id()) "
        "WITH CHECK (agency_id = current_agency_id())"
    )


def downgrade() -> None:
    """Drop student_notifications."""
    op.execute("DROP POLICY IF EXISTS agency_isolation ON student_notifications")
    op.drop_index("ix_student_notifications_cooldown", table_name="student_notifications")
    op.drop_index("ix_student_notifications_agency_id", table_name="student_notifications")
    op.drop_table("student_notifications")
