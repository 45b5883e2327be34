# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Activity log and scheduled job log models."""

from datetime import datetime
from typing import Any

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import (
    AgencyScopedMixin,
    Base,
    UUIDPrimaryKeyMixin,
)

ENTITY_TYPES = (
    "payment",
    "payment_plan",
    "student",
    "enrollment",
    "installment",
    "report",
    "college",
    "branch",
    "agency",
    "user",
)
ACTIONS = ("created", "recorded", "updated", "marked_overdue", "deleted", "exported")
JOB_STATUSES = ("running", "success", "failed")


class ActivityLog(Base, UUIDPrimaryKeyMixin, AgencyScopedMixin):
    """Human readable audit entry. A null user_id means the system acted."""

    __tablename__ = "activity_log"

    user_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    entity_type: Mapped[str] = mapped_column(String(30), nullable=False)
    entity_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False)
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONB, nullable=False, server_default=text("'{}'::jsonb")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()"), index=True
    )

    __table_args__ = (
        CheckConstraint(
            "entity_type IN ('payment', 'payment_plan', 'student', 'enrollment', 'installment', "
            "'report', 'college', 'branch', 'agency', 'user')",
            name="entity_type_valid",
        ),
        CheckConstraint(
            "action IN ('created', 'recorded', 'updated', 'marked_overdue', 'deleted', 'exported')",
            name="action_valid",
        ),
    )


class JobLog(Base, UUIDPrimaryKeyMixin):
    """One execution of a scheduled job."""

    __tablename__ = "jobs_log"

    job_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    records_updated: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default="running")
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONB, nullable=False, server_default=text("'{}'::jsonb")
    )

    __table_args__ = (
        CheckConstraint("status IN ('running', 'success', 'failed')", name="status_valid"),
    )
