# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Agency, user and invitation models.

An agency is the tenant. Users belong to exactly one agency and carry one
of two roles: agency_admin or agency_user.
"""

from datetime import datetime, time

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.infrastructure.database.models.base import (
    AgencyScopedMixin,
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from src.utils.datetime import ensure_utc, utc_now

USER_ROLES = ("agency_admin", "agency_user")
USER_STATUSES = ("active", "inactive", "suspended")
SUPPORTED_CURRENCIES = ("AUD", "USD", "EUR", "GBP", "NZD", "CAD")


class Agency(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Tenant record with locale and notification preferences."""

    __tablename__ = "agencies"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, server_default="AUD")
    timezone: Mapped[str] = mapped_column(
        String(64), nullable=False, server_default="Australia/Brisbane"
    )
    overdue_cutoff_time: Mapped[time] = mapped_column(
        Time, nullable=False, server_default=text("'17:00:00'")
    )
    due_soon_threshold_days: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="4"
    )
    payment_instructions: Mapped[str | None] = mapped_column(Text, nullable=True)

    users: Mapped[list["User"]] = relationship(back_populates="agency")

    __table_args__ = (
        CheckConstraint(
            "currency IN ('AUD', 'USD', 'EUR', 'GBP', 'NZD', 'CAD')", name="currency_valid"
        ),
        CheckConstraint(
            "due_soon_threshold_days BETWEEN 1 AND 30", name="due_soon_threshold_range"
        ),
    )


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin, AgencyScopedMixin):
    """Agency staff account."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, server_default="agency_user")
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default="active")
    email_notifications_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default="false"
    )
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    agency: Mapped[Agency] = relationship(back_populates="users")

    __table_args__ = (
        CheckConstraint("role IN ('agency_admin', 'agency_user')", name="role_valid"),
        CheckConstraint("status IN ('active', 'inactive', 'suspended')", name="status_valid"),
    )

    @property
    def is_admin(self) -> bool:
        """Check if the user administers their agency."""
        return self.role == "agency_admin"

    @property
    def is_active(self) -> bool:
        """Check if the user may sign in."""
        return self.status == "active"


class Invitation(Base, UUIDPrimaryKeyMixin, TimestampMixin, AgencyScopedMixin):
    """Pending invitation for a new agency user."""

    __tablename__ = "invitations"

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    invited_by: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("role IN ('agency_admin', 'agency_user')", name="role_valid"),
    )

    @property
    def is_expired(self) -> bool:
        """Check if the invitation can no longer be accepted."""
        return utc_now() > ensure_utc(self.expires_at)

    @property
    def is_used(self) -> bool:
        """Check if the invitation was already accepted."""
        return self.used_at is not None
