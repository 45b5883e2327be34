# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""College, branch, contact and note models."""

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.infrastructure.database.models.base import (
    AgencyScopedMixin,
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)


class College(Base, UUIDPrimaryKeyMixin, TimestampMixin, AgencyScopedMixin):
    """Education provider that pays commission to the agency."""

    __tablename__ = "colleges"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    country: Mapped[str | None] = mapped_column(String(120), nullable=True)
    default_commission_rate_percent: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 2), nullable=True
    )
    gst_status: Mapped[str] = mapped_column(String(10), nullable=False, server_default="included")
    contract_expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    branches: Mapped[list["Branch"]] = relationship(
        back_populates="college", cascade="all, delete-orphan"
    )
    contacts: Mapped[list["CollegeContact"]] = relationship(cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("agency_id", "name", name="uq_colleges_agency_name"),
        CheckConstraint(
            "default_commission_rate_percent IS NULL OR "
            "(default_commission_rate_percent >= 0 AND default_commission_rate_percent <= 100)",
            name="commission_rate_range",
        ),
        CheckConstraint("gst_status IN ('included', 'excluded')", name="gst_status_valid"),
    )

    @property
    def gst_inclusive(self) -> bool:
        """Check if fees from this college already include GST."""
        return self.gst_status == "included"


class Branch(Base, UUIDPrimaryKeyMixin, TimestampMixin, AgencyScopedMixin):
    """Campus of a college. A null rate inherits the college default."""

    __tablename__ = "branches"

    college_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("colleges.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    commission_rate_percent: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)

    college: Mapped[College] = relationship(back_populates="branches")

    __table_args__ = (
        CheckConstraint(
            "commission_rate_percent IS NULL OR "
            "(commission_rate_percent >= 0 AND commission_rate_percent <= 100)",
            name="commission_rate_range",
        ),
    )

    @property
    def effective_commission_rate_percent(self) -> Decimal:
        """Branch rate, falling back to the college default, then zero."""
        if self.commission_rate_percent is not None:
            return self.commission_rate_percent
        if self.college is not None and self.college.default_commission_rate_percent is not None:
            return self.college.default_commission_rate_percent
        return Decimal("0")


class CollegeContact(Base, UUIDPrimaryKeyMixin, TimestampMixin, AgencyScopedMixin):
    """Person at a college who receives payment notifications."""

    __tablename__ = "college_contacts"

    college_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("colleges.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role_department: Mapped[str | None] = mapped_column(String(255), nullable=True)
    position_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)


class CollegeNote(Base, UUIDPrimaryKeyMixin, TimestampMixin, AgencyScopedMixin):
    """Free text note attached to a college."""

    __tablename__ = "college_notes"

    college_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("colleges.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        CheckConstraint("char_length(content) <= 2000", name="content_length"),
    )
