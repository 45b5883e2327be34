# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student, student note, document and enrollment models."""

from datetime import date

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    ForeignKey,
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
from src.infrastructure.database.models.college import Branch

VISA_STATUSES = ("in_process", "approved", "denied", "expired")
DOCUMENT_TYPES = ("offer_letter", "passport", "visa", "other")
ENROLLMENT_STATUSES = ("active", "completed", "cancelled")


class Student(Base, UUIDPrimaryKeyMixin, TimestampMixin, AgencyScopedMixin):
    """International student represented by the agency."""

    __tablename__ = "students"

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    passport_number: Mapped[str] = mapped_column(String(50), nullable=False)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    nationality: Mapped[str | None] = mapped_column(String(100), nullable=True)
    visa_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    assigned_user_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    enrollments: Mapped[list["Enrollment"]] = relationship(
        back_populates="student", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("agency_id", "passport_number", name="uq_students_agency_passport"),
        CheckConstraint(
            "visa_status IS NULL OR visa_status IN ('in_process', 'approved', 'denied', 'expired')",
            name="visa_status_valid",
        ),
    )


class StudentNote(Base, UUIDPrimaryKeyMixin, TimestampMixin, AgencyScopedMixin):
    """Free text note attached to a student."""

    __tablename__ = "student_notes"

    student_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("students.id", ondelete="CASCADE"),
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


class StudentDocument(Base, UUIDPrimaryKeyMixin, TimestampMixin, AgencyScopedMixin):
    """Uploaded file such as a passport scan or offer letter."""

    __tablename__ = "student_documents"

    student_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document_type: Mapped[str] = mapped_column(String(20), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    uploaded_by: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint(
            "document_type IN ('offer_letter', 'passport', 'visa', 'other')",
            name="document_type_valid",
        ),
    )


class Enrollment(Base, UUIDPrimaryKeyMixin, TimestampMixin, AgencyScopedMixin):
    """Student enrolled in a program at a college branch."""

    __tablename__ = "enrollments"

    student_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    branch_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("branches.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    program_name: Mapped[str] = mapped_column(String(255), nullable=False)
    offer_letter_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    offer_letter_filename: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default="active")

    student: Mapped[Student] = relationship(back_populates="enrollments")
    branch: Mapped[Branch] = relationship()

    __table_args__ = (
        UniqueConstraint(
            "student_id", "branch_id", "program_name", name="uq_enrollments_student_branch_program"
        ),
        CheckConstraint(
            "status IN ('active', 'completed', 'cancelled')", name="status_valid"
        ),
    )
