# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment service for student program enrollments.

This module provides the EnrollmentService class for:
- Enrolling a student in a program at a college branch
- Listing enrollments by student or branch
- Status changes (active, completed, cancelled)
- Offer letter attachment

Creating an enrollment is idempotent on (student, branch, program): a
repeated request returns the existing enrollment.
"""

import asyncio
import logging
from pathlib import Path

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.errors import NotFoundError
from src.domains.activity.service import ActivityService
from src.domains.student.documents import (
    ALLOWED_CONTENT_TYPES,
    InvalidDocumentError,
    safe_filename,
    write_file,
)
from src.infrastructure.database.models import Branch, Enrollment, Student
from src.models.student import EnrollmentResponse

logger = logging.getLogger(__name__)


class EnrollmentServiceError(Exception):
    """Base exception for enrollment service errors."""

    pass


class EnrollmentNotFoundError(NotFoundError, EnrollmentServiceError):
    """Raised when enrollment is not found."""

    pass


class StudentNotFoundError(NotFoundError, EnrollmentServiceError):
    """Raised when student is not found."""

    pass


class BranchNotFoundError(NotFoundError, EnrollmentServiceError):
    """Raised when branch is not found."""

    pass


class EnrollmentService:
    """Service for managing enrollments.

    Attributes:
        _db: Async database session.
        _agency_id: Caller's agency.
    """

    def __init__(self, db: AsyncSession, agency_id: str) -> None:
        self._db = db
        self._agency_id = agency_id
        self._activity = ActivityService(db, agency_id)

    async def create_enrollment(
        self,
        student_id: str,
        branch_id: str,
        program_name: str,
        user_id: str | None = None,
    ) -> tuple[EnrollmentResponse, bool]:
        """Enroll a student, or return the existing enrollment.

        Args:
            student_id: Student to enroll.
            branch_id: Branch offering the program.
            program_name: Program name.
            user_id: Acting user.

        Returns:
            Tuple of (enrollment, created). created is False when the
            enrollment already existed.

        Raises:
            StudentNotFoundError: If the student is not in the agency.
            BranchNotFoundError: If the branch is not in the agency.
        """
        program_name = program_name.strip()
        student = await self._get_student(student_id)
        branch = await self._get_branch(branch_id)

        existing = await self._db.execute(
            self._base_query().where(
                Enrollment.student_id == student.id,
                Enrollment.branch_id == branch.id,
                Enrollment.program_name == program_name,
            )
        )
        enrollment = existing.scalar_one_or_none()
        if enrollment:
            logger.info("Enrollment already exists: %s", enrollment.id)
            return self._to_response(enrollment), False

        enrollment = Enrollment(
            agency_id=self._agency_id,
            student_id=student.id,
            branch_id=branch.id,
            program_name=program_name,
            status="active",
        )
        self._db.add(enrollment)
        await self._db.flush()

        self._activity.log_activity(
            entity_type="enrollment",
            entity_id=enrollment.id,
            action="created",
            description=f"Enrolled {student.full_name} in {program_name} at {branch.name}",
            user_id=user_id,
            metadata={"student_id": student.id, "branch_id": branch.id},
        )
        await self._db.commit()

        logger.info("Enrollment created: %s", enrollment.id)
        return self._to_response(await self._get_by_id(enrollment.id)), True

    async def get_enrollment(self, enrollment_id: str) -> EnrollmentResponse:
        """Get an enrollment with branch and college names."""
        return self._to_response(await self._get_by_id(enrollment_id))

    async def list_enrollments(
        self,
        student_id: str | None = None,
        branch_id: str | None = None,
        status: str | None = None,
    ) -> tuple[list[EnrollmentResponse], int]:
        """List enrollments filtered by student, branch or status."""
        stmt = self._base_query()
        if student_id:
            stmt = stmt.where(Enrollment.student_id == student_id)
        if branch_id:
            stmt = stmt.where(Enrollment.branch_id == branch_id)
        if status:
            stmt = stmt.where(Enrollment.status == status)

        count_stmt = select(func.count()).select_from(
            select(Enrollment.id).where(stmt.whereclause).subquery()
        )
        total = (await self._db.execute(count_stmt)).scalar() or 0

        result = await self._db.execute(stmt.order_by(Enrollment.created_at.desc()))
        return [self._to_response(e) for e in result.scalars().all()], total

    async def update_status(
        self,
        enrollment_id: str,
        status: str,
        user_id: str | None = None,
    ) -> EnrollmentResponse:
        """Change an enrollment's status."""
        enrollment = await self._get_by_id(enrollment_id)
        previous = enrollment.status
        enrollment.status = status

        self._activity.log_activity(
            entity_type="enrollment",
            entity_id=enrollment.id,
            action="updated",
            description=f"Changed enrollment status from {previous} to {status}",
            user_id=user_id,
            metadata={"previous_status": previous, "status": status},
        )
        await self._db.commit()

        logger.info("Enrollment %s status: %s -> %s", enrollment.id, previous, status)
        return self._to_response(enrollment)

    async def attach_offer_letter(
        self,
        enrollment_id: str,
        upload_dir: str,
        max_bytes: int,
        file_name: str,
        content_type: str,
        content: bytes,
    ) -> EnrollmentResponse:
        """Store an offer letter and link it to the enrollment.

        Raises:
            InvalidDocumentError: If the file type or size is not allowed.
        """
        enrollment = await self._get_by_id(enrollment_id)

        if content_type not in ALLOWED_CONTENT_TYPES:
            raise InvalidDocumentError("Unsupported file type. Allowed: PDF, JPEG, PNG")
        if not content or len(content) > max_bytes:
            raise InvalidDocumentError("File is empty or too large")

        original = safe_filename(file_name)
        path = (
            Path(upload_dir)
            / self._agency_id
            / "enrollments"
            / enrollment.id
            / original
        )
        await asyncio.to_thread(write_file, path, content)

        enrollment.offer_letter_url = str(path)
        enrollment.offer_letter_filename = original
        await self._db.commit()

        logger.info("Offer letter attached to enrollment %s", enrollment.id)
        return self._to_response(enrollment)

    def _base_query(self):
        return (
            select(Enrollment)
            .options(selectinload(Enrollment.branch).selectinload(Branch.college))
            .where(Enrollment.agency_id == self._agency_id)
        )

    async def _get_by_id(self, enrollment_id: str) -> Enrollment:
        result = await self._db.execute(
            self._base_query().where(Enrollment.id == enrollment_id)
        )
        enrollment = result.scalar_one_or_none()
        if not enrollment:
            raise EnrollmentNotFoundError(f"Enrollment {enrollment_id} not found")
        return enrollment

    async def _get_student(self, student_id: str) -> Student:
        result = await self._db.execute(
            select(Student).where(Student.id == student_id, Student.agency_id == self._agency_id)
        )
        student = result.scalar_one_or_none()
        if not student:
            raise StudentNotFoundError(f"Student {student_id} not found")
        return student

    async def _get_branch(self, branch_id: str) -> Branch:
        result = await self._db.execute(
            select(Branch).where(Branch.id == branch_id, Branch.agency_id == self._agency_id)
        )
        branch = result.scalar_one_or_none()
        if not branch:
            raise BranchNotFoundError(f"Branch {branch_id} not found")
        return branch

    @staticmethod
    def _to_response(enrollment: Enrollment) -> EnrollmentResponse:
        branch = enrollment.branch
        college = branch.college if branch else None
        return EnrollmentResponse(
            id=enrollment.id,
            student_id=enrollment.student_id,
            branch_id=enrollment.branch_id,
            program_name=enrollment.program_name,
            status=enrollment.status,
            offer_letter_url=enrollment.offer_letter_url,
            offer_letter_filename=enrollment.offer_letter_filename,
            branch_name=branch.name if branch else None,
            college_id=college.id if college else None,
            college_name=college.name if college else None,
            created_at=enrollment.created_at,
            updated_at=enrollment.updated_at,
        )
