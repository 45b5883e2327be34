# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student service for the agency's student registry.

This module provides the StudentService that handles:
- Student CRUD with search over name, email and passport
- Passport uniqueness within the agency
- Notes
- Payment history across all of a student's payment plans, with CSV export

Example:
    >>> service = StudentService(db, agency_id)
    >>> student = await service.create_student(request, user_id)
    >>> history = await service.get_payment_history(student.id)
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.errors import ConflictError, NotFoundError
from src.domains.activity.service import ActivityService
from src.infrastructure.database.models import (
    Branch,
    Enrollment,
    PaymentPlan,
    Student,
    StudentNote,
)
from src.models.common import NoteResponse
from src.models.payment import InstallmentResponse
from src.models.student import (
    PaymentHistoryPlan,
    PaymentHistoryResponse,
    StudentCreateRequest,
    StudentResponse,
    StudentUpdateRequest,
)
from src.utils.csv_export import write_csv
from src.utils.money import round_money

logger = logging.getLogger(__name__)

PASSPORT_CONSTRAINT = "uq_students_agency_passport"

PAYMENT_HISTORY_HEADERS = (
    "Payment Plan",
    "College",
    "Branch",
    "Program",
    "Installment",
    "Amount",
    "Currency",
    "Student Due Date",
    "Status",
    "Paid Date",
    "Paid Amount",
)


class StudentServiceError(Exception):
    """Base exception for student service errors."""

    pass


class StudentNotFoundError(NotFoundError, StudentServiceError):
    """Raised when a student is not found."""

    pass


class StudentNoteNotFoundError(NotFoundError, StudentServiceError):
    """Raised when a student note is not found."""

    pass


class DuplicatePassportError(ConflictError, StudentServiceError):
    """Raised when a passport number is already registered in the agency."""

    pass


class StudentService:
    """Service for students and their notes and payment history.

    Attributes:
        _db: Async database session.
        _agency_id: Caller's agency.
    """

    def __init__(self, db: AsyncSession, agency_id: str) -> None:
        self._db = db
        self._agency_id = agency_id
        self._activity = ActivityService(db, agency_id)

    async def create_student(
        self,
        request: StudentCreateRequest,
        user_id: str | None = None,
        commit: bool = True,
    ) -> StudentResponse:
        """Create a student.

        Args:
            request: Validated student data.
            user_id: Acting user.
            commit: Commit immediately. The CSV importer flushes per row
                and commits once at the end.

        Raises:
            DuplicatePassportError: If the passport is already registered.
        """
        if await self.passport_exists(request.passport_number):
            raise DuplicatePassportError(
                f"A student with passport number {request.passport_number} already exists"
            )

        student = Student(agency_id=self._agency_id, **request.model_dump())
        self._db.add(student)
        try:
            await self._db.flush()
        except IntegrityError as e:
            # A concurrent insert can still win the race past passport_exists.
            if PASSPORT_CONSTRAINT not in str(e.orig):
                raise
            if commit:
                await self._db.rollback()
            raise DuplicatePassportError(
                f"A student with passport number {request.passport_number} already exists"
            ) from e

        self._activity.log_activity(
            entity_type="student",
            entity_id=student.id,
            action="created",
            description=f"Added student {student.full_name}",
            user_id=user_id,
        )

        if commit:
            await self._db.commit()
            await self._db.refresh(student)
            logger.info("Student created: %s", student.id)

        return StudentResponse.model_validate(student)

    async def get_student(self, student_id: str) -> StudentResponse:
        """Get a student by ID."""
        return StudentResponse.model_validate(await self._get_by_id(student_id))

    async def list_students(
        self,
        search: str | None = None,
        visa_status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[StudentResponse], int]:
        """List students.

        Args:
            search: Case-insensitive match on name, email or passport.
            visa_status: Visa status filter.
            limit: Maximum results.
            offset: Results to skip.

        Returns:
            Tuple of (students, total count).
        """
        stmt = select(Student).where(Student.agency_id == self._agency_id)

        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(
                or_(
                    Student.full_name.ilike(pattern),
                    Student.email.ilike(pattern),
                    Student.passport_number.ilike(pattern),
                )
            )
        if visa_status:
            stmt = stmt.where(Student.visa_status == visa_status)

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self._db.execute(count_stmt)).scalar() or 0

        stmt = stmt.order_by(Student.full_name).offset(offset).limit(limit)
        result = await self._db.execute(stmt)

        return [StudentResponse.model_validate(s) for s in result.scalars().all()], total

    async def update_student(
        self,
        student_id: str,
        request: StudentUpdateRequest,
        user_id: str | None = None,
    ) -> StudentResponse:
        """Update a student.

        Raises:
            StudentNotFoundError: If the student is not in the agency.
            DuplicatePassportError: If the new passport is taken.
        """
        student = await self._get_by_id(student_id)
        changes = request.model_dump(exclude_unset=True)

        for required in ("full_name", "passport_number"):
            if changes.get(required) is None:
                changes.pop(required, None)

        new_passport = changes.get("passport_number")
        if new_passport and new_passport != student.passport_number:
            if await self.passport_exists(new_passport):
                raise DuplicatePassportError(
                    f"A student with passport number {new_passport} already exists"
                )

        self._apply(student, changes)
        self._activity.log_activity(
            entity_type="student",
            entity_id=student.id,
            action="updated",
            description=f"Updated student {student.full_name}",
            user_id=user_id,
            metadata={"fields": sorted(changes)},
        )
        try:
            await self._db.commit()
        except IntegrityError as e:
            if PASSPORT_CONSTRAINT not in str(e.orig):
                raise
            await self._db.rollback()
            raise DuplicatePassportError(
                f"A student with passport number {new_passport} already exists"
            ) from e
        await self._db.refresh(student)

        logger.info("Student updated: %s", student.id)
        return StudentResponse.model_validate(student)

    async def delete_student(self, student_id: str, user_id: str | None = None) -> None:
        """Delete a student with their enrollments, plans and documents."""
        student = await self._get_by_id(student_id)
        name = student.full_name
        await self._db.delete(student)

        self._activity.log_activity(
            entity_type="student",
            entity_id=student_id,
            action="deleted",
            description=f"Deleted student {name}",
            user_id=user_id,
        )
        await self._db.commit()
        logger.info("Student deleted: %s", student_id)

    async def passport_exists(self, passport_number: str) -> bool:
        """Check whether a passport number is registered in the agency."""
        stmt = select(Student.id).where(
            Student.agency_id == self._agency_id,
            Student.passport_number == passport_number.strip(),
        )
        return (await self._db.execute(stmt)).first() is not None

    # Notes

    async def list_notes(self, student_id: str) -> list[NoteResponse]:
        """List notes on a student, newest first."""
        await self._get_by_id(student_id)
        stmt = (
            select(StudentNote)
            .where(StudentNote.student_id == student_id, StudentNote.agency_id == self._agency_id)
            .order_by(StudentNote.created_at.desc())
        )
        result = await self._db.execute(stmt)
        return [NoteResponse.model_validate(n) for n in result.scalars().all()]

    async def create_note(self, student_id: str, content: str, user_id: str) -> NoteResponse:
        """Add a note to a student."""
        await self._get_by_id(student_id)
        note = StudentNote(
            agency_id=self._agency_id,
            student_id=student_id,
            user_id=user_id,
            content=content,
        )
        self._db.add(note)
        await self._db.commit()
        await self._db.refresh(note)
        return NoteResponse.model_validate(note)

    async def update_note(self, student_id: str, note_id: str, content: str) -> NoteResponse:
        """Edit a note."""
        note = await self._get_note(student_id, note_id)
        note.content = content
        await self._db.commit()
        await self._db.refresh(note)
        return NoteResponse.model_validate(note)

    async def delete_note(self, student_id: str, note_id: str) -> None:
        """Delete a note."""
        note = await self._get_note(student_id, note_id)
        await self._db.delete(note)
        await self._db.commit()

    # Payment history

    async def get_payment_history(
        self,
        student_id: str,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> PaymentHistoryResponse:
        """Installments of every plan of the student, grouped by plan.

        Args:
            student_id: Student to report on.
            date_from: Only installments due on or after this date.
            date_to: Only installments due on or before this date.

        Returns:
            Plans with their installments plus paid and outstanding totals.
            Outstanding covers unpaid, non-cancelled installments.
        """
        student = await self._get_by_id(student_id)

        stmt = (
            select(PaymentPlan)
            .join(Enrollment, Enrollment.id == PaymentPlan.enrollment_id)
            .options(
                selectinload(PaymentPlan.installments),
                selectinload(PaymentPlan.enrollment)
                .selectinload(Enrollment.branch)
                .selectinload(Branch.college),
            )
            .where(
                Enrollment.student_id == student.id,
                PaymentPlan.agency_id == self._agency_id,
            )
            .order_by(PaymentPlan.start_date.desc())
        )
        result = await self._db.execute(stmt)
        plans = result.scalars().unique().all()

        total_paid = Decimal("0")
        total_outstanding = Decimal("0")
        history: list[PaymentHistoryPlan] = []

        for plan in plans:
            installments = [
                inst
                for inst in plan.installments
                if self._in_range(inst.student_due_date, date_from, date_to)
            ]
            plan_paid = sum((inst.paid_amount or Decimal("0") for inst in installments), Decimal("0"))
            total_paid += plan_paid
            total_outstanding += sum(
                (
                    inst.amount
                    for inst in installments
                    if inst.paid_date is None and inst.status != "cancelled"
                ),
                Decimal("0"),
            )

            branch = plan.enrollment.branch if plan.enrollment else None
            history.append(
                PaymentHistoryPlan(
                    payment_plan_id=plan.id,
                    college_name=branch.college.name if branch and branch.college else None,
                    branch_name=branch.name if branch else None,
                    program_name=plan.enrollment.program_name if plan.enrollment else None,
                    currency=plan.currency,
                    total_amount=plan.total_amount,
                    total_paid=round_money(plan_paid),
                    status=plan.status,
                    installments=[InstallmentResponse.model_validate(i) for i in installments],
                )
            )

        return PaymentHistoryResponse(
            student_id=student.id,
            student_name=student.full_name,
            plans=history,
            total_paid=round_money(total_paid),
            total_outstanding=round_money(total_outstanding),
        )

    async def export_payment_history_csv(
        self,
        student_id: str,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> str:
        """Payment history as CSV, one line per installment."""
        history = await self.get_payment_history(student_id, date_from, date_to)

        rows: list[list[Any]] = [
            ["Payment History", history.student_name],
            ["Total Paid", history.total_paid],
            ["Total Outstanding", history.total_outstanding],
            [],
            list(PAYMENT_HISTORY_HEADERS),
        ]
        for plan in history.plans:
            for inst in plan.installments:
                rows.append(
                    [
                        plan.payment_plan_id,
                        plan.college_name,
                        plan.branch_name,
                        plan.program_name,
                        "Initial" if inst.is_initial_payment else inst.installment_number,
                        inst.amount,
                        plan.currency,
                        inst.student_due_date,
                        inst.status,
                        inst.paid_date,
                        inst.paid_amount,
                    ]
                )

        return write_csv(rows)

    # Helpers

    async def _get_by_id(self, student_id: str) -> Student:
        stmt = select(Student).where(
            Student.id == student_id, Student.agency_id == self._agency_id
        )
        result = await self._db.execute(stmt)
        student = result.scalar_one_or_none()
        if not student:
            raise StudentNotFoundError(f"Student {student_id} not found")
        return student

    async def _get_note(self, student_id: str, note_id: str) -> StudentNote:
        stmt = select(StudentNote).where(
            StudentNote.id == note_id,
            StudentNote.student_id == student_id,
            StudentNote.agency_id == self._agency_id,
        )
        result = await self._db.execute(stmt)
        note = result.scalar_one_or_none()
        if not note:
            raise StudentNoteNotFoundError(f"Note {note_id} not found")
        return note

    @staticmethod
    def _in_range(day: date | None, date_from: date | None, date_to: date | None) -> bool:
        if day is None:
            return date_from is None and date_to is None
        if date_from and day < date_from:
            return False
        if date_to and day > date_to:
            return False
        return True

    @staticmethod
    def _apply(entity: Any, changes: dict[str, Any]) -> None:
        for field, value in changes.items():
            setattr(entity, field, value)
