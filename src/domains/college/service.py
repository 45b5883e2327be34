# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""College service for the agency's college registry.

This module provides the CollegeService that handles:
- College CRUD with search and city filters
- Branch CRUD with commission rate inheritance from the college
- College contacts who receive payment notifications
- Free text notes

Example:
    >>> service = CollegeService(db, agency_id)
    >>> college = await service.create_college(request, user_id)
    >>> branch = await service.create_branch(college.id, branch_request, user_id)
"""

import logging
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.errors import ConflictError, NotFoundError
from src.domains.activity.service import ActivityService
from src.infrastructure.database.models import Branch, College, CollegeContact, CollegeNote
from src.models.college import (
    BranchCreateRequest,
    BranchResponse,
    BranchUpdateRequest,
    CollegeCreateRequest,
    CollegeResponse,
    CollegeUpdateRequest,
    ContactCreateRequest,
    ContactResponse,
    ContactUpdateRequest,
)
from src.models.common import NoteResponse

logger = logging.getLogger(__name__)


class CollegeServiceError(Exception):
    """Base exception for college service errors."""

    pass


class CollegeNotFoundError(NotFoundError, CollegeServiceError):
    """Raised when a college is not found."""

    pass


class BranchNotFoundError(NotFoundError, CollegeServiceError):
    """Raised when a branch is not found."""

    pass


class ContactNotFoundError(NotFoundError, CollegeServiceError):
    """Raised when a contact is not found."""

    pass


class NoteNotFoundError(NotFoundError, CollegeServiceError):
    """Raised when a note is not found."""

    pass


class CollegeAlreadyExistsError(ConflictError, CollegeServiceError):
    """Raised when a college name is already used in the agency."""

    pass


class CollegeInUseError(ConflictError, CollegeServiceError):
    """Raised when a college or branch still has enrollments."""

    pass


class CollegeService:
    """Service for colleges and their branches, contacts and notes.

    Attributes:
        _db: Async database session.
        _agency_id: Caller's agency.
    """

    def __init__(self, db: AsyncSession, agency_id: str) -> None:
        self._db = db
        self._agency_id = agency_id
        self._activity = ActivityService(db, agency_id)

    # Colleges

    async def create_college(
        self,
        request: CollegeCreateRequest,
        user_id: str | None = None,
    ) -> CollegeResponse:
        """Create a college.

        Raises:
            CollegeAlreadyExistsError: If the name is taken in the agency.
        """
        await self._ensure_unique_name(request.name)

        college = College(agency_id=self._agency_id, **request.model_dump())
        self._db.add(college)
        await self._db.flush()

        self._activity.log_activity(
            entity_type="college",
            entity_id=college.id,
            action="created",
            description=f"Added college {college.name}",
            user_id=user_id,
        )
        await self._db.commit()
        await self._db.refresh(college)

        logger.info("College created: %s", college.id)
        return self._to_college_response(college, branch_count=0)

    async def get_college(self, college_id: str) -> CollegeResponse:
        """Get a college with its branch count."""
        college = await self._get_college(college_id)
        return self._to_college_response(college, await self._count_branches(college.id))

    async def list_colleges(
        self,
        search: str | None = None,
        city: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[CollegeResponse], int]:
        """List colleges.

        Args:
            search: Case-insensitive match on name or city.
            city: Exact city filter.
            limit: Maximum results.
            offset: Results to skip.

        Returns:
            Tuple of (colleges, total count).
        """
        branch_count = (
            select(func.count(Branch.id))
            .where(Branch.college_id == College.id)
            .correlate(College)
            .scalar_subquery()
        )
        stmt = select(College, branch_count.label("branch_count")).where(
            College.agency_id == self._agency_id
        )

        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(College.name.ilike(pattern), College.city.ilike(pattern)))
        if city:
            stmt = stmt.where(College.city == city)

        count_stmt = select(func.count()).select_from(
            select(College.id).where(stmt.whereclause).subquery()
        )
        total = (await self._db.execute(count_stmt)).scalar() or 0

        stmt = stmt.order_by(College.name).offset(offset).limit(limit)
        result = await self._db.execute(stmt)

        return [
            self._to_college_response(college, count or 0) for college, count in result.all()
        ], total

    async def update_college(
        self,
        college_id: str,
        request: CollegeUpdateRequest,
        user_id: str | None = None,
    ) -> CollegeResponse:
        """Update a college."""
        college = await self._get_college(college_id)
        changes = request.model_dump(exclude_unset=True)

        if changes.get("name") is None:
            changes.pop("name", None)
        elif changes["name"] != college.name:
            await self._ensure_unique_name(changes["name"])
        if changes.get("gst_status") is None:
            changes.pop("gst_status", None)

        self._apply(college, changes)
        self._activity.log_activity(
            entity_type="college",
            entity_id=college.id,
            action="updated",
            description=f"Updated college {college.name}",
            user_id=user_id,
            metadata={"fields": sorted(changes)},
        )
        await self._db.commit()
        await self._db.refresh(college)

        logger.info("College updated: %s", college.id)
        return self._to_college_response(college, await self._count_branches(college.id))

    async def delete_college(self, college_id: str, user_id: str | None = None) -> None:
        """Delete a college with its branches, contacts and notes."""
        college = await self._get_college(college_id)
        name = college.name
        await self._db.delete(college)

        self._activity.log_activity(
            entity_type="college",
            entity_id=college_id,
            action="deleted",
            description=f"Deleted college {name}",
            user_id=user_id,
        )
        await self._commit_delete(f"College {name} has enrollments and cannot be deleted")
        logger.info("College deleted: %s", college_id)

    # Branches

    async def create_branch(
        self,
        college_id: str,
        request: BranchCreateRequest,
        user_id: str | None = None,
    ) -> BranchResponse:
        """Create a branch. A missing rate inherits the college default."""
        college = await self._get_college(college_id)

        branch = Branch(agency_id=self._agency_id, college_id=college.id, **request.model_dump())
        branch.college = college
        self._db.add(branch)
        await self._db.flush()

        self._activity.log_activity(
            entity_type="branch",
            entity_id=branch.id,
            action="created",
            description=f"Added branch {branch.name} to {college.name}",
            user_id=user_id,
        )
        await self._db.commit()

        logger.info("Branch created: %s (college=%s)", branch.id, college.id)
        return BranchResponse.model_validate(await self._get_branch(branch.id))

    async def get_branch(self, branch_id: str) -> BranchResponse:
        """Get a branch with its effective commission rate."""
        return BranchResponse.model_validate(await self._get_branch(branch_id))

    async def list_branches(self, college_id: str) -> list[BranchResponse]:
        """List the branches of a college."""
        await self._get_college(college_id)
        stmt = (
            select(Branch)
            .options(selectinload(Branch.college))
            .where(Branch.college_id == college_id, Branch.agency_id == self._agency_id)
            .order_by(Branch.name)
        )
        result = await self._db.execute(stmt)
        return [BranchResponse.model_validate(b) for b in result.scalars().all()]

    async def update_branch(
        self,
        branch_id: str,
        request: BranchUpdateRequest,
        user_id: str | None = None,
    ) -> BranchResponse:
        """Update a branch. Setting the rate to null reverts to the college default."""
        branch = await self._get_branch(branch_id)
        changes = request.model_dump(exclude_unset=True)
        if changes.get("name") is None:
            changes.pop("name", None)

        self._apply(branch, changes)
        self._activity.log_activity(
            entity_type="branch",
            entity_id=branch.id,
            action="updated",
            description=f"Updated branch {branch.name}",
            user_id=user_id,
            metadata={"fields": sorted(changes)},
        )
        await self._db.commit()

        logger.info("Branch updated: %s", branch.id)
        return BranchResponse.model_validate(await self._get_branch(branch.id))

    async def delete_branch(self, branch_id: str, user_id: str | None = None) -> None:
        """Delete a branch.

        Raises:
            CollegeInUseError: If the branch still has enrollments.
        """
        branch = await self._get_branch(branch_id)
        name = branch.name
        await self._db.delete(branch)

        self._activity.log_activity(
            entity_type="branch",
            entity_id=branch_id,
            action="deleted",
            description=f"Deleted branch {name}",
            user_id=user_id,
        )
        await self._commit_delete(f"Branch {name} has enrollments and cannot be deleted")
        logger.info("Branch deleted: %s", branch_id)

    # Contacts

    async def list_contacts(self, college_id: str) -> list[ContactResponse]:
        """List contacts of a college."""
        await self._get_college(college_id)
        stmt = (
            select(CollegeContact)
            .where(
                CollegeContact.college_id == college_id,
                CollegeContact.agency_id == self._agency_id,
            )
            .order_by(CollegeContact.name)
        )
        result = await self._db.execute(stmt)
        return [ContactResponse.model_validate(c) for c in result.scalars().all()]

    async def create_contact(
        self,
        college_id: str,
        request: ContactCreateRequest,
    ) -> ContactResponse:
        """Add a contact to a college."""
        await self._get_college(college_id)
        contact = CollegeContact(
            agency_id=self._agency_id,
            college_id=college_id,
            **request.model_dump(),
        )
        self._db.add(contact)
        await self._db.commit()
        await self._db.refresh(contact)

        logger.info("College contact created: %s", contact.id)
        return ContactResponse.model_validate(contact)

    async def update_contact(
        self,
        college_id: str,
        contact_id: str,
        request: ContactUpdateRequest,
    ) -> ContactResponse:
        """Update a college contact."""
        contact = await self._get_contact(college_id, contact_id)
        changes = request.model_dump(exclude_unset=True)
        if changes.get("name") is None:
            changes.pop("name", None)

        self._apply(contact, changes)
        await self._db.commit()
        await self._db.refresh(contact)
        return ContactResponse.model_validate(contact)

    async def delete_contact(self, college_id: str, contact_id: str) -> None:
        """Delete a college contact."""
        contact = await self._get_contact(college_id, contact_id)
        await self._db.delete(contact)
        await self._db.commit()
        logger.info("College contact deleted: %s", contact_id)

    # Notes

    async def list_notes(self, college_id: str) -> list[NoteResponse]:
        """List notes on a college, newest first."""
        await self._get_college(college_id)
        stmt = (
            select(CollegeNote)
            .where(CollegeNote.college_id == college_id, CollegeNote.agency_id == self._agency_id)
            .order_by(CollegeNote.created_at.desc())
        )
        result = await self._db.execute(stmt)
        return [NoteResponse.model_validate(n) for n in result.scalars().all()]

    async def create_note(self, college_id: str, content: str, user_id: str) -> NoteResponse:
        """Add a note to a college."""
        await self._get_college(college_id)
        note = CollegeNote(
            agency_id=self._agency_id,
            college_id=college_id,
            user_id=user_id,
            content=content,
        )
        self._db.add(note)
        await self._db.commit()
        await self._db.refresh(note)
        return NoteResponse.model_validate(note)

    async def update_note(self, college_id: str, note_id: str, content: str) -> NoteResponse:
        """Edit a note."""
        note = await self._get_note(college_id, note_id)
        note.content = content
        await self._db.commit()
        await self._db.refresh(note)
        return NoteResponse.model_validate(note)

    async def delete_note(self, college_id: str, note_id: str) -> None:
        """Delete a note."""
        note = await self._get_note(college_id, note_id)
        await self._db.delete(note)
        await self._db.commit()

    # Helpers

    async def _get_college(self, college_id: str) -> College:
        stmt = select(College).where(
            College.id == college_id, College.agency_id == self._agency_id
        )
        result = await self._db.execute(stmt)
        college = result.scalar_one_or_none()
        if not college:
            raise CollegeNotFoundError(f"College {college_id} not found")
        return college

    async def _get_branch(self, branch_id: str) -> Branch:
        stmt = (
            select(Branch)
            .options(selectinload(Branch.college))
            .where(Branch.id == branch_id, Branch.agency_id == self._agency_id)
        )
        result = await self._db.execute(stmt)
        branch = result.scalar_one_or_none()
        if not branch:
            raise BranchNotFoundError(f"Branch {branch_id} not found")
        return branch

    async def _get_contact(self, college_id: str, contact_id: str) -> CollegeContact:
        stmt = select(CollegeContact).where(
            CollegeContact.id == contact_id,
            CollegeContact.college_id == college_id,
            CollegeContact.agency_id == self._agency_id,
        )
        result = await self._db.execute(stmt)
        contact = result.scalar_one_or_none()
        if not contact:
            raise ContactNotFoundError(f"Contact {contact_id} not found")
        return contact

    async def _get_note(self, college_id: str, note_id: str) -> CollegeNote:
        stmt = select(CollegeNote).where(
            CollegeNote.id == note_id,
            CollegeNote.college_id == college_id,
            CollegeNote.agency_id == self._agency_id,
        )
        result = await self._db.execute(stmt)
        note = result.scalar_one_or_none()
        if not note:
            raise NoteNotFoundError(f"Note {note_id} not found")
        return note

    async def _ensure_unique_name(self, name: str) -> None:
        stmt = select(College.id).where(
            College.agency_id == self._agency_id,
            func.lower(College.name) == name.strip().lower(),
        )
        if (await self._db.execute(stmt)).scalar_one_or_none():
            raise CollegeAlreadyExistsError(f"College '{name}' already exists")

    async def _commit_delete(self, message: str) -> None:
        try:
            await self._db.commit()
        except IntegrityError as e:
            await self._db.rollback()
            raise CollegeInUseError(message) from e

    async def _count_branches(self, college_id: str) -> int:
        stmt = select(func.count(Branch.id)).where(Branch.college_id == college_id)
        return (await self._db.execute(stmt)).scalar() or 0

    @staticmethod
    def _apply(entity: Any, changes: dict[str, Any]) -> None:
        for field, value in changes.items():
            setattr(entity, field, value)

    @staticmethod
    def _to_college_response(college: College, branch_count: int) -> CollegeResponse:
        return CollegeResponse(
            id=college.id,
            name=college.name,
            city=college.city,
            country=college.country,
            default_commission_rate_percent=college.default_commission_rate_percent,
            gst_status=college.gst_status,
            contract_expiration_date=college.contract_expiration_date,
            contact_email=college.contact_email,
            branch_count=branch_count,
            created_at=college.created_at,
            updated_at=college.updated_at,
        )
