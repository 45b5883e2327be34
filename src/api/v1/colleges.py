# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""College endpoints with their branches, contacts and notes.

- POST / GET / - Create (admin) and list colleges
- GET / PATCH / DELETE /{college_id} - Read, update (admin), delete (admin)
- GET / POST /{college_id}/branches - List and create (admin) branches
- /{college_id}/contacts - Contact CRUD
- /{college_id}/notes - Note CRUD

Single branch operations live in branches.py.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_agency_db, require_admin, require_auth
from src.api.middleware.auth import CurrentUser
from src.domains.college.service import CollegeService
from src.models.college import (
    BranchCreateRequest,
    BranchResponse,
    CollegeCreateRequest,
    CollegeListResponse,
    CollegeResponse,
    CollegeUpdateRequest,
    ContactCreateRequest,
    ContactResponse,
    ContactUpdateRequest,
)
from src.models.common import NoteCreateRequest, NoteResponse, NoteUpdateRequest

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_college_service(db: AsyncSession, current_user: CurrentUser) -> CollegeService:
    return CollegeService(db, current_user.agency_id)


# =========================================================================
# Colleges
# =========================================================================


@router.post(
    "",
    response_model=CollegeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create college",
    description="Create a college. Names are unique per agency. Requires admin access.",
)
async def create_college(
    data: CollegeCreateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> CollegeResponse:
    service = _get_college_service(db, current_user)
    return await service.create_college(data, user_id=current_user.id)


@router.get(
    "",
    response_model=CollegeListResponse,
    summary="List colleges",
)
async def list_colleges(
    search: Annotated[str | None, Query(description="Search by name")] = None,
    city: Annotated[str | None, Query(description="Filter by city")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> CollegeListResponse:
    service = _get_college_service(db, current_user)
    colleges, total = await service.list_colleges(
        search=search,
        city=city,
        limit=limit,
        offset=offset,
    )
    return CollegeListResponse(items=colleges, total=total, limit=limit, offset=offset)


@router.get(
    "/{college_id}",
    response_model=CollegeResponse,
    summary="Get college",
)
async def get_college(
    college_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> CollegeResponse:
    return await _get_college_service(db, current_user).get_college(college_id)


@router.patch(
    "/{college_id}",
    response_model=CollegeResponse,
    summary="Update college",
)
async def update_college(
    college_id: str,
    data: CollegeUpdateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> CollegeResponse:
    service = _get_college_service(db, current_user)
    return await service.update_college(college_id, data, user_id=current_user.id)


@router.delete(
    "/{college_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete college",
)
async def delete_college(
    college_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> None:
    await _get_college_service(db, current_user).delete_college(college_id, user_id=current_user.id)


# =========================================================================
# Branches
# =========================================================================


@router.get(
    "/{college_id}/branches",
    response_model=list[BranchResponse],
    summary="List branches",
)
async def list_branches(
    college_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> list[BranchResponse]:
    return await _get_college_service(db, current_user).list_branches(college_id)


@router.post(
    "/{college_id}/branches",
    response_model=BranchResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create branch",
    description="A branch without a rate inherits the college default. Requires admin access.",
)
async def create_branch(
    college_id: str,
    data: BranchCreateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> BranchResponse:
    service = _get_college_service(db, current_user)
    return await service.create_branch(college_id, data, user_id=current_user.id)


# =========================================================================
# Contacts
# =========================================================================


@router.get(
    "/{college_id}/contacts",
    response_model=list[ContactResponse],
    summary="List contacts",
)
async def list_contacts(
    college_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> list[ContactResponse]:
    return await _get_college_service(db, current_user).list_contacts(college_id)


@router.post(
    "/{college_id}/contacts",
    response_model=ContactResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create contact",
)
async def create_contact(
    college_id: str,
    data: ContactCreateRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> ContactResponse:
    return await _get_college_service(db, current_user).create_contact(college_id, data)


@router.patch(
    "/{college_id}/contacts/{contact_id}",
    response_model=ContactResponse,
    summary="Update contact",
)
async def update_contact(
    college_id: str,
    contact_id: str,
    data: ContactUpdateRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> ContactResponse:
    service = _get_college_service(db, current_user)
    return await service.update_contact(college_id, contact_id, data)


@router.delete(
    "/{college_id}/contacts/{contact_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete contact",
)
async def delete_contact(
    college_id: str,
    contact_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> None:
    await _get_college_service(db, current_user).delete_contact(college_id, contact_id)


# =========================================================================
# Notes
# =========================================================================


@router.get(
    "/{college_id}/notes",
    response_model=list[NoteResponse],
    summary="List college notes",
)
async def list_notes(
    college_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> list[NoteResponse]:
    return await _get_college_service(db, current_user).list_notes(college_id)


@router.post(
    "/{college_id}/notes",
    response_model=NoteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add college note",
)
async def create_note(
    college_id: str,
    data: NoteCreateRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> NoteResponse:
    service = _get_college_service(db, current_user)
    return await service.create_note(college_id, data.content, user_id=current_user.id)


@router.patch(
    "/{college_id}/notes/{note_id}",
    response_model=NoteResponse,
    summary="Edit college note",
)
async def update_note(
    college_id: str,
    note_id: str,
    data: NoteUpdateRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> NoteResponse:
    service = _get_college_service(db, current_user)
    return await service.update_note(college_id, note_id, data.content)


@router.delete(
    "/{college_id}/notes/{note_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete college note",
)
async def delete_note(
    college_id: str,
    note_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> None:
    await _get_college_service(db, current_user).delete_note(college_id, note_id)
