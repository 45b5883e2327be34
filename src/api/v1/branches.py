# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Single branch endpoints.

- GET /{branch_id} - Branch with its effective commission rate
- PATCH /{branch_id} - Update (admin)
- DELETE /{branch_id} - Delete (admin)
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_agency_db, require_admin, require_auth
from src.api.middleware.auth import CurrentUser
from src.domains.college.service import CollegeService
from src.models.college import BranchResponse, BranchUpdateRequest

router = APIRouter()


@router.get(
    "/{branch_id}",
    response_model=BranchResponse,
    summary="Get branch",
)
async def get_branch(
    branch_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> BranchResponse:
    return await CollegeService(db, current_user.agency_id).get_branch(branch_id)


@router.patch(
    "/{branch_id}",
    response_model=BranchResponse,
    summary="Update branch",
)
async def update_branch(
    branch_id: str,
    data: BranchUpdateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> BranchResponse:
    service = CollegeService(db, current_user.agency_id)
    return await service.update_branch(branch_id, data, user_id=current_user.id)


@router.delete(
    "/{branch_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete branch",
)
async def delete_branch(
    branch_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_agency_db),
) -> None:
    await CollegeService(db, current_user.agency_id).delete_branch(branch_id, user_id=current_user.id)
