# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment endpoints.

- POST / - Enroll a student in a branch program (idempotent)
- GET / - List by student or branch
- GET /{enrollment_id} - Enrollment details
- PATCH /{enrollment_id}/status - Complete or cancel
- POST /{enrollment_id}/offer-letter - Upload the offer letter
"""

from typing import Annotated

from fastapi import APIRouter, Depends, File, Query, Request, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_agency_db, get_app_settings, require_auth
from src.api.middleware.auth import CurrentUser
from src.api.middleware.rate_limit import RATE_LIMIT_UPLOAD, limiter
from src.api.responses import read_upload
from src.core.config import Settings
from src.domains.enrollment.service import EnrollmentService
from src.models.student import (
    EnrollmentCreateRequest,
    EnrollmentListResponse,
    EnrollmentResponse,
    EnrollmentStatus,
    EnrollmentStatusUpdateRequest,
)

router = APIRouter()


@router.post(
    "",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create enrollment",
    description=(
        "Enroll a student in a branch program. Returns the existing enrollment "
        "with 200 when the same student, branch and program is already enrolled."
    ),
)
async def create_enrollment(
    data: EnrollmentCreateRequest,
    response: Response,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> EnrollmentResponse:
    service = EnrollmentService(db, current_user.agency_id)
    enrollment, created = await service.create_enrollment(
        student_id=data.student_id,
        branch_id=data.branch_id,
        program_name=data.program_name,
        user_id=current_user.id,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return enrollment


@router.get(
    "",
    response_model=EnrollmentListResponse,
    summary="List enrollments",
)
async def list_enrollments(
    student_id: Annotated[str | None, Query()] = None,
    branch_id: Annotated[str | None, Query()] = None,
    enrollment_status: Annotated[EnrollmentStatus | None, Query(alias="status")] = None,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> EnrollmentListResponse:
    service = EnrollmentService(db, current_user.agency_id)
    items, total = await service.list_enrollments(
        student_id=student_id,
        branch_id=branch_id,
        status=enrollment_status,
    )
    return EnrollmentListResponse(items=items, total=total)


@router.get(
    "/{enrollment_id}",
    response_model=EnrollmentResponse,
    summary="Get enrollment",
)
async def get_enrollment(
    enrollment_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> EnrollmentResponse:
    return await EnrollmentService(db, current_user.agency_id).get_enrollment(enrollment_id)


@router.patch(
    "/{enrollment_id}/status",
    response_model=EnrollmentResponse,
    summary="Update enrollment status",
)
async def update_enrollment_status(
    enrollment_id: str,
    data: EnrollmentStatusUpdateRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> EnrollmentResponse:
    service = EnrollmentService(db, current_user.agency_id)
    return await service.update_status(enrollment_id, data.status, user_id=current_user.id)


@router.post(
    "/{enrollment_id}/offer-letter",
    response_model=EnrollmentResponse,
    summary="Upload offer letter",
    description="PDF, JPEG or PNG within the upload size limit. Replaces any previous letter.",
)
@limiter.limit(RATE_LIMIT_UPLOAD)
async def upload_offer_letter(
    request: Request,
    enrollment_id: str,
    file: UploadFile = File(...),
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
    settings: Settings = Depends(get_app_settings),
) -> EnrollmentResponse:
    content = await read_upload(file, settings.api.max_upload_bytes)
    service = EnrollmentService(db, current_user.agency_id)
    return await service.attach_offer_letter(
        enrollment_id,
        upload_dir=settings.api.upload_dir,
        max_bytes=settings.api.max_upload_bytes,
        file_name=file.filename or "offer_letter",
        content_type=file.content_type or "application/octet-stream",
        content=content,
    )
