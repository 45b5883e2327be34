# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student endpoints.

- POST / GET / - Create and list students
- POST /import - Bulk CSV import
- GET / PATCH / DELETE /{student_id} - Read, update, delete
- /{student_id}/notes - Note CRUD
- /{student_id}/documents - Upload, list, download, delete documents
- GET /{student_id}/payment-history - Installments grouped by plan
- GET /{student_id}/payment-history/export - Same as CSV
"""

import logging
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, Query, Request, Response, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_agency_db, get_app_settings, require_auth
from src.api.middleware.auth import CurrentUser
from src.api.middleware.rate_limit import RATE_LIMIT_UPLOAD, limiter
from src.api.responses import csv_response, read_upload
from src.core.config import Settings
from src.domains.student.documents import StudentDocumentService
from src.domains.student.importer import StudentImporter
from src.domains.student.service import StudentService
from src.models.common import NoteCreateRequest, NoteResponse, NoteUpdateRequest
from src.models.student import (
    DocumentType,
    PaymentHistoryResponse,
    StudentCreateRequest,
    StudentDocumentResponse,
    StudentImportResult,
    StudentListResponse,
    StudentResponse,
    StudentUpdateRequest,
    VisaStatus,
)
from src.utils.csv_export import csv_filename

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_student_service(db: AsyncSession, current_user: CurrentUser) -> StudentService:
    return StudentService(db, current_user.agency_id)


@router.post(
    "",
    response_model=StudentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create student",
    description="Create a student. Passport numbers are unique per agency.",
)
async def create_student(
    data: StudentCreateRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> StudentResponse:
    service = _get_student_service(db, current_user)
    return await service.create_student(data, user_id=current_user.id)


@router.get(
    "",
    response_model=StudentListResponse,
    summary="List students",
)
async def list_students(
    search: Annotated[str | None, Query(description="Name, email or passport")] = None,
    visa_status: Annotated[VisaStatus | None, Query(description="Filter by visa status")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> StudentListResponse:
    service = _get_student_service(db, current_user)
    students, total = await service.list_students(
        search=search,
        visa_status=visa_status,
        limit=limit,
        offset=offset,
    )
    return StudentListResponse(items=students, total=total, limit=limit, offset=offset)


@router.post(
    "/import",
    response_model=StudentImportResult,
    summary="Import students from CSV",
    description="Rows are validated one by one. Invalid rows are reported, valid rows are saved.",
)
@limiter.limit(RATE_LIMIT_UPLOAD)
async def import_students(
    request: Request,
    file: UploadFile = File(...),
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
    settings: Settings = Depends(get_app_settings),
) -> StudentImportResult:
    content = await read_upload(file, settings.api.max_upload_bytes)
    importer = StudentImporter(db, current_user.agency_id)
    result = await importer.import_csv(content, file.filename, user_id=current_user.id)
    logger.info(
        "Student import by %s: %d rows, %d imported, %d failed",
        current_user.id,
        result.total_rows,
        result.successful,
        result.failed,
    )
    return result


@router.get(
    "/{student_id}",
    response_model=StudentResponse,
    summary="Get student",
)
async def get_student(
    student_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> StudentResponse:
    return await _get_student_service(db, current_user).get_student(student_id)


@router.patch(
    "/{student_id}",
    response_model=StudentResponse,
    summary="Update student",
)
async def update_student(
    student_id: str,
    data: StudentUpdateRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> StudentResponse:
    service = _get_student_service(db, current_user)
    return await service.update_student(student_id, data, user_id=current_user.id)


@router.delete(
    "/{student_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete student",
)
async def delete_student(
    student_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> None:
    await _get_student_service(db, current_user).delete_student(student_id, user_id=current_user.id)


# =========================================================================
# Notes
# =========================================================================


@router.get(
    "/{student_id}/notes",
    response_model=list[NoteResponse],
    summary="List student notes",
)
async def list_notes(
    student_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> list[NoteResponse]:
    return await _get_student_service(db, current_user).list_notes(student_id)


@router.post(
    "/{student_id}/notes",
    response_model=NoteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add student note",
)
async def create_note(
    student_id: str,
    data: NoteCreateRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> NoteResponse:
    service = _get_student_service(db, current_user)
    return await service.create_note(student_id, data.content, user_id=current_user.id)


@router.patch(
    "/{student_id}/notes/{note_id}",
    response_model=NoteResponse,
    summary="Edit student note",
)
async def update_note(
    student_id: str,
    note_id: str,
    data: NoteUpdateRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> NoteResponse:
    service = _get_student_service(db, current_user)
    return await service.update_note(student_id, note_id, data.content)


@router.delete(
    "/{student_id}/notes/{note_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete student note",
)
async def delete_note(
    student_id: str,
    note_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> None:
    await _get_student_service(db, current_user).delete_note(student_id, note_id)


# =========================================================================
# Documents
# =========================================================================


@router.get(
    "/{student_id}/documents",
    response_model=list[StudentDocumentResponse],
    summary="List student documents",
)
async def list_documents(
    student_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
    settings: Settings = Depends(get_app_settings),
) -> list[StudentDocumentResponse]:
    service = StudentDocumentService(db, current_user.agency_id, settings.api)
    return await service.list_documents(student_id)


@router.post(
    "/{student_id}/documents",
    response_model=StudentDocumentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload student document",
    description="PDF, JPEG or PNG up to 10 MB.",
)
@limiter.limit(RATE_LIMIT_UPLOAD)
async def upload_document(
    request: Request,
    student_id: str,
    document_type: Annotated[DocumentType, Form()],
    file: UploadFile = File(...),
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
    settings: Settings = Depends(get_app_settings),
) -> StudentDocumentResponse:
    content = await read_upload(file, settings.api.max_upload_bytes)
    service = StudentDocumentService(db, current_user.agency_id, settings.api)
    return await service.upload_document(
        student_id=student_id,
        document_type=document_type,
        file_name=file.filename or "document",
        content_type=file.content_type or "application/octet-stream",
        content=content,
        user_id=current_user.id,
    )


@router.get(
    "/{student_id}/documents/{document_id}",
    summary="Download student document",
    response_class=FileResponse,
)
async def download_document(
    student_id: str,
    document_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
    settings: Settings = Depends(get_app_settings),
) -> FileResponse:
    service = StudentDocumentService(db, current_user.agency_id, settings.api)
    path, file_name, content_type = await service.get_document_path(student_id, document_id)
    return FileResponse(path, media_type=content_type, filename=file_name)


@router.delete(
    "/{student_id}/documents/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete student document",
)
async def delete_document(
    student_id: str,
    document_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
    settings: Settings = Depends(get_app_settings),
) -> None:
    service = StudentDocumentService(db, current_user.agency_id, settings.api)
    await service.delete_document(student_id, document_id)


# =========================================================================
# Payment history
# =========================================================================


@router.get(
    "/{student_id}/payment-history",
    response_model=PaymentHistoryResponse,
    summary="Student payment history",
)
async def get_payment_history(
    student_id: str,
    date_from: Annotated[date | None, Query(description="Due on or after")] = None,
    date_to: Annotated[date | None, Query(description="Due on or before")] = None,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> PaymentHistoryResponse:
    service = _get_student_service(db, current_user)
    return await service.get_payment_history(student_id, date_from, date_to)


@router.get(
    "/{student_id}/payment-history/export",
    summary="Export student payment history as CSV",
    response_class=Response,
)
async def export_payment_history(
    student_id: str,
    date_from: Annotated[date | None, Query()] = None,
    date_to: Annotated[date | None, Query()] = None,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> Response:
    service = _get_student_service(db, current_user)
    content = await service.export_payment_history_csv(student_id, date_from, date_to)
    return csv_response(content, csv_filename(f"payment_history_{student_id}"))
