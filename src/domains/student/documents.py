# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student document storage.

Files are written under {upload_dir}/{agency_id}/students/{student_id}/
with a generated name, and described by a student_documents row.
"""

import asyncio
import logging
import re
import uuid
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config.settings import APISettings
from src.core.errors import NotFoundError, ValidationError
from src.infrastructure.database.models import Student, StudentDocument
from src.models.student import StudentDocumentResponse

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "application/pdf": ".pdf",
    "image/jpeg": ".jpg",
    "image/png": ".png",
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class DocumentNotFoundError(NotFoundError):
    """Raised when a document is not found."""

    pass


class InvalidDocumentError(ValidationError):
    """Raised when an upload has the wrong type or size."""

    pass


def safe_filename(name: str) -> str:
    """Strip directories and unsafe characters from an uploaded file name."""
    base = Path(name or "document").name
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned[:200] or "document"


class StudentDocumentService:
    """Upload, list and delete student documents.

    Attributes:
        _db: Async database session.
        _agency_id: Caller's agency.
        _settings: API settings with upload directory and size limit.
    """

    def __init__(self, db: AsyncSession, agency_id: str, settings: APISettings) -> None:
        self._db = db
        self._agency_id = agency_id
        self._settings = settings

    def student_dir(self, student_id: str) -> Path:
        """Directory holding a student's files."""
        return Path(self._settings.upload_dir) / self._agency_id / "students" / student_id

    async def list_documents(self, student_id: str) -> list[StudentDocumentResponse]:
        """List a student's documents, newest first."""
        await self._ensure_student(student_id)
        stmt = (
            select(StudentDocument)
            .where(
                StudentDocument.student_id == student_id,
                StudentDocument.agency_id == self._agency_id,
            )
            .order_by(StudentDocument.created_at.desc())
        )
        result = await self._db.execute(stmt)
        return [StudentDocumentResponse.model_validate(d) for d in result.scalars().all()]

    async def upload_document(
        self,
        student_id: str,
        document_type: str,
        file_name: str,
        content_type: str,
        content: bytes,
        user_id: str | None = None,
    ) -> StudentDocumentResponse:
        """Store a file and record it.

        Raises:
            InvalidDocumentError: If the type is not PDF, JPEG or PNG, the
                file is empty, or it exceeds the size limit.
        """
        await self._ensure_student(student_id)

        if content_type not in ALLOWED_CONTENT_TYPES:
            raise InvalidDocumentError(
                "Unsupported file type. Allowed: PDF, JPEG, PNG",
                details={"content_type": content_type},
            )
        if not content:
            raise InvalidDocumentError("File is empty")
        if len(content) > self._settings.max_upload_bytes:
            raise InvalidDocumentError(
                "File is too large",
                details={"max_bytes": self._settings.max_upload_bytes, "size": len(content)},
            )

        original = safe_filename(file_name)
        stored_name = f"{uuid.uuid4().hex}_{original}"
        directory = self.student_dir(student_id)
        path = directory / stored_name
        await asyncio.to_thread(write_file, path, content)

        document = StudentDocument(
            agency_id=self._agency_id,
            student_id=student_id,
            document_type=document_type,
            file_name=original,
            file_path=str(path),
            file_size=len(content),
            content_type=content_type,
            uploaded_by=user_id,
        )
        self._db.add(document)
        try:
            await self._db.commit()
        except Exception:
            await asyncio.to_thread(path.unlink, True)
            raise
        await self._db.refresh(document)

        logger.info("Document uploaded: %s (student=%s)", document.id, student_id)
        return StudentDocumentResponse.model_validate(document)

    async def get_document_path(self, student_id: str, document_id: str) -> tuple[Path, str, str]:
        """Resolve a document to (path, file name, content type) for download."""
        document = await self._get_document(student_id, document_id)
        return Path(document.file_path), document.file_name, document.content_type

    async def delete_document(self, student_id: str, document_id: str) -> None:
        """Delete the row and the stored file."""
        document = await self._get_document(student_id, document_id)
        path = Path(document.file_path)
        await self._db.delete(document)
        await self._db.commit()

        await asyncio.to_thread(path.unlink, True)
        logger.info("Document deleted: %s", document_id)

    async def _ensure_student(self, student_id: str) -> None:
        stmt = select(Student.id).where(
            Student.id == student_id, Student.agency_id == self._agency_id
        )
        if (await self._db.execute(stmt)).scalar_one_or_none() is None:
            raise NotFoundError(f"Student {student_id} not found")

    async def _get_document(self, student_id: str, document_id: str) -> StudentDocument:
        stmt = select(StudentDocument).where(
            StudentDocument.id == document_id,
            StudentDocument.student_id == student_id,
            StudentDocument.agency_id == self._agency_id,
        )
        result = await self._db.execute(stmt)
        document = result.scalar_one_or_none()
        if not document:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return document


def write_file(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.write(content)
