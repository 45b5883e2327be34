# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for Student service and document storage."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from src.api.responses import UploadTooLargeError, read_upload
from src.core.config.settings import APISettings
from src.domains.student.documents import InvalidDocumentError, StudentDocumentService
from src.domains.student.service import DuplicatePassportError, StudentService
from src.infrastructure.database.models import ActivityLog, Student, StudentDocument
from src.models.student import StudentCreateRequest, StudentUpdateRequest
from tests.conftest import result_with

CREATED = datetime(2025, 2, 1, tzinfo=timezone.utc)
PDF = b"%PDF-1.7 offer letter"


def passport_lookup(found: bool) -> MagicMock:
    result = result_with()
    result.first.return_value = ("student-1",) if found else None
    return result


def added(mock_db, model):
    return [c.args[0] for c in mock_db.add.call_args_list if isinstance(c.args[0], model)]


@pytest.fixture
def student_service(mock_db, agency_id):
    """Create student service with mock database."""
    return StudentService(mock_db, agency_id)


@pytest.fixture
def new_student() -> StudentCreateRequest:
    return StudentCreateRequest(
        full_name="  Mei Chen ",
        passport_number=" E1234567 ",
        email="mei@example.com",
        visa_status="approved",
    )


class TestCreateStudent:
    """Tests for StudentService.create_student."""

    @pytest.mark.asyncio
    async def test_creates_student_and_logs_activity(
        self, student_service, mock_db, agency_id, new_student
    ):
        mock_db.execute.return_value = passport_lookup(found=False)

        async def assign_defaults():
            student = added(mock_db, Student)[0]
            student.id = "student-1"
            student.created_at = student.updated_at = CREATED

        mock_db.flush.side_effect = assign_defaults

        response = await student_service.create_student(new_student, user_id="user-1")

        [student] = added(mock_db, Student)
        assert student.agency_id == agency_id
        assert response.full_name == "Mei Chen"
        assert response.passport_number == "E1234567"
        [entry] = added(mock_db, ActivityLog)
        assert entry.entity_id == "student-1"
        assert entry.description == "Added student Mei Chen"
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_duplicate_passport_conflicts(self, student_service, mock_db, new_student):
        mock_db.execute.return_value = passport_lookup(found=True)

        with pytest.raises(DuplicatePassportError, match="E1234567") as exc_info:
            await student_service.create_student(new_student)

        assert exc_info.value.status_code == 409
        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_passport_conflicts(
        self, student_service, mock_db, new_student
    ):
        mock_db.execute.return_value = passport_lookup(found=False)
        mock_db.flush.side_effect = IntegrityError(
            "INSERT INTO students",
            {},
            Exception(
                'duplicate key value violates unique constraint "uq_students_agency_passport"'
            ),
        )

        with pytest.raises(DuplicatePassportError) as exc_info:
            await student_service.create_student(new_student)

        assert exc_info.value.status_code == 409
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_import_leaves_rollback_to_the_savepoint(
        self, student_service, mock_db, new_student
    ):
        mock_db.execute.return_value = passport_lookup(found=False)
        mock_db.flush.side_effect = IntegrityError(
            "INSERT INTO students", {}, Exception("uq_students_agency_passport")
        )

        with pytest.raises(DuplicatePassportError):
            await student_service.create_student(new_student, commit=False)

        mock_db.rollback.assert_not_called()

    @pytest.mark.asyncio
    async def test_other_integrity_errors_propagate(self, student_service, mock_db, new_student):
        mock_db.execute.return_value = passport_lookup(found=False)
        mock_db.flush.side_effect = IntegrityError(
            "INSERT INTO students", {}, Exception("violates foreign key constraint")
        )

        with pytest.raises(IntegrityError):
            await student_service.create_student(new_student)


class TestUpdateStudent:
    """Tests for StudentService.update_student."""

    @pytest.mark.asyncio
    async def test_concurrent_passport_change_conflicts(self, student_service, mock_db):
        student = MagicMock(id="student-1", passport_number="E1234567")
        student.full_name = "Mei Chen"
        mock_db.execute.side_effect = [result_with(student), passport_lookup(found=False)]
        mock_db.commit.side_effect = IntegrityError(
            "UPDATE students",
            {},
            Exception(
                'duplicate key value violates unique constraint "uq_students_agency_passport"'
            ),
        )

        with pytest.raises(DuplicatePassportError, match="N7654321") as exc_info:
            await student_service.update_student(
                "student-1", StudentUpdateRequest(passport_number="N7654321")
            )

        assert exc_info.value.status_code == 409
        mock_db.rollback.assert_awaited_once()
        mock_db.refresh.assert_not_called()


class TestStudentDocuments:
    """Tests for StudentDocumentService.upload_document."""

    @pytest.fixture
    def documents(self, mock_db, agency_id, tmp_path):
        mock_db.execute.return_value = result_with("student-1")
        settings = APISettings(upload_dir=str(tmp_path), max_upload_bytes=64)
        return StudentDocumentService(mock_db, agency_id, settings)

    @staticmethod
    def stored_files(tmp_path) -> list:
        return [p for p in tmp_path.rglob("*") if p.is_file()]

    @pytest.mark.asyncio
    async def test_stores_file_and_row(self, documents, mock_db, agency_id, tmp_path):
        async def fill_defaults(document):
            document.id = "doc-1"
            document.created_at = CREATED

        mock_db.refresh.side_effect = fill_defaults

        response = await documents.upload_document(
            "student-1", "offer_letter", "../../Offer Letter.pdf", "application/pdf", PDF, "user-1"
        )

        [path] = self.stored_files(tmp_path)
        assert path.read_bytes() == PDF
        assert path.parent == tmp_path / agency_id / "students" / "student-1"
        assert path.name.endswith("_Offer_Letter.pdf")
        [document] = added(mock_db, StudentDocument)
        assert document.file_size == len(PDF)
        assert response.file_name == "Offer_Letter.pdf"

    @pytest.mark.asyncio
    async def test_unsupported_type_is_rejected(self, documents, tmp_path):
        with pytest.raises(InvalidDocumentError, match="Unsupported file type"):
            await documents.upload_document(
                "student-1", "other", "notes.docx", "application/msword", b"doc"
            )

        assert self.stored_files(tmp_path) == []

    @pytest.mark.asyncio
    async def test_oversized_file_is_rejected(self, documents, tmp_path):
        with pytest.raises(InvalidDocumentError, match="too large"):
            await documents.upload_document(
                "student-1", "passport", "scan.png", "image/png", b"x" * 65
            )

        assert self.stored_files(tmp_path) == []

    @pytest.mark.asyncio
    async def test_failed_commit_removes_written_file(self, documents, mock_db, tmp_path):
        mock_db.commit.side_effect = IntegrityError("INSERT", {}, Exception("fk violation"))

        with pytest.raises(IntegrityError):
            await documents.upload_document(
                "student-1", "visa", "visa.jpg", "image/jpeg", b"jpeg bytes"
            )

        assert self.stored_files(tmp_path) == []


class TestReadUpload:
    """Tests for bounded upload reads."""

    @pytest.mark.asyncio
    async def test_reads_at_most_one_byte_past_limit(self):
        upload = MagicMock()
        upload.read = AsyncMock(return_value=b"x" * 11)

        with pytest.raises(UploadTooLargeError):
            await read_upload(upload, max_bytes=10)

        upload.read.assert_awaited_once_with(11)

    @pytest.mark.asyncio
    async def test_file_within_limit_is_returned(self):
        upload = MagicMock()
        upload.read = AsyncMock(return_value=b"x" * 10)

        assert await read_upload(upload, max_bytes=10) == b"x" * 10
