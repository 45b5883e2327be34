# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for Enrollment service."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from src.domains.enrollment.service import (
    BranchNotFoundError,
    EnrollmentNotFoundError,
    EnrollmentService,
    StudentNotFoundError,
)
from src.domains.student.documents import InvalidDocumentError
from src.infrastructure.database.models import ActivityLog, Enrollment
from tests.conftest import result_with

CREATED = datetime(2025, 2, 1, tzinfo=timezone.utc)


@pytest.fixture
def enrollment_service(mock_db, agency_id):
    """Create enrollment service with mock database."""
    return EnrollmentService(mock_db, agency_id)


@pytest.fixture
def sample_student():
    student = MagicMock()
    student.id = "student-1"
    student.full_name = "Mei Chen"
    return student


@pytest.fixture
def sample_branch():
    branch = MagicMock()
    branch.id = "branch-1"
    branch.name = "Brisbane CBD"
    branch.college.id = "college-1"
    branch.college.name = "Riverside College"
    return branch


def make_enrollment(branch, **overrides):
    enrollment = MagicMock()
    enrollment.id = "enrollment-1"
    enrollment.student_id = "student-1"
    enrollment.branch_id = branch.id
    enrollment.branch = branch
    enrollment.program_name = "Diploma of Nursing"
    enrollment.status = "active"
    enrollment.offer_letter_url = None
    enrollment.offer_letter_filename = None
    enrollment.created_at = CREATED
    enrollment.updated_at = CREATED
    for key, value in overrides.items():
        setattr(enrollment, key, value)
    return enrollment


def added(mock_db, model):
    return [c.args[0] for c in mock_db.add.call_args_list if isinstance(c.args[0], model)]


class TestCreateEnrollment:
    """Tests for EnrollmentService.create_enrollment."""

    @pytest.mark.asyncio
    async def test_creates_enrollment(
        self, enrollment_service, mock_db, agency_id, sample_student, sample_branch
    ):
        stored = make_enrollment(sample_branch)
        mock_db.execute.side_effect = [
            result_with(sample_student),
            result_with(sample_branch),
            result_with(None),
            result_with(stored),
        ]

        async def assign_id():
            added(mock_db, Enrollment)[0].id = "enrollment-1"

        mock_db.flush.side_effect = assign_id

        response, created = await enrollment_service.create_enrollment(
            "student-1", "branch-1", "  Diploma of Nursing ", user_id="user-1"
        )

        [enrollment] = added(mock_db, Enrollment)
        assert created is True
        assert enrollment.agency_id == agency_id
        assert enrollment.program_name == "Diploma of Nursing"
        assert enrollment.status == "active"
        assert response.college_name == "Riverside College"

        [entry] = added(mock_db, ActivityLog)
        assert entry.entity_id == "enrollment-1"
        assert entry.description == (
            "Enrolled Mei Chen in Diploma of Nursing at Brisbane CBD"
        )
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_existing_enrollment_is_returned(
        self, enrollment_service, mock_db, sample_student, sample_branch
    ):
        mock_db.execute.side_effect = [
            result_with(sample_student),
            result_with(sample_branch),
            result_with(make_enrollment(sample_branch)),
        ]

        response, created = await enrollment_service.create_enrollment(
            "student-1", "branch-1", "Diploma of Nursing"
        )

        assert created is False
        assert response.id == "enrollment-1"
        mock_db.add.assert_not_called()
        mock_db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_student(self, enrollment_service, mock_db):
        mock_db.execute.return_value = result_with(None)

        with pytest.raises(StudentNotFoundError):
            await enrollment_service.create_enrollment("missing", "branch-1", "Diploma")

    @pytest.mark.asyncio
    async def test_unknown_branch(self, enrollment_service, mock_db, sample_student):
        mock_db.execute.side_effect = [result_with(sample_student), result_with(None)]

        with pytest.raises(BranchNotFoundError):
            await enrollment_service.create_enrollment("student-1", "missing", "Diploma")


class TestUpdateStatus:
    """Tests for EnrollmentService.update_status."""

    @pytest.mark.asyncio
    async def test_status_change_is_logged(self, enrollment_service, mock_db, sample_branch):
        enrollment = make_enrollment(sample_branch)
        mock_db.execute.return_value = result_with(enrollment)

        response = await enrollment_service.update_status(
            "enrollment-1", "completed", user_id="user-1"
        )

        assert response.status == "completed"
        [entry] = added(mock_db, ActivityLog)
        assert entry.metadata_ == {"previous_status": "active", "status": "completed"}

    @pytest.mark.asyncio
    async def test_missing_enrollment(self, enrollment_service, mock_db):
        mock_db.execute.return_value = result_with(None)

        with pytest.raises(EnrollmentNotFoundError):
            await enrollment_service.update_status("missing", "cancelled")


class TestOfferLetter:
    """Tests for EnrollmentService.attach_offer_letter."""

    @pytest.mark.asyncio
    async def test_stores_file_under_agency(
        self, enrollment_service, mock_db, agency_id, sample_branch, tmp_path
    ):
        enrollment = make_enrollment(sample_branch)
        mock_db.execute.return_value = result_with(enrollment)

        response = await enrollment_service.attach_offer_letter(
            "enrollment-1",
            upload_dir=str(tmp_path),
            max_bytes=1024,
            file_name="../../offer letter.pdf",
            content_type="application/pdf",
            content=b"%PDF-1.4",
        )

        expected = tmp_path / agency_id / "enrollments" / "enrollment-1" / "offer_letter.pdf"
        assert expected.read_bytes() == b"%PDF-1.4"
        assert response.offer_letter_filename == "offer_letter.pdf"
        assert response.offer_letter_url == str(expected)

    @pytest.mark.parametrize(
        ("content_type", "content"),
        [("text/plain", b"hello"), ("application/pdf", b""), ("image/png", b"x" * 2048)],
    )
    @pytest.mark.asyncio
    async def test_rejects_invalid_upload(
        self, enrollment_service, mock_db, sample_branch, tmp_path, content_type, content
    ):
        mock_db.execute.return_value = result_with(make_enrollment(sample_branch))

        with pytest.raises(InvalidDocumentError):
            await enrollment_service.attach_offer_letter(
                "enrollment-1", str(tmp_path), 1024, "offer.pdf", content_type, content
            )

        mock_db.commit.assert_not_awaited()
