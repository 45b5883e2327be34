# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the student CSV importer."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.domains.student.importer import (
    CSVImportError,
    StudentImporter,
    normalize_header,
    parse_csv,
)
from src.domains.student.service import DuplicatePassportError

CSV = (
    "\ufeffFull Name,Passport Number,Email,Phone,Visa Status\r\n"
    "Jane Doe,P100,jane@student.example.com,0400 000 000,approved\r\n"
    ",P101,,,\r\n"
    "Raj Patel,P102,,,\r\n"
    "Jane Again,P100,,,\r\n"
    "Taken Passport,P103,taken@student.example.com,0400 111 111,\r\n"
    ",,,,\r\n"
)


def created(request, user_id=None, commit=True) -> MagicMock:
    student = MagicMock()
    student.id = f"student-{request.passport_number}"
    student.full_name = request.full_name
    student.email = request.email
    student.phone = request.phone
    return student


@pytest.fixture
def importer(mock_db, agency_id) -> StudentImporter:
    mock_db.begin_nested = MagicMock()
    importer = StudentImporter(mock_db, agency_id)

    async def create_student(request, user_id=None, commit=True):
        if request.passport_number == "P103":
            raise DuplicatePassportError("A student with passport number P103 already exists")
        return created(request)

    importer._students.create_student = AsyncMock(side_effect=create_student)
    return importer


class TestParseCsv:
    """Tests for CSV parsing."""

    def test_headers_are_normalised(self) -> None:
        assert normalize_header("\ufeff  Passport  Number ") == "passport_number"

    def test_blank_rows_are_dropped(self) -> None:
        rows = parse_csv(CSV.encode())

        assert len(rows) == 5
        assert rows[0]["full_name"] == "Jane Doe"
        assert rows[0]["visa_status"] == "approved"

    def test_header_only_file_is_empty(self) -> None:
        with pytest.raises(CSVImportError, match="empty"):
            parse_csv(b"full_name,passport_number\n")

    def test_binary_content_is_rejected(self) -> None:
        with pytest.raises(CSVImportError, match="UTF-8"):
            parse_csv(b"\xff\xfe\x00\x81")


class TestImportCsv:
    """Tests for StudentImporter.import_csv."""

    @pytest.mark.asyncio
    async def test_imports_good_rows_and_reports_bad_ones(self, importer, mock_db) -> None:
        result = await importer.import_csv(CSV.encode(), "students.csv", user_id="user-1")

        assert result.total_rows == 5
        assert result.successful == 2
        assert result.failed == 3
        assert [e.row for e in result.errors] == [2, 4, 5]
        assert result.errors[0].errors[0].startswith("full_name:")
        assert result.errors[1].errors == ["passport_number: duplicated earlier in this file"]
        assert "P103" in result.errors[2].errors[0]
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_students_without_contacts_are_flagged(self, importer) -> None:
        result = await importer.import_csv(CSV.encode(), "students.csv")

        assert [(s.full_name, s.missing_fields) for s in result.incomplete_students] == [
            ("Raj Patel", ["email", "phone"])
        ]

    @pytest.mark.asyncio
    async def test_non_csv_upload_is_rejected(self, importer, mock_db) -> None:
        with pytest.raises(CSVImportError, match="CSV"):
            await importer.import_csv(b"data", "students.xlsx")

        mock_db.commit.assert_not_awaited()
