# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bulk student import from CSV.

Headers are normalised to snake_case so "Full Name" and "full_name" are
the same column. Each row is validated on its own; bad rows are reported
with their row number and the good ones are imported.

Example:
    >>> importer = StudentImporter(db, agency_id)
    >>> result = await importer.import_csv(file_bytes, "students.csv", user_id)
    >>> result.failed
    0
"""

import csv
import io
import logging
import re
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import ValidationError
from src.domains.student.service import DuplicatePassportError, StudentService
from src.models.student import (
    ImportRowError,
    IncompleteStudent,
    StudentCreateRequest,
    StudentImportResult,
)

logger = logging.getLogger(__name__)

IMPORT_FIELDS = (
    "full_name",
    "passport_number",
    "email",
    "phone",
    "visa_status",
    "date_of_birth",
    "nationality",
)
CONTACT_FIELDS = ("email", "phone")

_WHITESPACE = re.compile(r"\s+")


class CSVImportError(ValidationError):
    """Raised when the upload is not a readable, non-empty CSV file."""

    pass


def normalize_header(header: str) -> str:
    """Lowercase, trim and snake_case a header cell."""
    return _WHITESPACE.sub("_", header.lstrip("\ufeff").strip().lower())


def parse_csv(content: bytes) -> list[dict[str, str]]:
    """Decode and parse CSV content into rows keyed by normalised header.

    Raises:
        CSVImportError: If the content is not UTF-8 text or has no data rows.
    """
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise CSVImportError("File is not valid UTF-8 text") from e

    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise CSVImportError("CSV file is empty. Please provide data to import.")
    reader.fieldnames = [normalize_header(h) for h in reader.fieldnames]

    rows = []
    for row in reader:
        cleaned = {
            key: (value or "").strip()
            for key, value in row.items()
            if key is not None
        }
        if any(cleaned.values()):
            rows.append(cleaned)

    if not rows:
        raise CSVImportError("CSV file is empty. Please provide data to import.")
    return rows


def _row_payload(row: dict[str, str]) -> dict[str, Any]:
    return {field: row.get(field) or None for field in IMPORT_FIELDS}


def _error_messages(error: PydanticValidationError) -> list[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "row"
        messages.append(f"{location}: {item['msg']}")
    return messages


class StudentImporter:
    """Imports students row by row inside savepoints.

    Attributes:
        _db: Async database session.
        _students: Student service used to create each row.
    """

    def __init__(self, db: AsyncSession, agency_id: str) -> None:
        self._db = db
        self._agency_id = agency_id
        self._students = StudentService(db, agency_id)

    async def import_csv(
        self,
        content: bytes,
        filename: str | None,
        user_id: str | None = None,
    ) -> StudentImportResult:
        """Import students from an uploaded CSV file.

        Args:
            content: Raw file bytes.
            filename: Uploaded file name, must end in .csv.
            user_id: Importing user.

        Returns:
            Counts, per-row errors and students missing contact details.

        Raises:
            CSVImportError: If the file is not a CSV or has no rows.
        """
        if not filename or not filename.lower().endswith(".csv"):
            raise CSVImportError("Invalid file type. Please upload a CSV file.")

        rows = parse_csv(content)
        errors: list[ImportRowError] = []
        incomplete: list[IncompleteStudent] = []
        seen_passports: set[str] = set()
        successful = 0

        for index, row in enumerate(rows, start=1):
            payload = _row_payload(row)

            try:
                request = StudentCreateRequest(**payload)
            except PydanticValidationError as e:
                errors.append(ImportRowError(row=index, data=row, errors=_error_messages(e)))
                continue

            if request.passport_number in seen_passports:
                errors.append(
                    ImportRowError(
                        row=index,
                        data=row,
                        errors=["passport_number: duplicated earlier in this file"],
                    )
                )
                continue

            try:
                async with self._db.begin_nested():
                    student = await self._students.create_student(
                        request, user_id=user_id, commit=False
                    )
            except DuplicatePassportError as e:
                errors.append(ImportRowError(row=index, data=row, errors=[e.message]))
                continue

            seen_passports.add(request.passport_number)
            successful += 1

            missing = [field for field in CONTACT_FIELDS if not getattr(student, field)]
            if missing:
                incomplete.append(
                    IncompleteStudent(
                        id=student.id,
                        full_name=student.full_name,
                        missing_fields=missing,
                    )
                )

        await self._db.commit()

        logger.info(
            "Student import finished: %d rows, %d imported, %d failed (agency=%s)",
            len(rows),
            successful,
            len(errors),
            self._agency_id,
        )
        return StudentImportResult(
            total_rows=len(rows),
            successful=successful,
            failed=len(errors),
            errors=errors,
            incomplete_students=incomplete,
        )
