# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student registry domain.

Exports:
    StudentService: Students, notes and payment history.
    StudentDocumentService: Document uploads.
    StudentImporter: CSV bulk import.
"""

from src.domains.student.documents import StudentDocumentService
from src.domains.student.importer import StudentImporter
from src.domains.student.service import StudentService

__all__ = ["StudentService", "StudentDocumentService", "StudentImporter"]
