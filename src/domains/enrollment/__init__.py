# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment domain package.

Students enrolled in programs at college branches. Payment plans hang off
enrollments.
"""

from src.domains.enrollment.service import (
    BranchNotFoundError,
    EnrollmentNotFoundError,
    EnrollmentService,
    EnrollmentServiceError,
    StudentNotFoundError,
)

__all__ = [
    "EnrollmentService",
    "EnrollmentServiceError",
    "EnrollmentNotFoundError",
    "StudentNotFoundError",
    "BranchNotFoundError",
]
