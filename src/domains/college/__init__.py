# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""College registry domain.

Exports:
    CollegeService: Colleges, branches, contacts and notes.
"""

from src.domains.college.service import CollegeService

__all__ = ["CollegeService"]
