# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background processing middleware for Pleeno."""

from src.infrastructure.background.middleware.agency import (
    AgencyContextMiddleware,
    get_current_agency,
    set_current_agency,
)

__all__ = [
    "AgencyContextMiddleware",
    "get_current_agency",
    "set_current_agency",
]
