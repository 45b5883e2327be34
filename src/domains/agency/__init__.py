# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Agency settings domain."""

from src.domains.agency.service import AgencyService

__all__ = ["AgencyService"]
