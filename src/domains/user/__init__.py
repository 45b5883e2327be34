# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User management domain.

Exports:
    UserService: Agency user management.
    InvitationService: Staff invitations and acceptance.
"""

from src.domains.user.invitation import InvitationService
from src.domains.user.service import UserService

__all__ = ["UserService", "InvitationService"]
