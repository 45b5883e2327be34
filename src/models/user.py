# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User and invitation API schemas."""

from datetime import datetime
from typing import Literal, Self

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

UserRole = Literal["agency_admin", "agency_user"]
UserStatus = Literal["active", "inactive", "suspended"]


class UserResponse(BaseModel):
    """Agency user profile."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    agency_id: str
    email: str
    full_name: str | None = None
    role: UserRole
    status: UserStatus
    email_notifications_enabled: bool = False
    last_login_at: datetime | None = None
    created_at: datetime


class UserListResponse(BaseModel):
    """Paginated list of users."""

    items: list[UserResponse]
    total: int
    limit: int
    offset: int


class UserProfileUpdateRequest(BaseModel):
    """Self-service profile update."""

    full_name: str = Field(min_length=1, max_length=255)


class UserRoleUpdateRequest(BaseModel):
    """Admin change of a user's role."""

    role: UserRole


class UserStatusUpdateRequest(BaseModel):
    """Admin change of a user's status."""

    status: UserStatus


class EmailNotificationsUpdateRequest(BaseModel):
    """Opt in or out of notification emails."""

    enabled: bool


class InvitationCreateRequest(BaseModel):
    """Invite a new user to the agency."""

    email: EmailStr
    role: UserRole = "agency_user"


class InvitationResponse(BaseModel):
    """Invitation as shown to agency admins."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    role: UserRole
    invited_by: str | None = None
    expires_at: datetime
    used_at: datetime | None = None
    created_at: datetime


class InvitationListResponse(BaseModel):
    """Invitations of an agency."""

    items: list[InvitationResponse]
    total: int


class InvitationAcceptRequest(BaseModel):
    """Accept an invitation and create the account."""

    token: str = Field(min_length=1)
    full_name: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=8, max_length=128)


class PasswordChangeRequest(BaseModel):
    """Change the caller's own password."""

    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=128)
    confirm_password: str

    @model_validator(mode="after")
    def passwords_match(self) -> Self:
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self
