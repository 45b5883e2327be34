# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Authentication API schemas."""

from pydantic import BaseModel, EmailStr, Field

from src.models.user import UserResponse


class LoginRequest(BaseModel):
    """Email and password login."""

    email: EmailStr
    password: str = Field(min_length=1)


class RefreshTokenRequest(BaseModel):
    """Exchange a refresh token for a new token pair."""

    refresh_token: str = Field(min_length=1)


class TokenResponse(BaseModel):
    """Issued token pair."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_expires_in: int


class LoginResponse(TokenResponse):
    """Token pair plus the signed-in user."""

    user: UserResponse
