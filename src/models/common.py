# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Shared API schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

# Decimals serialize as JSON numbers
Money = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(v), return_type=float, when_used="json"),
]


class SuccessResponse(BaseModel):
    """Success envelope for endpoints that wrap their payload."""

    success: bool = True
    data: Any = None


class ErrorDetail(BaseModel):
    """Error body inside the error envelope."""

    code: str
    message: str
    details: Any = None


class ErrorResponse(BaseModel):
    """Error envelope returned by every failing endpoint."""

    success: bool = False
    error: ErrorDetail


class MessageResponse(BaseModel):
    """Simple acknowledgement."""

    message: str


class NoteCreateRequest(BaseModel):
    """Request to add a note to a college or student."""

    content: str = Field(min_length=1, max_length=2000)


class NoteUpdateRequest(BaseModel):
    """Request to edit a note."""

    content: str = Field(min_length=1, max_length=2000)


class NoteResponse(BaseModel):
    """Note attached to a college or student."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str | None = None
    content: str
    created_at: datetime
    updated_at: datetime
