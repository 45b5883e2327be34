# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Agency API schemas."""

from datetime import datetime, time
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from src.utils.datetime import is_valid_timezone

Currency = Literal["AUD", "USD", "EUR", "GBP", "NZD", "CAD"]


class AgencyResponse(BaseModel):
    """Agency profile and settings."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    contact_email: str | None = None
    contact_phone: str | None = None
    currency: str
    timezone: str
    overdue_cutoff_time: time
    due_soon_threshold_days: int
    payment_instructions: str | None = None
    created_at: datetime
    updated_at: datetime


class AgencyUpdateRequest(BaseModel):
    """Partial update of the agency profile."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    contact_email: EmailStr | None = None
    contact_phone: str | None = Field(default=None, max_length=50)
    currency: Currency | None = None
    timezone: str | None = None
    payment_instructions: str | None = Field(default=None, max_length=2000)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str | None) -> str | None:
        if value is not None and not is_valid_timezone(value):
            raise ValueError(f"Unknown timezone: {value}")
        return value


class NotificationSettingsUpdateRequest(BaseModel):
    """Update of the overdue cutoff and due soon window."""

    overdue_cutoff_time: time | None = None
    due_soon_threshold_days: int | None = Field(default=None, ge=1, le=30)
