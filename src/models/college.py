# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""College, branch and contact API schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from src.models.common import Money

GSTStatus = Literal["included", "excluded"]

RatePercent = Annotated[Decimal, Field(ge=0, le=100, max_digits=5, decimal_places=2)]


class CollegeCreateRequest(BaseModel):
    """Create a college."""

    name: str = Field(min_length=1, max_length=255)
    city: str | None = Field(default=None, max_length=120)
    country: str | None = Field(default=None, max_length=120)
    default_commission_rate_percent: RatePercent | None = None
    gst_status: GSTStatus = "included"
    contract_expiration_date: date | None = None
    contact_email: EmailStr | None = None


class CollegeUpdateRequest(BaseModel):
    """Partial update of a college."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    city: str | None = Field(default=None, max_length=120)
    country: str | None = Field(default=None, max_length=120)
    default_commission_rate_percent: RatePercent | None = None
    gst_status: GSTStatus | None = None
    contract_expiration_date: date | None = None
    contact_email: EmailStr | None = None


class CollegeResponse(BaseModel):
    """College details."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    city: str | None = None
    country: str | None = None
    default_commission_rate_percent: Money | None = None
    gst_status: GSTStatus
    contract_expiration_date: date | None = None
    contact_email: str | None = None
    branch_count: int = 0
    created_at: datetime
    updated_at: datetime


class CollegeListResponse(BaseModel):
    """Paginated list of colleges."""

    items: list[CollegeResponse]
    total: int
    limit: int
    offset: int


class BranchCreateRequest(BaseModel):
    """Create a branch. Omit the rate to inherit the college default."""

    name: str = Field(min_length=1, max_length=255)
    city: str | None = Field(default=None, max_length=120)
    commission_rate_percent: RatePercent | None = None


class BranchUpdateRequest(BaseModel):
    """Partial update of a branch."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    city: str | None = Field(default=None, max_length=120)
    commission_rate_percent: RatePercent | None = None


class BranchResponse(BaseModel):
    """Branch with its resolved commission rate."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    college_id: str
    name: str
    city: str | None = None
    commission_rate_percent: Money | None = None
    effective_commission_rate_percent: Money
    created_at: datetime
    updated_at: datetime


class ContactCreateRequest(BaseModel):
    """Add a college contact."""

    name: str = Field(min_length=1, max_length=255)
    role_department: str | None = Field(default=None, max_length=255)
    position_title: str | None = Field(default=None, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=50)


class ContactUpdateRequest(BaseModel):
    """Partial update of a college contact."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    role_department: str | None = Field(default=None, max_length=255)
    position_title: str | None = Field(default=None, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=50)


class ContactResponse(BaseModel):
    """College contact."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    college_id: str
    name: str
    role_department: str | None = None
    position_title: str | None = None
    email: str | None = None
    phone: str | None = None
    created_at: datetime
