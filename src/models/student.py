# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student, document, import and enrollment API schemas."""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from src.models.common import Money
from src.models.payment import InstallmentResponse

VisaStatus = Literal["in_process", "approved", "denied", "expired"]
DocumentType = Literal["offer_letter", "passport", "visa", "other"]
EnrollmentStatus = Literal["active", "completed", "cancelled"]


class StudentCreateRequest(BaseModel):
    """Create a student."""

    full_name: str = Field(min_length=1, max_length=255)
    passport_number: str = Field(min_length=1, max_length=50)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=50)
    date_of_birth: date | None = None
    nationality: str | None = Field(default=None, max_length=100)
    visa_status: VisaStatus | None = None
    assigned_user_id: str | None = None

    @field_validator("full_name", "passport_number")
    @classmethod
    def strip_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("date_of_birth")
    @classmethod
    def validate_birth_date(cls, value: date | None) -> date | None:
        if value is not None and value > date.today():
            raise ValueError("Date of birth cannot be in the future")
        return value


class StudentUpdateRequest(BaseModel):
    """Partial update of a student."""

    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    passport_number: str | None = Field(default=None, min_length=1, max_length=50)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=50)
    date_of_birth: date | None = None
    nationality: str | None = Field(default=None, max_length=100)
    visa_status: VisaStatus | None = None
    assigned_user_id: str | None = None


class StudentResponse(BaseModel):
    """Student details."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str
    passport_number: str
    email: str | None = None
    phone: str | None = None
    date_of_birth: date | None = None
    nationality: str | None = None
    visa_status: VisaStatus | None = None
    assigned_user_id: str | None = None
    created_at: datetime
    updated_at: datetime


class StudentListResponse(BaseModel):
    """Paginated list of students."""

    items: list[StudentResponse]
    total: int
    limit: int
    offset: int


class StudentDocumentResponse(BaseModel):
    """Uploaded student document."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    student_id: str
    document_type: DocumentType
    file_name: str
    file_size: int
    content_type: str
    uploaded_by: str | None = None
    created_at: datetime


class ImportRowError(BaseModel):
    """Validation failure for one CSV row."""

    row: int
    data: dict[str, Any]
    errors: list[str]


class IncompleteStudent(BaseModel):
    """Imported student that is missing contact details."""

    id: str
    full_name: str
    missing_fields: list[str]


class StudentImportResult(BaseModel):
    """Outcome of a CSV import."""

    total_rows: int
    successful: int
    failed: int
    errors: list[ImportRowError] = Field(default_factory=list)
    incomplete_students: list[IncompleteStudent] = Field(default_factory=list)


class PaymentHistoryPlan(BaseModel):
    """One payment plan in a student's history."""

    payment_plan_id: str
    college_name: str | None = None
    branch_name: str | None = None
    program_name: str | None = None
    currency: str
    total_amount: Money
    total_paid: Money
    status: str
    installments: list[InstallmentResponse]


class PaymentHistoryResponse(BaseModel):
    """All payment plans and installments of a student."""

    student_id: str
    student_name: str
    plans: list[PaymentHistoryPlan]
    total_paid: Money
    total_outstanding: Money


class EnrollmentCreateRequest(BaseModel):
    """Enroll a student in a program at a branch."""

    student_id: str
    branch_id: str
    program_name: str = Field(min_length=1, max_length=255)


class EnrollmentStatusUpdateRequest(BaseModel):
    """Change enrollment status."""

    status: EnrollmentStatus


class EnrollmentResponse(BaseModel):
    """Enrollment with college context."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    student_id: str
    branch_id: str
    program_name: str
    status: EnrollmentStatus
    offer_letter_url: str | None = None
    offer_letter_filename: str | None = None
    branch_name: str | None = None
    college_id: str | None = None
    college_name: str | None = None
    created_at: datetime
    updated_at: datetime


class EnrollmentListResponse(BaseModel):
    """Enrollments of a student or branch."""

    items: list[EnrollmentResponse]
    total: int
