# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Payment plan, installment and payment recording API schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.models.common import Money

PaymentFrequency = Literal["monthly", "quarterly", "custom"]
PlanStatus = Literal["active", "completed", "cancelled"]
InstallmentStatus = Literal[
    "draft", "pending", "due_soon", "overdue", "paid", "partial", "cancelled"
]

Amount = Annotated[Decimal, Field(ge=0, max_digits=12, decimal_places=2)]
PositiveAmount = Annotated[Decimal, Field(gt=0, max_digits=12, decimal_places=2)]


class InstallmentScheduleRequest(BaseModel):
    """Inputs of the installment wizard.

    commission_rate is a fraction between 0 and 1. Plans store it as a
    percentage.
    """

    total_course_value: PositiveAmount
    commission_rate: Decimal = Field(ge=0, le=1)
    initial_payment_amount: Amount = Decimal("0")
    initial_payment_due_date: date | None = None
    initial_payment_paid: bool = False
    number_of_installments: int = Field(ge=1, le=24)
    payment_frequency: PaymentFrequency
    first_college_due_date: date | None = None
    student_lead_time_days: int = Field(default=0, ge=0)
    materials_cost: Amount = Decimal("0")
    admin_fees: Amount = Decimal("0")
    other_fees: Amount = Decimal("0")
    gst_inclusive: bool = True

    @model_validator(mode="after")
    def validate_schedule_inputs(self) -> Self:
        if self.initial_payment_amount > 0 and self.initial_payment_due_date is None:
            raise ValueError("Initial payment due date is required when amount is specified")
        if self.payment_frequency != "custom" and self.first_college_due_date is None:
            raise ValueError("First college due date is required for monthly or quarterly plans")
        fees = self.materials_cost + self.admin_fees + self.other_fees
        if fees >= self.total_course_value:
            raise ValueError("Total fees cannot exceed or equal total course value")
        return self


class ScheduledInstallment(BaseModel):
    """Installment produced by the schedule generator."""

    installment_number: int
    amount: Money
    student_due_date: date | None = None
    college_due_date: date | None = None
    is_initial_payment: bool = False
    generates_commission: bool = True
    status: InstallmentStatus = "draft"


class InstallmentScheduleSummary(BaseModel):
    """Totals of a generated schedule."""

    total_installments: int
    amount_per_installment: Money
    initial_payment_amount: Money
    commissionable_value: Money
    expected_commission: Money
    total_fees: Money


class InstallmentScheduleResponse(BaseModel):
    """Generated installment preview."""

    installments: list[ScheduledInstallment]
    summary: InstallmentScheduleSummary


class InstallmentInput(BaseModel):
    """Installment supplied explicitly, e.g. for custom frequency plans."""

    installment_number: int = Field(ge=0)
    amount: PositiveAmount
    student_due_date: date
    college_due_date: date
    is_initial_payment: bool = False
    generates_commission: bool = True


class PaymentPlanCreateRequest(InstallmentScheduleRequest):
    """Create a payment plan for an enrollment.

    When installments are omitted they are generated from the wizard
    inputs. Explicit installments must sum to total_course_value. A
    missing commission_rate falls back to the branch rate.
    """

    enrollment_id: str
    commission_rate: Decimal | None = Field(default=None, ge=0, le=1)
    start_date: date | None = None
    notes: str | None = Field(default=None, max_length=2000)
    reference_number: str | None = Field(default=None, max_length=100)
    installments: list[InstallmentInput] | None = None

    @model_validator(mode="after")
    def validate_installments(self) -> Self:
        if self.payment_frequency == "custom" and not self.installments:
            raise ValueError("Installments are required for custom frequency plans")
        if self.installments:
            total = sum((i.amount for i in self.installments), Decimal("0"))
            if abs(total - self.total_course_value) >= Decimal("0.01"):
                raise ValueError("Installment amounts must sum to total course value")
        return self


class PaymentPlanUpdateRequest(BaseModel):
    """Partial update of a payment plan."""

    notes: str | None = Field(default=None, max_length=2000)
    reference_number: str | None = Field(default=None, max_length=100)
    status: PlanStatus | None = None


class InstallmentResponse(BaseModel):
    """Installment details."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    payment_plan_id: str
    installment_number: int
    is_initial_payment: bool
    amount: Money
    generates_commission: bool
    student_due_date: date | None = None
    college_due_date: date | None = None
    status: InstallmentStatus
    paid_date: date | None = None
    paid_amount: Money | None = None
    payment_notes: str | None = None


class PaymentPlanResponse(BaseModel):
    """Payment plan with its installments."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    enrollment_id: str
    total_amount: Money
    currency: str
    commission_rate_percent: Money
    expected_commission: Money | None = None
    earned_commission: Money
    start_date: date
    status: PlanStatus
    notes: str | None = None
    reference_number: str | None = None
    total_course_value: Money | None = None
    materials_cost: Money
    admin_fees: Money
    other_fees: Money
    gst_inclusive: bool
    number_of_installments: int | None = None
    payment_frequency: PaymentFrequency | None = None
    student_id: str | None = None
    student_name: str | None = None
    college_name: str | None = None
    branch_name: str | None = None
    installments: list[InstallmentResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class PaymentPlanSummary(BaseModel):
    """Payment plan row in a list."""

    id: str
    enrollment_id: str
    student_id: str | None = None
    student_name: str | None = None
    college_name: str | None = None
    branch_name: str | None = None
    total_amount: Money
    currency: str
    expected_commission: Money | None = None
    earned_commission: Money
    status: PlanStatus
    reference_number: str | None = None
    next_due_date: date | None = None
    total_installments: int = 0
    installments_paid_count: int = 0
    created_at: datetime


class PaymentPlanListResponse(BaseModel):
    """Paginated list of payment plans."""

    items: list[PaymentPlanSummary]
    total: int
    limit: int
    offset: int


class RecordPaymentRequest(BaseModel):
    """Record a payment against an installment."""

    paid_date: date
    paid_amount: PositiveAmount
    notes: str | None = Field(default=None, max_length=500)


class PaymentPlanProgress(BaseModel):
    """Plan totals after a payment is recorded."""

    id: str
    status: PlanStatus
    total_amount: Money
    total_paid: Money
    earned_commission: Money
    installments_paid: int
    installments_total: int


class RecordPaymentResponse(BaseModel):
    """Updated installment and its plan."""

    installment: InstallmentResponse
    payment_plan: PaymentPlanProgress
