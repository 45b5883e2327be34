# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Report schemas."""

from datetime import date
from typing import Literal, Self

from pydantic import BaseModel, Field, model_validator

from src.models.common import Money
from src.models.payment import PlanStatus

ContractStatus = Literal["active", "expiring_soon", "expired"]


class CommissionReportRequest(BaseModel):
    """Commission report filters."""

    date_from: date
    date_to: date
    city: str | None = None

    @model_validator(mode="after")
    def validate_range(self) -> Self:
        if self.date_from > self.date_to:
            raise ValueError("date_from must be before or equal to date_to")
        return self


class CommissionPlanDetail(BaseModel):
    """Payment plan drill-down inside a branch row."""

    payment_plan_id: str
    student_id: str
    student_name: str
    total_amount: Money
    expected_commission: Money
    total_paid: Money
    earned_commission: Money
    status: str


class CommissionBranchRow(BaseModel):
    """Commission totals for one branch."""

    college_id: str
    college_name: str
    branch_id: str
    branch_name: str
    branch_city: str | None = None
    commission_rate_percent: Money
    total_payment_plans: int
    total_students: int
    total_paid: Money
    earned_commission: Money
    outstanding_commission: Money
    payment_plans: list[CommissionPlanDetail] = Field(default_factory=list)


class CommissionReportSummary(BaseModel):
    """Totals across all rows."""

    total_paid: Money
    total_earned: Money
    total_outstanding: Money


class CommissionReportResponse(BaseModel):
    """Commission report by college branch."""

    date_from: date
    date_to: date
    city: str | None = None
    rows: list[CommissionBranchRow]
    summary: CommissionReportSummary


class PaymentPlansReportRequest(BaseModel):
    """Payment plans report filters.

    date_from and date_to filter on the plan start date.
    """

    status: list[PlanStatus] | None = None
    college_ids: list[str] | None = None
    branch_ids: list[str] | None = None
    student_ids: list[str] | None = None
    date_from: date | None = None
    date_to: date | None = None
    contract_expiration_from: date | None = None
    contract_expiration_to: date | None = None
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def validate_range(self) -> Self:
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must be before or equal to date_to")
        return self


class PaymentPlansExportRequest(PaymentPlansReportRequest):
    """Payment plans report filters plus the CSV columns to include."""

    columns: list[str] | None = None


class PaymentPlanReportRow(BaseModel):
    """One plan in the payment plans report."""

    payment_plan_id: str
    reference_number: str | None = None
    student_id: str
    student_name: str
    college_id: str
    college_name: str
    branch_id: str
    branch_name: str
    program_name: str
    currency: str
    plan_amount: Money
    commission_rate_percent: Money
    expected_commission: Money
    total_paid: Money
    total_remaining: Money
    earned_commission: Money
    installments_total: int
    installments_paid: int
    next_due_date: date | None = None
    status: str
    contract_expiration_date: date | None = None
    days_until_contract_expiration: int | None = None
    contract_status: ContractStatus | None = None
    start_date: date


class PaymentPlansReportResponse(BaseModel):
    """Payment plans report."""

    rows: list[PaymentPlanReportRow]
    total: int
    total_plan_amount: Money
    total_paid_amount: Money
    total_commission: Money
