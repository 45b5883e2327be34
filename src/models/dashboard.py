# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dashboard widget schemas."""

from datetime import date
from typing import Literal

from pydantic import BaseModel, Field

from src.models.common import Money

Trend = Literal["up", "down", "neutral"]
CashFlowGrouping = Literal["day", "week", "month"]
CommissionPeriod = Literal["all", "year", "quarter", "month"]


class KPIMetric(BaseModel):
    """Single KPI with its month-over-month trend."""

    value: Money
    previous: Money
    trend: Trend


class DashboardKPIs(BaseModel):
    """Headline KPIs."""

    active_students: KPIMetric
    active_payment_plans: KPIMetric
    outstanding_amount: KPIMetric
    earned_commission: KPIMetric
    collection_rate: KPIMetric
    currency: str


class CountAndTotal(BaseModel):
    """Number of installments and their summed amount."""

    count: int = 0
    total_amount: Money = Field(default=0)


class PaymentStatusSummary(BaseModel):
    """Installments grouped by payment status."""

    pending: CountAndTotal
    due_soon: CountAndTotal
    overdue: CountAndTotal
    paid_this_month: CountAndTotal


class DueSoonCount(CountAndTotal):
    """Installments due within the agency's due soon window."""

    threshold_days: int


class OverduePayment(BaseModel):
    """Overdue installment with context."""

    installment_id: str
    payment_plan_id: str
    student_id: str
    student_name: str
    college_name: str
    amount: Money
    student_due_date: date
    days_overdue: int


class CashFlowInstallment(BaseModel):
    """Installment inside a cash flow bucket."""

    installment_id: str
    student_name: str
    amount: Money
    status: str
    due_date: date
    college_name: str | None = None


class CashFlowBucket(BaseModel):
    """Expected and received amounts for one period."""

    date_bucket: date
    paid_amount: Money
    expected_amount: Money
    installment_count: int
    installments: list[CashFlowInstallment] = Field(default_factory=list)


class CashFlowProjection(BaseModel):
    """Cash flow projection over a window."""

    days: int
    group_by: CashFlowGrouping
    buckets: list[CashFlowBucket]


class CollegeCommission(BaseModel):
    """Commission earned and outstanding for a college."""

    college_id: str
    college_name: str
    earned_commission: Money
    outstanding_commission: Money
    active_plans: int


class MonthlyCommission(BaseModel):
    """Commission earned in one calendar month.

    year_over_year_change is a percentage against the same month a year
    earlier and is None when that month has no paid installments.
    """

    month: str
    commission: Money
    year_over_year_change: Money | None = None
    is_peak: bool = False
    is_quiet: bool = False


class CountryCommission(BaseModel):
    """Commission earned from students of one nationality."""

    country: str
    commission: Money
    percentage_share: Money
    trend: Trend
