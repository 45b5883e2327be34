# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the commission and payment plan reports."""

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from src.domains.reports.service import ReportService, contract_status
from src.infrastructure.database.models import ActivityLog
from src.models.report import CommissionReportRequest
from tests.conftest import result_with

REQUEST = CommissionReportRequest(date_from=date(2020, 1, 1), date_to=date(2020, 12, 31))


def make_installment(plan, amount, due, status="pending", paid=None, commission=True):
    installment = MagicMock()
    installment.payment_plan = plan
    installment.payment_plan_id = plan.id
    installment.amount = Decimal(amount)
    installment.student_due_date = due
    installment.status = status
    installment.paid_amount = Decimal(paid) if paid else None
    installment.paid_date = due if paid else None
    installment.generates_commission = commission
    return installment


@pytest.fixture
def branch() -> MagicMock:
    branch = MagicMock()
    branch.id = "branch-1"
    branch.name = "City Campus"
    branch.city = "Brisbane"
    branch.effective_commission_rate_percent = Decimal("15")
    branch.college.id = "college-1"
    branch.college.name = "Harbour College"
    branch.college.contract_expiration_date = None
    return branch


@pytest.fixture
def plan(branch) -> MagicMock:
    plan = MagicMock()
    plan.id = "plan-1"
    plan.status = "active"
    plan.total_amount = Decimal("2700.00")
    plan.expected_commission = Decimal("375.00")
    plan.enrollment.branch = branch
    plan.enrollment.branch_id = branch.id
    plan.enrollment.student_id = "student-1"
    plan.enrollment.student.id = "student-1"
    plan.enrollment.student.full_name = "Jane Doe"
    plan.installments = [
        make_installment(plan, "1000", date(2020, 3, 1), "paid", paid="1000"),
        make_installment(plan, "1000", date(2020, 6, 1), "overdue"),
        make_installment(plan, "500", date(2020, 9, 1), "cancelled"),
        make_installment(plan, "200", date(2020, 2, 1), "paid", paid="200", commission=False),
    ]
    return plan


@pytest.fixture
def service(mock_db, agency_id, sample_agency, plan) -> ReportService:
    mock_db.get.return_value = sample_agency
    mock_db.execute.return_value = result_with(scalars=plan.installments)
    return ReportService(mock_db, agency_id)


class TestContractStatus:
    """Tests for contract_status."""

    @pytest.mark.parametrize(
        ("expiration", "expected"),
        [
            (None, (None, None)),
            (date(2025, 3, 9), (-1, "expired")),
            (date(2025, 3, 10), (0, "expiring_soon")),
            (date(2025, 4, 9), (30, "expiring_soon")),
            (date(2025, 4, 10), (31, "active")),
        ],
    )
    def test_thresholds(self, expiration, expected) -> None:
        assert contract_status(expiration, date(2025, 3, 10)) == expected


class TestCommissionReport:
    """Tests for ReportService.get_commission_report."""

    @pytest.mark.asyncio
    async def test_branch_totals(self, service) -> None:
        report = await service.get_commission_report(REQUEST)

        [row] = report.rows
        assert row.college_name == "Harbour College"
        assert row.branch_city == "Brisbane"
        assert row.total_payment_plans == 1
        assert row.total_students == 1
        assert row.total_paid == Decimal("1200.00")
        assert row.earned_commission == Decimal("150.00")
        assert row.outstanding_commission == Decimal("150.00")
        assert report.summary.total_earned == Decimal("150.00")

    @pytest.mark.asyncio
    async def test_plan_drill_down(self, service) -> None:
        report = await service.get_commission_report(REQUEST)

        [detail] = report.rows[0].payment_plans
        assert detail.student_name == "Jane Doe"
        assert detail.total_paid == Decimal("1200.00")
        assert detail.earned_commission == Decimal("150.00")

    @pytest.mark.asyncio
    async def test_empty_range(self, service, mock_db) -> None:
        mock_db.execute.return_value = result_with(scalars=[])

        report = await service.get_commission_report(REQUEST)

        assert report.rows == []
        assert report.summary.total_paid == Decimal("0.00")


class TestCommissionExport:
    """Tests for ReportService.export_commission_report_csv."""

    @pytest.mark.asyncio
    async def test_csv_layout_and_activity(self, service, mock_db) -> None:
        export = await service.export_commission_report_csv(REQUEST, user_id="user-1")

        assert export.filename == "commissions_report_2020-01-01.csv"
        assert export.row_count == 1
        lines = export.content.split("\r\n")
        assert lines[0] == "\ufeffCommission Report by College"
        assert "TOTAL,,,1200.00,,150.00,150.00" in lines
        assert "Harbour College,City Campus,Jane Doe,plan-1,2700.00,1200.00,150.00" in lines

        [activity] = [
            c.args[0] for c in mock_db.add.call_args_list if isinstance(c.args[0], ActivityLog)
        ]
        assert activity.entity_type == "report"
        assert activity.metadata_["report_type"] == "commissions"
        mock_db.commit.assert_awaited_once()
