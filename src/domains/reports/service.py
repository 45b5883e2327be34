# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Agency reports.

This module provides the ReportService class for:
- The commission report by college branch, with plan drill-down
- The payment plans report with paid progress and contract status
- CSV exports of both, recorded in the activity log

Commission figures use the branch's effective rate:
- earned: paid_amount x rate over paid, commission-generating installments
- outstanding: amount x rate over unpaid, past-due, commission-generating
  installments that are neither cancelled nor draft

Example:
    >>> service = ReportService(db, agency_id)
    >>> report = await service.get_commission_report(request)
    >>> export = await service.export_commission_report_csv(request, user_id)
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.domains.activity.service import ActivityService
from src.infrastructure.database.models import (
    Agency,
    Branch,
    College,
    Enrollment,
    Installment,
    PaymentPlan,
)
from src.models.report import (
    CommissionBranchRow,
    CommissionPlanDetail,
    CommissionReportRequest,
    CommissionReportResponse,
    CommissionReportSummary,
    PaymentPlanReportRow,
    PaymentPlansReportRequest,
    PaymentPlansReportResponse,
)
from src.utils.csv_export import write_csv
from src.utils.datetime import agency_now, agency_today
from src.utils.money import round_money

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
EXPIRING_SOON_DAYS = 30
NON_OUTSTANDING_STATUSES = ("cancelled", "draft")

PAYMENT_PLAN_COLUMNS: list[tuple[str, str]] = [
    ("reference_number", "Reference Number"),
    ("student_name", "Student Name"),
    ("college_name", "College"),
    ("branch_name", "Branch"),
    ("program_name", "Program"),
    ("plan_amount", "Plan Amount"),
    ("currency", "Currency"),
    ("commission_rate_percent", "Commission Rate (%)"),
    ("expected_commission", "Expected Commission"),
    ("total_paid", "Total Paid"),
    ("total_remaining", "Total Remaining"),
    ("earned_commission", "Earned Commission"),
    ("status", "Status"),
    ("contract_expiration_date", "Contract Expiration Date"),
    ("days_until_contract_expiration", "Days Until Expiration"),
    ("contract_status", "Contract Status"),
    ("start_date", "Start Date"),
]


@dataclass
class CsvExport:
    """A generated CSV file."""

    filename: str
    content: str
    row_count: int


def contract_status(expiration: date | None, today: date) -> tuple[int | None, str | None]:
    """Days until a college contract expires and its status.

    Returns:
        (days_until_expiration, status), both None without a date. Status
        is expired when the date has passed and expiring_soon within 30 days.
    """
    if expiration is None:
        return None, None
    days = (expiration - today).days
    if days < 0:
        return days, "expired"
    if days <= EXPIRING_SOON_DAYS:
        return days, "expiring_soon"
    return days, "active"


def _paid_total(installments: list[Installment]) -> Decimal:
    return round_money(
        sum(
            (i.paid_amount or Decimal("0") for i in installments if i.paid_date is not None),
            Decimal("0"),
        )
    )


class ReportService:
    """Service for agency reports and their CSV exports.

    Attributes:
        _db: Async database session.
        _agency_id: Caller's agency.
    """

    def __init__(self, db: AsyncSession, agency_id: str) -> None:
        self._db = db
        self._agency_id = agency_id
        self._activity = ActivityService(db, agency_id)

    async def _agency(self) -> Agency | None:
        return await self._db.get(Agency, self._agency_id)

    # =========================================================================
    # Commission report
    # =========================================================================

    async def get_commission_report(
        self,
        request: CommissionReportRequest,
    ) -> CommissionReportResponse:
        """Commission earned and outstanding per college branch.

        Only installments with a student due date inside the range count.
        The drill-down lists each plan with installments in the range.

        Args:
            request: Date range and optional branch city.

        Returns:
            One row per branch ordered by college and branch name, plus totals.
        """
        agency = await self._agency()
        today = agency_today(agency.timezone if agency else None)

        stmt = (
            select(Installment)
            .join(PaymentPlan, PaymentPlan.id == Installment.payment_plan_id)
            .join(Enrollment, Enrollment.id == PaymentPlan.enrollment_id)
            .join(Branch, Branch.id == Enrollment.branch_id)
            .join(College, College.id == Branch.college_id)
            .where(
                Installment.agency_id == self._agency_id,
                Installment.student_due_date >= request.date_from,
                Installment.student_due_date <= request.date_to,
            )
            .options(
                selectinload(Installment.payment_plan).selectinload(PaymentPlan.installments),
                selectinload(Installment.payment_plan)
                .selectinload(PaymentPlan.enrollment)
                .selectinload(Enrollment.student),
                selectinload(Installment.payment_plan)
                .selectinload(PaymentPlan.enrollment)
                .selectinload(Enrollment.branch)
                .selectinload(Branch.college),
            )
            .order_by(College.name, Branch.name)
        )
        if request.city:
            stmt = stmt.where(Branch.city == request.city)

        installments = list((await self._db.execute(stmt)).scalars().all())

        by_branch: dict[str, list[Installment]] = defaultdict(list)
        for installment in installments:
            by_branch[installment.payment_plan.enrollment.branch_id].append(installment)

        rows = [self._branch_row(items, today) for items in by_branch.values()]
        rows.sort(key=lambda r: (r.college_name, r.branch_name))

        summary = CommissionReportSummary(
            total_paid=round_money(sum((r.total_paid for r in rows), Decimal("0"))),
            total_earned=round_money(sum((r.earned_commission for r in rows), Decimal("0"))),
            total_outstanding=round_money(
                sum((r.outstanding_commission for r in rows), Decimal("0"))
            ),
        )

        logger.info(
            "Commission report for agency %s: %d branches, %s to %s",
            self._agency_id,
            len(rows),
            request.date_from,
            request.date_to,
        )
        return CommissionReportResponse(
            date_from=request.date_from,
            date_to=request.date_to,
            city=request.city,
            rows=rows,
            summary=summary,
        )

    def _branch_row(self, installments: list[Installment], today: date) -> CommissionBranchRow:
        enrollment = installments[0].payment_plan.enrollment
        branch = enrollment.branch
        college = branch.college
        rate = branch.effective_commission_rate_percent / HUNDRED

        total_paid = Decimal("0")
        earned = Decimal("0")
        outstanding = Decimal("0")
        plans: dict[str, PaymentPlan] = {}

        for installment in installments:
            plans[installment.payment_plan_id] = installment.payment_plan
            if installment.paid_date is not None:
                paid = installment.paid_amount or Decimal("0")
                total_paid += paid
                if installment.generates_commission:
                    earned += paid * rate
            elif (
                installment.generates_commission
                and installment.student_due_date < today
                and installment.status not in NON_OUTSTANDING_STATUSES
            ):
                outstanding += installment.amount * rate

        details = [self._plan_detail(plan, rate) for plan in plans.values()]
        details.sort(key=lambda d: d.student_name)

        return CommissionBranchRow(
            college_id=college.id,
            college_name=college.name,
            branch_id=branch.id,
            branch_name=branch.name,
            branch_city=branch.city,
            commission_rate_percent=branch.effective_commission_rate_percent,
            total_payment_plans=len(plans),
            total_students=len({p.enrollment.student_id for p in plans.values()}),
            total_paid=round_money(total_paid),
            earned_commission=round_money(earned),
            outstanding_commission=round_money(outstanding),
            payment_plans=details,
        )

    @staticmethod
    def _plan_detail(plan: PaymentPlan, rate: Decimal) -> CommissionPlanDetail:
        student = plan.enrollment.student
        earned = sum(
            (
                (i.paid_amount or Decimal("0")) * rate
                for i in plan.installments
                if i.paid_date is not None and i.generates_commission
            ),
            Decimal("0"),
        )
        return CommissionPlanDetail(
            payment_plan_id=plan.id,
            student_id=student.id,
            student_name=student.full_name,
            total_amount=plan.total_amount,
            expected_commission=plan.expected_commission or Decimal("0"),
            total_paid=_paid_total(plan.installments),
            earned_commission=round_money(earned),
            status=plan.status,
        )

    async def export_commission_report_csv(
        self,
        request: CommissionReportRequest,
        user_id: str | None = None,
    ) -> CsvExport:
        """Export the commission report as an Excel friendly CSV.

        Layout: a header block, the branch table, a TOTAL row, then the
        student payment plan details.
        """
        report = await self.get_commission_report(request)

        rows: list[list[Any]] = [
            ["Commission Report by College"],
            ["Date Range:", f"{request.date_from.isoformat()} to {request.date_to.isoformat()}"],
        ]
        if request.city:
            rows.append(["City Filter:", request.city])
        rows.append([])
        rows.append(
            [
                "College",
                "Branch",
                "City",
                "Total Paid",
                "Rate (%)",
                "Earned Commission",
                "Outstanding Commission",
            ]
        )
        for row in report.rows:
            rows.append(
                [
                    row.college_name,
                    row.branch_name,
                    row.branch_city,
                    row.total_paid,
                    row.commission_rate_percent,
                    row.earned_commission,
                    row.outstanding_commission,
                ]
            )

        rows.append([])
        rows.append(
            [
                "TOTAL",
                "",
                "",
                report.summary.total_paid,
                "",
                report.summary.total_earned,
                report.summary.total_outstanding,
            ]
        )

        rows.append([])
        rows.append([])
        rows.append(["Student Payment Plan Details"])
        rows.append(
            [
                "College",
                "Branch",
                "Student Name",
                "Payment Plan ID",
                "Total Amount",
                "Paid Amount",
                "Commission Earned",
            ]
        )
        for row in report.rows:
            for plan in row.payment_plans:
                rows.append(
                    [
                        row.college_name,
                        row.branch_name,
                        plan.student_name,
                        plan.payment_plan_id,
                        plan.total_amount,
                        plan.total_paid,
                        plan.earned_commission,
                    ]
                )

        filename = f"commissions_report_{request.date_from.isoformat()}.csv"
        self._activity.log_activity(
            entity_type="report",
            entity_id=self._agency_id,
            action="exported",
            description=f"Exported commission report ({len(report.rows)} branches)",
            user_id=user_id,
            metadata={
                "report_type": "commissions",
                "format": "csv",
                "date_from": request.date_from.isoformat(),
                "date_to": request.date_to.isoformat(),
                "city": request.city,
                "row_count": len(report.rows),
            },
        )
        await self._db.commit()

        return CsvExport(filename=filename, content=write_csv(rows), row_count=len(report.rows))

    # =========================================================================
    # Payment plans report
    # =========================================================================

    def _payment_plans_query(self, request: PaymentPlansReportRequest):
        stmt = (
            select(PaymentPlan)
            .join(Enrollment, Enrollment.id == PaymentPlan.enrollment_id)
            .join(Branch, Branch.id == Enrollment.branch_id)
            .join(College, College.id == Branch.college_id)
            .where(PaymentPlan.agency_id == self._agency_id)
        )
        if request.status:
            stmt = stmt.where(PaymentPlan.status.in_(request.status))
        if request.student_ids:
            stmt = stmt.where(Enrollment.student_id.in_(request.student_ids))
        if request.branch_ids:
            stmt = stmt.where(Branch.id.in_(request.branch_ids))
        if request.college_ids:
            stmt = stmt.where(College.id.in_(request.college_ids))
        if request.date_from:
            stmt = stmt.where(PaymentPlan.start_date >= request.date_from)
        if request.date_to:
            stmt = stmt.where(PaymentPlan.start_date <= request.date_to)
        if request.contract_expiration_from:
            stmt = stmt.where(College.contract_expiration_date >= request.contract_expiration_from)
        if request.contract_expiration_to:
            stmt = stmt.where(College.contract_expiration_date <= request.contract_expiration_to)
        return stmt

    async def get_payment_plans_report(
        self,
        request: PaymentPlansReportRequest,
    ) -> PaymentPlansReportResponse:
        """Filtered payment plans with paid progress and contract status.

        Totals cover every matching plan, not only the returned page.
        """
        stmt = self._payment_plans_query(request)
        plan_ids = stmt.with_only_columns(PaymentPlan.id).subquery()

        totals = (
            await self._db.execute(
                select(
                    func.count(),
                    func.coalesce(func.sum(PaymentPlan.total_amount), 0),
                    func.coalesce(func.sum(PaymentPlan.expected_commission), 0),
                ).where(PaymentPlan.id.in_(select(plan_ids.c.id)))
            )
        ).one()
        paid_total = (
            await self._db.execute(
                select(func.coalesce(func.sum(Installment.paid_amount), 0)).where(
                    Installment.payment_plan_id.in_(select(plan_ids.c.id)),
                    Installment.paid_date.is_not(None),
                )
            )
        ).scalar()

        rows = await self._payment_plan_rows(
            stmt.order_by(PaymentPlan.created_at.desc())
            .limit(request.limit)
            .offset(request.offset)
        )

        return PaymentPlansReportResponse(
            rows=rows,
            total=totals[0] or 0,
            total_plan_amount=round_money(Decimal(str(totals[1]))),
            total_paid_amount=round_money(Decimal(str(paid_total or 0))),
            total_commission=round_money(Decimal(str(totals[2]))),
        )

    async def _payment_plan_rows(self, stmt) -> list[PaymentPlanReportRow]:
        agency = await self._agency()
        today = agency_today(agency.timezone if agency else None)

        result = await self._db.execute(
            stmt.options(
                selectinload(PaymentPlan.installments),
                selectinload(PaymentPlan.enrollment).selectinload(Enrollment.student),
                selectinload(PaymentPlan.enrollment)
                .selectinload(Enrollment.branch)
                .selectinload(Branch.college),
            )
        )
        return [self._plan_row(plan, today) for plan in result.scalars().all()]

    @staticmethod
    def _plan_row(plan: PaymentPlan, today: date) -> PaymentPlanReportRow:
        enrollment = plan.enrollment
        student = enrollment.student
        branch = enrollment.branch
        college = branch.college

        total_paid = _paid_total(plan.installments)
        open_dates = [
            i.student_due_date
            for i in plan.installments
            if i.status in ("pending", "due_soon", "overdue", "partial")
            and i.student_due_date is not None
        ]
        days_left, status = contract_status(college.contract_expiration_date, today)

        return PaymentPlanReportRow(
            payment_plan_id=plan.id,
            reference_number=plan.reference_number,
            student_id=student.id,
            student_name=student.full_name,
            college_id=college.id,
            college_name=college.name,
            branch_id=branch.id,
            branch_name=branch.name,
            program_name=enrollment.program_name,
            currency=plan.currency,
            plan_amount=plan.total_amount,
            commission_rate_percent=plan.commission_rate_percent,
            expected_commission=plan.expected_commission or Decimal("0"),
            total_paid=total_paid,
            total_remaining=round_money(plan.total_amount - total_paid),
            earned_commission=plan.earned_commission,
            installments_total=len(plan.installments),
            installments_paid=sum(1 for i in plan.installments if i.status == "paid"),
            next_due_date=min(open_dates) if open_dates else None,
            status=plan.status,
            contract_expiration_date=college.contract_expiration_date,
            days_until_contract_expiration=days_left,
            contract_status=status,
            start_date=plan.start_date,
        )

    async def export_payment_plans_csv(
        self,
        request: PaymentPlansReportRequest,
        columns: list[str] | None = None,
        user_id: str | None = None,
    ) -> CsvExport:
        """Export every matching plan as CSV.

        Args:
            request: Report filters; pagination is ignored.
            columns: Column keys to include, defaults to all.
            user_id: Acting user.

        Raises:
            ValueError: If a column key is unknown.
        """
        headers = dict(PAYMENT_PLAN_COLUMNS)
        selected = columns or [key for key, _ in PAYMENT_PLAN_COLUMNS]
        unknown = [c for c in selected if c not in headers]
        if unknown:
            raise ValueError(f"Invalid column: {unknown[0]}")

        rows = await self._payment_plan_rows(
            self._payment_plans_query(request).order_by(PaymentPlan.created_at.desc())
        )

        table: list[list[Any]] = [[headers[c] for c in selected]]
        for row in rows:
            values = row.model_dump()
            table.append([values[c] for c in selected])

        agency = await self._agency()
        stamp = agency_now(agency.timezone if agency else None).strftime("%Y-%m-%d_%H%M%S")

        self._activity.log_activity(
            entity_type="report",
            entity_id=self._agency_id,
            action="exported",
            description=f"Exported payment plans report ({len(rows)} plans)",
            user_id=user_id,
            metadata={
                "report_type": "payment_plans",
                "format": "csv",
                "row_count": len(rows),
                "filters": request.model_dump(mode="json", exclude={"limit", "offset"}),
            },
        )
        await self._db.commit()

        return CsvExport(
            filename=f"payment_plans_{stamp}.csv",
            content=write_csv(table),
            row_count=len(rows),
        )
