# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Payment plan service.

This module provides the PaymentPlanService class for:
- Creating a plan with generated or explicit installments
- Listing plans with next due date and paid progress
- Updating notes, reference and status (cancelling cancels unpaid installments)
- Previewing a schedule for an existing plan without saving it

Example:
    >>> service = PaymentPlanService(db, agency_id)
    >>> plan = await service.create_payment_plan(request, user_id)
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.errors import NotFoundError, ValidationError
from src.domains.activity.service import ActivityService
from src.domains.dashboard.cache import invalidate_dashboard_cache
from src.domains.payments.commission import (
    calculate_commissionable_value,
    calculate_earned_commission,
    calculate_expected_commission,
)
from src.domains.payments.schedule import generate_installment_schedule
from src.infrastructure.database.models import (
    Agency,
    Branch,
    Enrollment,
    Installment,
    PaymentPlan,
)
from src.models.payment import (
    InstallmentResponse,
    InstallmentScheduleRequest,
    InstallmentScheduleResponse,
    PaymentPlanCreateRequest,
    PaymentPlanResponse,
    PaymentPlanSummary,
    PaymentPlanUpdateRequest,
    ScheduledInstallment,
)
from src.utils.datetime import agency_today
from src.utils.money import format_currency, round_money

logger = logging.getLogger(__name__)

SUM_TOLERANCE = Decimal("0.01")
OPEN_STATUSES = ("pending", "due_soon", "overdue", "partial")
SETTLED_STATUSES = ("paid", "partial")


class PaymentPlanServiceError(Exception):
    """Base exception for payment plan service errors."""

    pass


class PaymentPlanNotFoundError(NotFoundError, PaymentPlanServiceError):
    """Raised when a payment plan is not found."""

    pass


class EnrollmentNotFoundError(NotFoundError, PaymentPlanServiceError):
    """Raised when the plan's enrollment is not in the agency."""

    pass


class InvalidPaymentPlanError(ValidationError, PaymentPlanServiceError):
    """Raised when plan inputs are inconsistent."""

    pass


def plan_paid_total(installments: list[Installment]) -> Decimal:
    """Sum of paid amounts on fully paid installments."""
    return round_money(
        sum(
            (i.paid_amount or Decimal("0") for i in installments if i.status == "paid"),
            Decimal("0"),
        )
    )


class PaymentPlanService:
    """Service for payment plans.

    Attributes:
        _db: Async database session.
        _agency_id: Caller's agency.
    """

    def __init__(self, db: AsyncSession, agency_id: str) -> None:
        self._db = db
        self._agency_id = agency_id
        self._activity = ActivityService(db, agency_id)

    async def create_payment_plan(
        self,
        request: PaymentPlanCreateRequest,
        user_id: str | None = None,
    ) -> PaymentPlanResponse:
        """Create a payment plan and its installments.

        Args:
            request: Plan details and wizard inputs.
            user_id: Acting user.

        Returns:
            The created plan with installments.

        Raises:
            EnrollmentNotFoundError: If the enrollment is not in the agency.
            InvalidPaymentPlanError: If installments do not add up to the total.
            ScheduleError: If the schedule cannot be generated.
        """
        enrollment = await self._get_enrollment(request.enrollment_id)
        agency = await self._db.get(Agency, self._agency_id)
        today = agency_today(agency.timezone if agency else None)

        rate = request.commission_rate
        if rate is None:
            rate = enrollment.branch.effective_commission_rate_percent / Decimal("100")
        rate_percent = round_money(rate * 100)

        if request.installments:
            scheduled = [
                ScheduledInstallment(
                    installment_number=i.installment_number,
                    amount=i.amount,
                    student_due_date=i.student_due_date,
                    college_due_date=i.college_due_date,
                    is_initial_payment=i.is_initial_payment,
                    generates_commission=i.generates_commission,
                )
                for i in request.installments
            ]
            commissionable_value = calculate_commissionable_value(
                request.total_course_value,
                request.materials_cost,
                request.admin_fees,
                request.other_fees,
            )
            expected_commission = calculate_expected_commission(
                commissionable_value, rate_percent, request.gst_inclusive
            )
        else:
            schedule = generate_installment_schedule(
                InstallmentScheduleRequest.model_validate(
                    request.model_dump(include=set(InstallmentScheduleRequest.model_fields))
                    | {"commission_rate": rate}
                )
            )
            scheduled = schedule.installments
            expected_commission = schedule.summary.expected_commission

        numbers = [s.installment_number for s in scheduled]
        if len(numbers) != len(set(numbers)):
            raise InvalidPaymentPlanError("Installment numbers must be unique")

        total = round_money(sum((s.amount for s in scheduled), Decimal("0")))
        if abs(total - request.total_course_value) >= SUM_TOLERANCE:
            raise InvalidPaymentPlanError(
                "Installment amounts must sum to total course value",
                details={"installments_total": str(total), "total": str(request.total_course_value)},
            )

        due_dates = [s.student_due_date for s in scheduled if s.student_due_date]
        start_date = request.start_date or (min(due_dates) if due_dates else today)

        plan = PaymentPlan(
            agency_id=self._agency_id,
            enrollment_id=enrollment.id,
            total_amount=request.total_course_value,
            currency=agency.currency if agency else "AUD",
            commission_rate_percent=rate_percent,
            expected_commission=expected_commission,
            earned_commission=Decimal("0"),
            start_date=start_date,
            status="active",
            notes=request.notes,
            reference_number=request.reference_number,
            total_course_value=request.total_course_value,
            initial_payment_amount=request.initial_payment_amount,
            initial_payment_due_date=request.initial_payment_due_date,
            initial_payment_paid=request.initial_payment_paid,
            materials_cost=request.materials_cost,
            admin_fees=request.admin_fees,
            other_fees=request.other_fees,
            first_college_due_date=request.first_college_due_date,
            student_lead_time_days=request.student_lead_time_days,
            gst_inclusive=request.gst_inclusive,
            number_of_installments=request.number_of_installments,
            payment_frequency=request.payment_frequency,
        )

        for item in scheduled:
            paid = item.is_initial_payment and request.initial_payment_paid
            plan.installments.append(
                Installment(
                    agency_id=self._agency_id,
                    installment_number=item.installment_number,
                    is_initial_payment=item.is_initial_payment,
                    amount=item.amount,
                    generates_commission=item.generates_commission,
                    student_due_date=item.student_due_date,
                    college_due_date=item.college_due_date,
                    status="paid" if paid else "pending",
                    paid_amount=item.amount if paid else None,
                    paid_date=(item.student_due_date or today) if paid else None,
                )
            )

        plan.earned_commission = calculate_earned_commission(
            plan_paid_total(plan.installments), plan.total_amount, expected_commission
        )

        self._db.add(plan)
        await self._db.flush()

        student_name = enrollment.student.full_name if enrollment.student else "student"
        self._activity.log_activity(
            entity_type="payment_plan",
            entity_id=plan.id,
            action="created",
            description=(
                f"Created payment plan of {format_currency(plan.total_amount, plan.currency)} "
                f"for {student_name}"
            ),
            user_id=user_id,
            metadata={
                "enrollment_id": enrollment.id,
                "total_amount": str(plan.total_amount),
                "installments": len(scheduled),
                "expected_commission": str(expected_commission),
            },
        )
        await self._db.commit()
        await invalidate_dashboard_cache(self._agency_id)

        logger.info(
            "Payment plan created: %s (%d installments, total %s)",
            plan.id,
            len(scheduled),
            plan.total_amount,
        )
        return await self.get_payment_plan(plan.id)

    async def get_payment_plan(self, plan_id: str) -> PaymentPlanResponse:
        """Get a plan with its installments."""
        return self._to_response(await self._get_by_id(plan_id))

    async def list_payment_plans(
        self,
        status: str | None = None,
        student_id: str | None = None,
        college_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[PaymentPlanSummary], int]:
        """List plans filtered by status, student or college."""
        stmt = (
            select(PaymentPlan)
            .join(Enrollment, Enrollment.id == PaymentPlan.enrollment_id)
            .join(Branch, Branch.id == Enrollment.branch_id)
            .where(PaymentPlan.agency_id == self._agency_id)
        )
        if status:
            stmt = stmt.where(PaymentPlan.status == status)
        if student_id:
            stmt = stmt.where(Enrollment.student_id == student_id)
        if college_id:
            stmt = stmt.where(Branch.college_id == college_id)

        count_stmt = select(func.count()).select_from(stmt.with_only_columns(PaymentPlan.id).subquery())
        total = (await self._db.execute(count_stmt)).scalar() or 0

        stmt = (
            stmt.options(*self._load_options())
            .order_by(PaymentPlan.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._db.execute(stmt)
        return [self._to_summary(p) for p in result.scalars().all()], total

    async def update_payment_plan(
        self,
        plan_id: str,
        request: PaymentPlanUpdateRequest,
        user_id: str | None = None,
    ) -> PaymentPlanResponse:
        """Update notes, reference number or status.

        Cancelling a plan cancels its installments that have no payment.
        """
        plan = await self._get_by_id(plan_id)
        changes = request.model_dump(exclude_unset=True)
        if changes.get("status") is None:
            changes.pop("status", None)

        previous_status = plan.status
        for field_name, value in changes.items():
            setattr(plan, field_name, value)

        cancelled = 0
        if plan.status == "cancelled" and previous_status != "cancelled":
            for installment in plan.installments:
                if installment.status not in SETTLED_STATUSES:
                    installment.status = "cancelled"
                    cancelled += 1

        description = "Updated payment plan"
        if plan.status != previous_status:
            description = f"Changed payment plan status from {previous_status} to {plan.status}"

        self._activity.log_activity(
            entity_type="payment_plan",
            entity_id=plan.id,
            action="updated",
            description=description,
            user_id=user_id,
            metadata={
                "changes": {k: str(v) if v is not None else None for k, v in changes.items()},
                "cancelled_installments": cancelled,
            },
        )
        await self._db.commit()
        await invalidate_dashboard_cache(self._agency_id)

        logger.info("Payment plan updated: %s", plan.id)
        return await self.get_payment_plan(plan.id)

    async def preview_installments(
        self,
        plan_id: str,
        request: InstallmentScheduleRequest,
    ) -> InstallmentScheduleResponse:
        """Generate a schedule for an existing plan without saving it."""
        await self._get_by_id(plan_id)
        return generate_installment_schedule(request)

    async def list_installments(self, plan_id: str) -> list[InstallmentResponse]:
        plan = await self._get_by_id(plan_id)
        return [InstallmentResponse.model_validate(i) for i in plan.installments]

    @staticmethod
    def _load_options():
        return (
            selectinload(PaymentPlan.installments),
            selectinload(PaymentPlan.enrollment).selectinload(Enrollment.student),
            selectinload(PaymentPlan.enrollment)
            .selectinload(Enrollment.branch)
            .selectinload(Branch.college),
        )

    async def _get_by_id(self, plan_id: str) -> PaymentPlan:
        result = await self._db.execute(
            select(PaymentPlan)
            .options(*self._load_options())
            .where(PaymentPlan.id == plan_id, PaymentPlan.agency_id == self._agency_id)
            .execution_options(populate_existing=True)
        )
        plan = result.scalar_one_or_none()
        if not plan:
            raise PaymentPlanNotFoundError(f"Payment plan {plan_id} not found")
        return plan

    async def _get_enrollment(self, enrollment_id: str) -> Enrollment:
        result = await self._db.execute(
            select(Enrollment)
            .options(
                selectinload(Enrollment.student),
                selectinload(Enrollment.branch).selectinload(Branch.college),
            )
            .where(Enrollment.id == enrollment_id, Enrollment.agency_id == self._agency_id)
        )
        enrollment = result.scalar_one_or_none()
        if not enrollment:
            raise EnrollmentNotFoundError(f"Enrollment {enrollment_id} not found")
        return enrollment

    @staticmethod
    def _context(plan: PaymentPlan) -> dict[str, str | None]:
        enrollment = plan.enrollment
        student = enrollment.student if enrollment else None
        branch = enrollment.branch if enrollment else None
        college = branch.college if branch else None
        return {
            "student_id": student.id if student else None,
            "student_name": student.full_name if student else None,
            "college_name": college.name if college else None,
            "branch_name": branch.name if branch else None,
        }

    def _to_response(self, plan: PaymentPlan) -> PaymentPlanResponse:
        return PaymentPlanResponse(
            id=plan.id,
            enrollment_id=plan.enrollment_id,
            total_amount=plan.total_amount,
            currency=plan.currency,
            commission_rate_percent=plan.commission_rate_percent,
            expected_commission=plan.expected_commission,
            earned_commission=plan.earned_commission,
            start_date=plan.start_date,
            status=plan.status,
            notes=plan.notes,
            reference_number=plan.reference_number,
            total_course_value=plan.total_course_value,
            materials_cost=plan.materials_cost,
            admin_fees=plan.admin_fees,
            other_fees=plan.other_fees,
            gst_inclusive=plan.gst_inclusive,
            number_of_installments=plan.number_of_installments,
            payment_frequency=plan.payment_frequency,
            installments=[InstallmentResponse.model_validate(i) for i in plan.installments],
            created_at=plan.created_at,
            updated_at=plan.updated_at,
            **self._context(plan),
        )

    def _to_summary(self, plan: PaymentPlan) -> PaymentPlanSummary:
        open_dates: list[date] = [
            i.student_due_date
            for i in plan.installments
            if i.status in OPEN_STATUSES and i.student_due_date is not None
        ]
        return PaymentPlanSummary(
            id=plan.id,
            enrollment_id=plan.enrollment_id,
            total_amount=plan.total_amount,
            currency=plan.currency,
            expected_commission=plan.expected_commission,
            earned_commission=plan.earned_commission,
            status=plan.status,
            reference_number=plan.reference_number,
            next_due_date=min(open_dates) if open_dates else None,
            total_installments=len(plan.installments),
            installments_paid_count=sum(1 for i in plan.installments if i.status == "paid"),
            created_at=plan.created_at,
            **self._context(plan),
        )
