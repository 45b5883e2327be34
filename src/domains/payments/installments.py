# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Installment payment recording.

Recording a payment updates the installment, then recomputes the plan's
earned commission from every fully paid installment and completes the
plan once all of its live installments are paid.
"""

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.errors import NotFoundError, ValidationError
from src.domains.activity.service import ActivityService
from src.domains.dashboard.cache import invalidate_dashboard_cache
from src.domains.notification.in_app import InAppNotificationService
from src.domains.payments.commission import calculate_earned_commission
from src.domains.payments.plans import plan_paid_total
from src.infrastructure.database.models import Agency, Enrollment, Installment, PaymentPlan
from src.models.payment import (
    InstallmentResponse,
    PaymentPlanProgress,
    RecordPaymentRequest,
    RecordPaymentResponse,
)
from src.utils.datetime import agency_today
from src.utils.money import format_currency, round_money

logger = logging.getLogger(__name__)

MAX_OVERPAYMENT_RATIO = Decimal("1.10")


class InstallmentNotFoundError(NotFoundError):
    """Raised when an installment is not found."""

    pass


class PaymentValidationError(ValidationError):
    """Raised when a payment cannot be recorded."""

    pass


class InstallmentService:
    """Service for recording installment payments.

    Attributes:
        _db: Async database session.
        _agency_id: Caller's agency.
    """

    def __init__(self, db: AsyncSession, agency_id: str) -> None:
        self._db = db
        self._agency_id = agency_id
        self._activity = ActivityService(db, agency_id)
        self._notifications = InAppNotificationService(db, agency_id)

    async def record_payment(
        self,
        installment_id: str,
        request: RecordPaymentRequest,
        user_id: str | None = None,
    ) -> RecordPaymentResponse:
        """Record a payment against an installment.

        Args:
            installment_id: Installment being paid.
            request: Paid date, amount and notes.
            user_id: Acting user.

        Returns:
            The updated installment and plan progress.

        Raises:
            InstallmentNotFoundError: If the installment is not in the agency.
            PaymentValidationError: If the date is in the future, the amount
                exceeds 110% of the installment, or the installment is cancelled.
        """
        installment = await self._get_by_id(installment_id)
        plan = installment.payment_plan

        if installment.status == "cancelled" or plan.status == "cancelled":
            raise PaymentValidationError("Cannot record a payment on a cancelled installment")

        agency = await self._db.get(Agency, self._agency_id)
        today = agency_today(agency.timezone if agency else None)
        if request.paid_date > today:
            raise PaymentValidationError(
                "Payment date cannot be in the future",
                details={"field": "paid_date", "today": today.isoformat()},
            )

        paid_amount = round_money(request.paid_amount)
        max_allowed = round_money(installment.amount * MAX_OVERPAYMENT_RATIO)
        if paid_amount > max_allowed:
            raise PaymentValidationError(
                f"Payment amount cannot exceed {max_allowed} (110% of installment amount)",
                details={"field": "paid_amount", "max_allowed": str(max_allowed)},
            )

        old_status = installment.status
        old_paid_amount = installment.paid_amount
        new_status = "paid" if paid_amount >= installment.amount else "partial"

        installment.paid_date = request.paid_date
        installment.paid_amount = paid_amount
        installment.status = new_status
        installment.payment_notes = request.notes

        live = [i for i in plan.installments if i.status != "cancelled"]
        all_paid = bool(live) and all(i.status == "paid" for i in live)
        total_paid = plan_paid_total(plan.installments)

        plan.earned_commission = calculate_earned_commission(
            total_paid, plan.total_amount, plan.expected_commission
        )
        if all_paid:
            plan.status = "completed"

        student = plan.enrollment.student if plan.enrollment else None
        student_name = student.full_name if student else "student"
        amount_text = format_currency(paid_amount, plan.currency)

        self._activity.log_activity(
            entity_type="payment",
            entity_id=installment.id,
            action="recorded",
            description=(
                f"Recorded payment of {amount_text} for installment "
                f"#{installment.installment_number} of {student_name}"
            ),
            user_id=user_id,
            metadata={
                "installment_id": installment.id,
                "installment_number": installment.installment_number,
                "payment_plan_id": plan.id,
                "paid_date": request.paid_date.isoformat(),
                "paid_amount": str(paid_amount),
                "new_status": new_status,
                "old_status": old_status,
                "old_paid_amount": str(old_paid_amount) if old_paid_amount is not None else None,
                "notes": request.notes,
                "payment_plan_completed": all_paid,
                "earned_commission": str(plan.earned_commission),
            },
        )
        self._notifications.create_notification(
            type="payment_received",
            message=f"Payment of {amount_text} received from {student_name}",
            link=f"/payments/plans/{plan.id}",
        )
        await self._db.commit()
        await invalidate_dashboard_cache(self._agency_id)

        logger.info(
            "Payment recorded: installment %s %s -> %s (%s)",
            installment.id,
            old_status,
            new_status,
            paid_amount,
        )

        return RecordPaymentResponse(
            installment=InstallmentResponse.model_validate(installment),
            payment_plan=PaymentPlanProgress(
                id=plan.id,
                status=plan.status,
                total_amount=plan.total_amount,
                total_paid=total_paid,
                earned_commission=plan.earned_commission,
                installments_paid=sum(1 for i in plan.installments if i.status == "paid"),
                installments_total=len(plan.installments),
            ),
        )

    async def get_installment(self, installment_id: str) -> InstallmentResponse:
        return InstallmentResponse.model_validate(await self._get_by_id(installment_id))

    async def _get_by_id(self, installment_id: str) -> Installment:
        result = await self._db.execute(
            select(Installment)
            .options(
                selectinload(Installment.payment_plan).selectinload(PaymentPlan.installments),
                selectinload(Installment.payment_plan)
                .selectinload(PaymentPlan.enrollment)
                .selectinload(Enrollment.student),
            )
            .where(
                Installment.id == installment_id,
                Installment.agency_id == self._agency_id,
            )
        )
        installment = result.scalar_one_or_none()
        if not installment:
            raise InstallmentNotFoundError(f"Installment {installment_id} not found")
        return installment
