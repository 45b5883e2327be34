# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Installment schedule generation.

Turns the payment plan wizard inputs into a list of installments:

- Installment 0 is the optional initial payment, due on its own date.
- The commissionable value left after the initial payment is split into
  equal parts floored to the cent. The last installment absorbs the
  remainder so the parts always add up exactly.
- College due dates step by one (monthly) or three (quarterly) calendar
  months from the first college due date. Students are asked to pay
  student_lead_time_days earlier.
- Custom frequency leaves dates empty for the user to fill in.
- Non-commissionable fees are collected in a final installment that does
  not generate commission, so the schedule adds up to the course value.
"""

from datetime import timedelta
from decimal import ROUND_DOWN, Decimal

from src.core.errors import ValidationError
from src.domains.payments.commission import (
    calculate_commissionable_value,
    calculate_expected_commission,
)
from src.models.payment import (
    InstallmentScheduleRequest,
    InstallmentScheduleResponse,
    InstallmentScheduleSummary,
    ScheduledInstallment,
)
from src.utils.datetime import add_months
from src.utils.money import CENT, round_money

FREQUENCY_MONTHS = {"monthly": 1, "quarterly": 3}


class ScheduleError(ValidationError):
    """Raised when the inputs cannot produce a valid schedule."""

    pass


def split_amount(total: Decimal, parts: int) -> list[Decimal]:
    """Split an amount into parts floored to the cent, remainder last.

    Example:
        >>> split_amount(Decimal("1000"), 3)
        [Decimal('333.33'), Decimal('333.33'), Decimal('333.34')]
    """
    if parts < 1:
        raise ValueError("parts must be at least 1")

    base = (total / parts).quantize(CENT, rounding=ROUND_DOWN)
    last = round_money(total - base * (parts - 1))
    return [base] * (parts - 1) + [last]


def generate_installment_schedule(
    request: InstallmentScheduleRequest,
) -> InstallmentScheduleResponse:
    """Build the installment schedule for a payment plan.

    Args:
        request: Wizard inputs. commission_rate is a fraction from 0 to 1.

    Returns:
        Scheduled installments and a summary.

    Raises:
        ScheduleError: If the initial payment exceeds the commissionable
            value, or the remainder is too small to split.
    """
    total_fees = round_money(request.materials_cost + request.admin_fees + request.other_fees)
    commissionable_value = calculate_commissionable_value(
        request.total_course_value,
        request.materials_cost,
        request.admin_fees,
        request.other_fees,
    )
    expected_commission = calculate_expected_commission(
        commissionable_value,
        request.commission_rate * 100,
        request.gst_inclusive,
    )

    initial_amount = round_money(request.initial_payment_amount)
    remaining = commissionable_value - initial_amount
    if remaining < 0:
        raise ScheduleError(
            "Initial payment amount cannot exceed commissionable value",
            details={
                "initial_payment_amount": str(initial_amount),
                "commissionable_value": str(commissionable_value),
            },
        )

    count = request.number_of_installments
    amounts: list[Decimal] = []
    if remaining > 0:
        amounts = split_amount(remaining, count)
        if amounts[0] <= 0:
            raise ScheduleError(
                f"Remaining amount {remaining} is too small to split into {count} installments"
            )

    installments: list[ScheduledInstallment] = []

    if initial_amount > 0:
        installments.append(
            ScheduledInstallment(
                installment_number=0,
                amount=initial_amount,
                student_due_date=request.initial_payment_due_date,
                college_due_date=request.initial_payment_due_date,
                is_initial_payment=True,
                generates_commission=True,
                status="paid" if request.initial_payment_paid else "draft",
            )
        )

    step = FREQUENCY_MONTHS.get(request.payment_frequency)
    lead = timedelta(days=request.student_lead_time_days)

    for index, amount in enumerate(amounts):
        college_due = None
        student_due = None
        if step is not None and request.first_college_due_date is not None:
            college_due = add_months(request.first_college_due_date, index * step)
            student_due = college_due - lead

        installments.append(
            ScheduledInstallment(
                installment_number=index + 1,
                amount=amount,
                student_due_date=student_due,
                college_due_date=college_due,
            )
        )

    if total_fees > 0:
        last = installments[-1] if installments else None
        installments.append(
            ScheduledInstallment(
                installment_number=len(amounts) + 1,
                amount=total_fees,
                student_due_date=last.student_due_date if last else None,
                college_due_date=last.college_due_date if last else None,
                generates_commission=False,
            )
        )

    summary = InstallmentScheduleSummary(
        total_installments=len(installments),
        amount_per_installment=amounts[0] if amounts else Decimal("0.00"),
        initial_payment_amount=initial_amount,
        commissionable_value=commissionable_value,
        expected_commission=expected_commission,
        total_fees=total_fees,
    )
    return InstallmentScheduleResponse(installments=installments, summary=summary)
