# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Commission calculations.

Pure functions over Decimal amounts. Fees (materials, admin, other) are not
commissionable. Colleges that quote GST exclusive prices pay commission on
the amount net of the 10% GST.
"""

from decimal import Decimal

from src.utils.money import round_money, to_decimal

GST_DIVISOR = Decimal("1.10")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def calculate_commissionable_value(
    total_course_value: Decimal | float | int | None,
    materials_cost: Decimal | float | int | None = None,
    admin_fees: Decimal | float | int | None = None,
    other_fees: Decimal | float | int | None = None,
) -> Decimal:
    """Course value minus non-commissionable fees, never below zero.

    Example:
        >>> calculate_commissionable_value(Decimal("10000"), Decimal("500"), Decimal("200"))
        Decimal('9300.00')
    """
    value = (
        to_decimal(total_course_value)
        - to_decimal(materials_cost)
        - to_decimal(admin_fees)
        - to_decimal(other_fees)
    )
    return round_money(max(value, ZERO))


def calculate_expected_commission(
    commissionable_value: Decimal | float | int | None,
    commission_rate_percent: Decimal | float | int | None,
    gst_inclusive: bool = True,
) -> Decimal:
    """Commission the agency expects once the plan is fully paid.

    Args:
        commissionable_value: Value after fees.
        commission_rate_percent: Rate from 0 to 100.
        gst_inclusive: Whether the value already includes GST. When it does
            not, commission is calculated on value / 1.10.

    Returns:
        Commission rounded to cents. Missing or negative inputs give zero.
    """
    value = to_decimal(commissionable_value)
    rate = to_decimal(commission_rate_percent)
    if value <= ZERO or rate <= ZERO:
        return round_money(ZERO)

    base = value if gst_inclusive else value / GST_DIVISOR
    return round_money(base * rate / HUNDRED)


def calculate_earned_commission(
    total_paid: Decimal | float | int | None,
    total_amount: Decimal | float | int | None,
    expected_commission: Decimal | float | int | None,
) -> Decimal:
    """Share of the expected commission earned by payments so far.

    Example:
        >>> calculate_earned_commission(Decimal("5000"), Decimal("10000"), Decimal("1500"))
        Decimal('750.00')
    """
    total = to_decimal(total_amount)
    if total <= ZERO:
        return round_money(ZERO)

    paid = to_decimal(total_paid)
    expected = to_decimal(expected_commission)
    return round_money(paid / total * expected)
