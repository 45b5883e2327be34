# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for commission calculations."""

from decimal import Decimal

from src.domains.payments.commission import (
    calculate_commissionable_value,
    calculate_earned_commission,
    calculate_expected_commission,
)


class TestCommissionableValue:
    """Tests for calculate_commissionable_value."""

    def test_subtracts_fees(self) -> None:
        result = calculate_commissionable_value(
            Decimal("10000"), Decimal("500"), Decimal("200"), Decimal("300")
        )

        assert result == Decimal("9000.00")

    def test_missing_fees_count_as_zero(self) -> None:
        assert calculate_commissionable_value(Decimal("10000")) == Decimal("10000.00")

    def test_never_negative(self) -> None:
        assert calculate_commissionable_value(Decimal("100"), Decimal("500")) == Decimal("0.00")


class TestExpectedCommission:
    """Tests for calculate_expected_commission."""

    def test_gst_inclusive(self) -> None:
        assert calculate_expected_commission(Decimal("10000"), Decimal("15")) == Decimal("1500.00")

    def test_gst_exclusive_uses_net_value(self) -> None:
        result = calculate_expected_commission(Decimal("11000"), Decimal("10"), gst_inclusive=False)

        assert result == Decimal("1000.00")

    def test_zero_or_missing_rate_gives_zero(self) -> None:
        assert calculate_expected_commission(Decimal("10000"), None) == Decimal("0.00")
        assert calculate_expected_commission(Decimal("10000"), Decimal("0")) == Decimal("0.00")

    def test_rounds_half_up_to_cents(self) -> None:
        assert calculate_expected_commission(Decimal("333.33"), Decimal("15")) == Decimal("50.00")
        assert calculate_expected_commission(Decimal("100.10"), Decimal("12.5")) == Decimal("12.51")


class TestEarnedCommission:
    """Tests for calculate_earned_commission."""

    def test_proportional_to_payments(self) -> None:
        result = calculate_earned_commission(Decimal("5000"), Decimal("10000"), Decimal("1500"))

        assert result == Decimal("750.00")

    def test_fully_paid_earns_all(self) -> None:
        result = calculate_earned_commission(Decimal("10000"), Decimal("10000"), Decimal("1500"))

        assert result == Decimal("1500.00")

    def test_zero_total_gives_zero(self) -> None:
        assert calculate_earned_commission(Decimal("100"), Decimal("0"), Decimal("10")) == Decimal("0.00")

    def test_nothing_paid(self) -> None:
        assert calculate_earned_commission(None, Decimal("10000"), Decimal("1500")) == Decimal("0.00")
