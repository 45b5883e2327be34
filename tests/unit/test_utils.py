# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for date, money, CSV and logging helpers."""

from datetime import date, datetime, time, timezone
from decimal import Decimal

import pytest

from src.utils.csv_export import csv_filename, format_csv_value, write_csv
from src.utils.datetime import (
    add_months,
    agency_today,
    end_of_month,
    ensure_utc,
    get_zone,
    is_past_cutoff,
    is_valid_timezone,
    parse_date,
    start_of_week,
)
from src.utils.logging import mask_email, mask_email_fields
from src.utils.money import format_currency, round_money


class TestAgencyClock:
    """Tests for timezone helpers."""

    def test_agency_today_crosses_date_line(self) -> None:
        now = datetime(2025, 3, 10, 20, 0, tzinfo=timezone.utc)

        assert agency_today("Australia/Sydney", now) == date(2025, 3, 11)
        assert agency_today("America/New_York", now) == date(2025, 3, 10)

    def test_naive_reference_is_utc(self) -> None:
        assert agency_today("Australia/Brisbane", datetime(2025, 3, 10, 15, 0)) == date(
            2025, 3, 11
        )

    def test_unknown_zone_falls_back(self) -> None:
        assert get_zone("Mars/Olympus").key == "Australia/Brisbane"
        assert not is_valid_timezone("Mars/Olympus")
        assert is_valid_timezone("Europe/London")

    def test_cutoff_is_strict(self) -> None:
        cutoff = time(17, 0)

        assert not is_past_cutoff(datetime(2025, 3, 10, 17, 0), cutoff)
        assert is_past_cutoff(datetime(2025, 3, 10, 17, 0, 1), cutoff)

    def test_ensure_utc_converts_aware_values(self) -> None:
        local = datetime(2025, 3, 10, 10, 0, tzinfo=get_zone("Australia/Brisbane"))

        assert ensure_utc(local) == datetime(2025, 3, 10, 0, 0, tzinfo=timezone.utc)
        assert ensure_utc(None) is None


class TestCalendarHelpers:
    """Tests for calendar arithmetic."""

    @pytest.mark.parametrize(
        ("start", "months", "expected"),
        [
            (date(2025, 1, 31), 1, date(2025, 2, 28)),
            (date(2024, 1, 31), 1, date(2024, 2, 29)),
            (date(2025, 11, 15), 3, date(2026, 2, 15)),
            (date(2025, 3, 31), -1, date(2025, 2, 28)),
        ],
    )
    def test_add_months_clamps(self, start, months, expected) -> None:
        assert add_months(start, months) == expected

    def test_week_and_month_bounds(self) -> None:
        assert start_of_week(date(2025, 3, 13)) == date(2025, 3, 10)
        assert end_of_month(date(2025, 2, 3)) == date(2025, 2, 28)

    def test_parse_date_is_strict(self) -> None:
        assert parse_date("2025-03-10") == date(2025, 3, 10)
        with pytest.raises(ValueError):
            parse_date("2025-3-10")


class TestMoney:
    """Tests for money helpers."""

    def test_rounds_half_up(self) -> None:
        assert round_money(Decimal("2.345")) == Decimal("2.35")
        assert round_money(None) == Decimal("0.00")
        assert round_money(0.1 + 0.2) == Decimal("0.30")

    def test_format_currency(self) -> None:
        assert format_currency(Decimal("1250"), "AUD") == "$1,250.00 AUD"
        assert format_currency(Decimal("99.5"), "eur") == "€99.50 EUR"
        assert format_currency(Decimal("10"), "JPY") == "10.00 JPY"


class TestCsvExport:
    """Tests for CSV helpers."""

    def test_cell_formatting(self) -> None:
        assert format_csv_value(None) == ""
        assert format_csv_value(True) == "Yes"
        assert format_csv_value(Decimal("1.5")) == "1.50"
        assert format_csv_value(date(2025, 3, 10)) == "2025-03-10"

    def test_write_csv_adds_bom_and_crlf(self) -> None:
        content = write_csv([["Name", "Amount"], ["Smith, Jane", Decimal("10")]])

        assert content == '\ufeffName,Amount\r\n"Smith, Jane",10.00\r\n'

    def test_write_csv_without_bom(self) -> None:
        assert write_csv([["a"]], include_bom=False) == "a\r\n"

    def test_filename(self) -> None:
        assert csv_filename("commissions_report", date(2025, 1, 31)) == (
            "commissions_report_2025-01-31.csv"
        )


class TestLogMasking:
    """Tests for email masking in production logs."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("mei.chen@student.example.com", "m***@student.example.com"),
            ("not-an-email", "not-an-email"),
            ("@example.com", "@example.com"),
        ],
    )
    def test_mask_email(self, value: str, expected: str) -> None:
        assert mask_email(value) == expected

    def test_masks_only_email_fields(self) -> None:
        event = {
            "event": "Notification sent",
            "recipient_email": "accounts@college.example.com",
            "installment_id": "inst-1",
        }

        assert mask_email_fields(None, "info", event) == {
            "event": "Notification sent",
            "recipient_email": "a***@college.example.com",
            "installment_id": "inst-1",
        }
