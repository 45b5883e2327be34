# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for Pleeno.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime and agency calendar operations
- money: Decimal rounding and currency formatting
- csv_export: Excel friendly CSV exports
"""

from src.utils.csv_export import csv_filename, format_csv_value, write_csv
from src.utils.datetime import (
    DEFAULT_TIMEZONE,
    add_months,
    agency_now,
    agency_today,
    days_from_now,
    end_of_month,
    ensure_utc,
    format_iso,
    get_zone,
    hours_since,
    is_expired,
    is_past_cutoff,
    is_valid_timezone,
    now,
    parse_date,
    start_of_month,
    start_of_week,
    utc_now,
)
from src.utils.logging import bind_context, clear_context, get_logger, setup_logging
from src.utils.money import format_currency, round_money, to_decimal

__all__ = [
    # CSV
    "write_csv",
    "format_csv_value",
    "csv_filename",
    # Logging
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    # Datetime
    "DEFAULT_TIMEZONE",
    "utc_now",
    "now",
    "ensure_utc",
    "get_zone",
    "is_valid_timezone",
    "agency_now",
    "agency_today",
    "is_past_cutoff",
    "add_months",
    "start_of_week",
    "start_of_month",
    "end_of_month",
    "days_from_now",
    "is_expired",
    "hours_since",
    "format_iso",
    "parse_date",
    # Money
    "to_decimal",
    "round_money",
    "format_currency",
]
