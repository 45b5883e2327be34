# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Money helpers.

Amounts are handled as Decimal end to end and rounded half-up to cents,
matching NUMERIC(12, 2) columns in the database.
"""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")

CURRENCY_SYMBOLS = {
    "AUD": "$",
    "USD": "$",
    "NZD": "$",
    "CAD": "$",
    "EUR": "€",
    "GBP": "£",
}


def to_decimal(value: object | None) -> Decimal:
    """Convert a number-like value to Decimal, treating None as zero."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: object | None) -> Decimal:
    """Round a value half-up to two decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_currency(value: object | None, currency: str = "AUD") -> str:
    """Format an amount for display in emails and exports.

    Args:
        value: Amount to format.
        currency: ISO 4217 code of the agency currency.

    Returns:
        String such as "$1,250.00 AUD".

    Example:
        >>> format_currency(Decimal("1250"), "AUD")
        '$1,250.00 AUD'
    """
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), "")
    return f"{symbol}{round_money(value):,.2f} {currency.upper()}"
