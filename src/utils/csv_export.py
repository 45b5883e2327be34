# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""CSV export helpers.

Exports open in Excel, so they start with a UTF-8 byte order mark and use
CRLF line endings.
"""

import csv
import io
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Sequence

UTF8_BOM = "\ufeff"


def format_csv_value(value: Any) -> str:
    """Render a cell value.

    Decimals get two places, dates ISO format, None an empty string.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, float):
        return f"{value:.2f}"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def write_csv(rows: Iterable[Sequence[Any]], include_bom: bool = True) -> str:
    """Serialize rows to CSV text.

    Args:
        rows: Rows of cell values. Blank separator rows may be empty sequences.
        include_bom: Prefix the output with a UTF-8 BOM.

    Returns:
        CSV document as a string.
    """
    buffer = io.StringIO()
    if include_bom:
        buffer.write(UTF8_BOM)

    writer = csv.writer(buffer, lineterminator="\r\n")
    for row in rows:
        writer.writerow([format_csv_value(v) for v in row])

    return buffer.getvalue()


def csv_filename(prefix: str, day: date | None = None) -> str:
    """Build an export file name like ``payment_plans_2025-01-31.csv``."""
    suffix = (day or date.today()).isoformat()
    return f"{prefix}_{suffix}.csv"
