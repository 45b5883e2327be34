# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Reports domain: commission and payment plan reports with CSV export."""

from src.domains.reports.service import CsvExport, ReportService

__all__ = ["CsvExport", "ReportService"]
