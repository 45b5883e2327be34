# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Payments domain.

Exports:
    PaymentPlanService: Payment plan lifecycle.
    InstallmentService: Payment recording.
    generate_installment_schedule: Installment wizard.
"""

from src.domains.payments.installments import InstallmentService
from src.domains.payments.plans import PaymentPlanService
from src.domains.payments.schedule import generate_installment_schedule

__all__ = [
    "InstallmentService",
    "PaymentPlanService",
    "generate_installment_schedule",
]
