# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task actors for Pleeno.

Usage:
    from src.infrastructure.background.tasks import send_overdue_notifications

    send_overdue_notifications.send(["installment-id"])

Running Workers:
    dramatiq src.infrastructure.background.tasks --processes 2 --threads 4
"""

from src.infrastructure.background.tasks.base import run_async
from src.infrastructure.background.tasks.installments import (
    check_job_health_job,
    get_installment_actors,
    send_due_soon_notifications_job,
    send_overdue_notifications,
    update_installment_statuses_job,
)

__all__ = [
    "check_job_health_job",
    "send_due_soon_notifications_job",
    "send_overdue_notifications",
    "update_installment_statuses_job",
    "get_all_actors",
    "run_async",
]


def get_all_actors() -> list:
    """Get all registered actors, for worker registration."""
    return [*get_installment_actors()]
