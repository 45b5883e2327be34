# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduled jobs.

Exports:
    update_installment_statuses: Overdue transitions per agency timezone.
    send_due_soon_notifications: Due soon reminder dispatch.
    run_logged_job: jobs_log bookkeeping with transient retries.
    JobLogService: Job run history and health.
    JobRunError: A run that failed after committing part of its work.
"""

from src.domains.jobs.due_soon import send_due_soon_notifications
from src.domains.jobs.job_log import (
    DUE_SOON_JOB,
    STATUS_UPDATE_JOB,
    JobLogService,
    JobRunError,
    run_logged_job,
    run_with_retry,
)
from src.domains.jobs.status_update import update_installment_statuses

__all__ = [
    "DUE_SOON_JOB",
    "STATUS_UPDATE_JOB",
    "JobLogService",
    "JobRunError",
    "run_logged_job",
    "run_with_retry",
    "send_due_soon_notifications",
    "update_installment_statuses",
]
