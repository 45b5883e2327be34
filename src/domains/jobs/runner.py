# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Entry points shared by the job endpoints and the Dramatiq actors.

Each entry point opens its own sessions: one for the jobs_log row and a
fresh one per attempt of the work, so a retry never reuses a broken
connection.
"""

import logging
from datetime import datetime
from typing import Any

from src.core.config.settings import Settings
from src.domains.jobs.due_soon import send_due_soon_notifications
from src.domains.jobs.job_log import (
    DUE_SOON_JOB,
    STATUS_UPDATE_JOB,
    JobLogService,
    run_logged_job,
)
from src.domains.jobs.status_update import update_installment_statuses
from src.domains.notification.dispatcher import NotificationDispatcher
from src.infrastructure.database import get_session
from src.infrastructure.notifications.channels import EmailChannel, NotificationPayload
from src.models.activity import JobHealthResponse
from src.models.notification import DispatchSummary

logger = logging.getLogger(__name__)


def build_dispatcher(session, settings: Settings) -> NotificationDispatcher:
    return NotificationDispatcher(session, EmailChannel(settings.email), settings.api.public_url)


async def run_status_update_job(
    settings: Settings,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Run the installment status job with bookkeeping and retries.

    Agencies are retried one by one inside the job. The outer retry covers
    failures outside any agency, such as listing the agencies.

    Raises:
        JobRunError: When some agencies failed. Its result lists the
            installments the other agencies marked overdue.
    """

    async def work() -> dict[str, Any]:
        async with get_session() as session:
            return await update_installment_statuses(
                session,
                now,
                max_retries=settings.jobs.max_retries,
                base_delay=settings.jobs.retry_base_delay,
            )

    async with get_session() as log_session:
        return await run_logged_job(
            log_session,
            STATUS_UPDATE_JOB,
            work,
            max_retries=settings.jobs.max_retries,
            base_delay=settings.jobs.retry_base_delay,
        )


async def run_due_soon_job(
    settings: Settings,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Run the due soon reminder job with bookkeeping and retries."""

    async def work() -> dict[str, Any]:
        async with get_session() as session:
            return await send_due_soon_notifications(
                session, build_dispatcher(session, settings), now
            )

    async with get_session() as log_session:
        return await run_logged_job(
            log_session,
            DUE_SOON_JOB,
            work,
            max_retries=settings.jobs.max_retries,
            base_delay=settings.jobs.retry_base_delay,
        )


async def send_overdue_notifications(
    settings: Settings,
    installment_ids: list[str],
) -> DispatchSummary:
    """Email stakeholders about newly overdue installments."""
    async with get_session() as session:
        return await build_dispatcher(session, settings).send_notifications(
            installment_ids, "overdue"
        )


async def check_job_health(
    settings: Settings,
    job_name: str = STATUS_UPDATE_JOB,
    alert: bool = False,
) -> JobHealthResponse:
    """Check a job's last run, optionally emailing an alert when critical."""
    async with get_session() as session:
        health = await JobLogService(session).check_job_health(
            job_name, settings.jobs.health_alert_hours
        )

    if alert and health.status == "critical":
        logger.error("Job health critical: %s: %s", job_name, health.message)
        if settings.jobs.alert_email:
            last_run = health.last_run_at.isoformat() if health.last_run_at else "Never"
            await EmailChannel(settings.email).send(
                NotificationPayload(
                    recipient_email=settings.jobs.alert_email,
                    subject=f"ALERT: {job_name} Missed Execution",
                    html=(
                        f"<p>The scheduled job <strong>{job_name}</strong> needs attention.</p>"
                        f"<p>{health.message}</p><p>Last run: {last_run}</p>"
                    ),
                )
            )

    return health
