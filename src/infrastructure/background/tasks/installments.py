# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Installment job actors.

These actors are enqueued by APScheduler and wrap the job entry points in
src.domains.jobs.runner. Bookkeeping and transient retries happen inside
the runner, so the actors themselves are not retried by Dramatiq.

Actors:
    - update_installment_statuses_job: marks installments overdue, then
      enqueues overdue emails per agency
    - send_overdue_notifications: emails stakeholders for given installments
    - send_due_soon_notifications_job: sends due soon reminders
    - check_job_health_job: alerts when the status job missed its run
"""

import logging
from typing import Any

import dramatiq

from src.core.config import get_settings
from src.domains.jobs import runner
from src.domains.jobs.job_log import JobRunError
from src.infrastructure.background.broker import (
    Priority,
    Queues,
    set_current_agency,
    setup_dramatiq,
)
from src.infrastructure.background.tasks.base import run_async

setup_dramatiq()

logger = logging.getLogger(__name__)


@dramatiq.actor(
    queue_name=Queues.JOBS,
    max_retries=0,
    time_limit=600000,  # 10 minutes
    priority=Priority.HIGH,
)
def update_installment_statuses_job() -> dict[str, Any]:
    """Scheduler job: mark due installments overdue.

    Runs daily at 07:00 UTC. Newly overdue installments are handed to
    send_overdue_notifications, one message per agency.
    """
    logger.info("Installment status job triggered")

    try:
        result = run_async(runner.run_status_update_job(get_settings()))
    except JobRunError as e:
        # Agencies that committed still get their overdue emails.
        queued = enqueue_overdue_notifications(e.result["agencies"])
        logger.error("Installment status job failed: %s (%d batches queued)", e, queued)
        return {
            "status": "failed",
            "error": str(e),
            "records_updated": e.result["records_updated"],
        }
    except Exception as e:
        logger.error("Installment status job failed: %s", e, exc_info=True)
        return {"status": "failed", "error": str(e)}

    enqueue_overdue_notifications(result["agencies"])

    logger.info(
        "Installment status job completed: %d installments marked overdue",
        result["records_updated"],
    )
    return {
        "status": "success",
        "records_updated": result["records_updated"],
        "total_agencies_processed": result["total_agencies_processed"],
    }


@dramatiq.actor(
    queue_name=Queues.NOTIFICATIONS,
    max_retries=2,
    time_limit=300000,  # 5 minutes
    priority=Priority.NORMAL,
)
def send_overdue_notifications(installment_ids: list[str]) -> dict[str, Any]:
    """Email stakeholders about newly overdue installments.

    Safe to retry: the notification log skips recipients already emailed.

    Args:
        installment_ids: Installments that just became overdue.
    """
    summary = run_async(
        runner.send_overdue_notifications(get_settings(), installment_ids)
    )
    logger.info(
        "Overdue notifications: %d sent, %d failed, %d skipped",
        summary.sent,
        summary.failed,
        summary.skipped,
    )
    return summary.model_dump(mode="json")


@dramatiq.actor(
    queue_name=Queues.JOBS,
    max_retries=0,
    time_limit=600000,  # 10 minutes
    priority=Priority.NORMAL,
)
def send_due_soon_notifications_job() -> dict[str, Any]:
    """Scheduler job: send due soon reminders. Runs daily at 19:00 UTC."""
    logger.info("Due soon notification job triggered")

    try:
        result = run_async(runner.run_due_soon_job(get_settings()))
    except Exception as e:
        logger.error("Due soon notification job failed: %s", e, exc_info=True)
        return {"status": "failed", "error": str(e)}

    return {
        "status": "success",
        "sent": result["sent"],
        "failed": result["failed"],
        "skipped": result["skipped"],
    }


@dramatiq.actor(
    queue_name=Queues.JOBS,
    max_retries=0,
    time_limit=60000,  # 1 minute
    priority=Priority.LOW,
)
def check_job_health_job() -> dict[str, Any]:
    """Scheduler job: alert when the status job has not run recently."""
    health = run_async(runner.check_job_health(get_settings(), alert=True))
    return health.model_dump(mode="json")


def enqueue_overdue_notifications(agency_results: list[dict[str, Any]]) -> int:
    """Queue one overdue email message per agency with newly overdue installments.

    Args:
        agency_results: Per-agency results of the status job.

    Returns:
        Number of messages queued.
    """
    queued = 0
    for agency_result in agency_results:
        installment_ids = agency_result["newly_overdue_ids"]
        if not installment_ids:
            continue
        set_current_agency(agency_result["agency_id"])
        try:
            send_overdue_notifications.send(installment_ids)
        finally:
            set_current_agency(None)
        queued += 1
    return queued


def get_installment_actors() -> list[dramatiq.Actor]:
    return [
        update_installment_statuses_job,
        send_overdue_notifications,
        send_due_soon_notifications_job,
        check_job_health_job,
    ]
