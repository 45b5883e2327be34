# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduled job endpoints.

Called by an external scheduler with the X-API-Key header. They run the
same code as the Dramatiq actors, synchronously.

- POST /update-installment-statuses - Mark due installments overdue
- POST /send-due-soon-notifications - Send due soon reminders
- GET /health - Last run health of a job
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response

from src.api.dependencies import get_app_settings, require_jobs_api_key
from src.core.config import Settings
from src.domains.jobs import runner
from src.domains.jobs.job_log import DUE_SOON_JOB, STATUS_UPDATE_JOB, JobRunError
from src.infrastructure.background.tasks.installments import enqueue_overdue_notifications
from src.models.activity import JobHealthResponse, JobRunResponse

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_jobs_api_key)])


@router.post(
    "/update-installment-statuses",
    response_model=JobRunResponse,
    summary="Run the installment status job",
    description=(
        "Marks pending installments overdue once their due date and cutoff time "
        "have passed in the agency timezone, then queues overdue emails."
    ),
)
async def update_installment_statuses(
    response: Response,
    settings: Settings = Depends(get_app_settings),
) -> JobRunResponse:
    try:
        result = await runner.run_status_update_job(settings)
    except JobRunError as e:
        # Overdue emails still go out for the agencies that committed.
        queued = enqueue_overdue_notifications(e.result["agencies"])
        response.status_code = 500
        return JobRunResponse(
            job_name=STATUS_UPDATE_JOB,
            status="failed",
            records_updated=e.result["records_updated"],
            details={
                "error": str(e),
                "agencies": e.result["agencies"],
                "notification_batches_queued": queued,
            },
        )

    queued = enqueue_overdue_notifications(result["agencies"])

    logger.info(
        "Status job via API: %d updated across %d agencies, %d notification batches queued",
        result["records_updated"],
        result["total_agencies_processed"],
        queued,
    )
    return JobRunResponse(
        job_name=STATUS_UPDATE_JOB,
        status="success",
        records_updated=result["records_updated"],
        details={
            "total_agencies_processed": result["total_agencies_processed"],
            "agencies": result["agencies"],
            "notification_batches_queued": queued,
        },
    )


@router.post(
    "/send-due-soon-notifications",
    response_model=JobRunResponse,
    summary="Send due soon reminders",
)
async def send_due_soon_notifications(
    settings: Settings = Depends(get_app_settings),
) -> JobRunResponse:
    result = await runner.run_due_soon_job(settings)
    return JobRunResponse(
        job_name=DUE_SOON_JOB,
        status="success",
        records_updated=result["records_updated"],
        details={
            "agencies": result["agencies"],
            "sent": result["sent"],
            "failed": result["failed"],
            "skipped": result["skipped"],
        },
    )


@router.get(
    "/health",
    response_model=JobHealthResponse,
    summary="Job health",
    description="healthy within 24 hours of the last run, warning up to 25, critical after.",
)
async def job_health(
    job_name: Annotated[str, Query()] = STATUS_UPDATE_JOB,
    settings: Settings = Depends(get_app_settings),
) -> JobHealthResponse:
    return await runner.check_job_health(settings, job_name)
