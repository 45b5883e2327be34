# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduled job bookkeeping and retries.

Every scheduled run is recorded in jobs_log as running, then success or
failed. Transient database failures are retried with exponential backoff
before the run is marked failed.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database.connection import DatabaseError
from src.infrastructure.database.models import JobLog
from src.models.activity import JobHealthResponse
from src.utils.datetime import hours_since, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

STATUS_UPDATE_JOB = "update-installment-statuses"
DUE_SOON_JOB = "send-due-soon-notifications"

HEALTHY_HOURS = 24
DEFAULT_ALERT_HOURS = 25

TRANSIENT_MARKERS = ("connection", "timeout", "timed out", "econnreset", "econnrefused")


class JobRunError(Exception):
    """A job finished with failures after committing part of its work.

    Attributes:
        result: The result dict of the work that did complete, in the same
            shape a successful run returns.
    """

    def __init__(self, message: str, result: dict[str, Any]) -> None:
        self.result = result
        super().__init__(message)


def is_transient_error(error: BaseException) -> bool:
    """Check whether an error is worth retrying.

    Connection loss, pool exhaustion and timeouts are transient. SQL,
    permission and business errors are not.
    """
    if isinstance(error, DatabaseError) and error.original_error is not None:
        return is_transient_error(error.original_error)

    if isinstance(error, (PoolTimeoutError, InterfaceError, asyncio.TimeoutError, ConnectionError)):
        return True
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return True
    if isinstance(error, OperationalError):
        message = str(error).lower()
        return any(marker in message for marker in TRANSIENT_MARKERS)
    return False


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Run an operation, retrying transient failures.

    Delays double from base_delay: 1s, 2s, 4s with the defaults.

    Args:
        operation: Zero-argument coroutine factory.
        max_retries: Retries after the first attempt.
        base_delay: First backoff delay in seconds.
        sleep: Awaitable sleep, replaceable in tests.

    Returns:
        The operation's result.

    Raises:
        Exception: The last error once retries are exhausted, or the first
            permanent error.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_retries or not is_transient_error(e):
                raise
            delay = base_delay * (2**attempt)
            attempt += 1
            logger.warning(
                "Transient failure, retry %d/%d after %.1fs: %s",
                attempt,
                max_retries,
                delay,
                str(e),
            )
            await sleep(delay)


class JobLogService:
    """Service for the jobs_log table.

    Attributes:
        _db: Unscoped async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def start_job(self, job_name: str) -> JobLog:
        entry = JobLog(job_name=job_name, started_at=utc_now(), status="running")
        self._db.add(entry)
        await self._db.commit()
        await self._db.refresh(entry)

        logger.info("Job started: %s (%s)", job_name, entry.id)
        return entry

    async def complete_job(
        self,
        entry: JobLog,
        records_updated: int,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        entry.status = "success"
        entry.completed_at = utc_now()
        entry.records_updated = records_updated
        entry.metadata_ = metadata or {}
        await self._db.commit()

        logger.info("Job completed: %s, %d records updated", entry.job_name, records_updated)

    async def fail_job(self, entry: JobLog, error: BaseException) -> None:
        entry.status = "failed"
        entry.completed_at = utc_now()
        entry.error_message = str(error)
        entry.metadata_ = {"error_type": type(error).__name__}
        if isinstance(error, JobRunError):
            entry.records_updated = int(error.result.get("records_updated", 0))
            entry.metadata_.update(error.result)
        await self._db.commit()

        logger.error("Job failed: %s: %s", entry.job_name, str(error))

    async def get_last_run(self, job_name: str) -> JobLog | None:
        result = await self._db.execute(
            select(JobLog)
            .where(JobLog.job_name == job_name)
            .order_by(JobLog.started_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def check_job_health(
        self,
        job_name: str = STATUS_UPDATE_JOB,
        alert_hours: int = DEFAULT_ALERT_HOURS,
    ) -> JobHealthResponse:
        """Report how recently a job ran.

        healthy when the last run started at most 24 hours ago, warning up
        to alert_hours, critical beyond that or when it never ran.
        """
        last_run = await self.get_last_run(job_name)
        if last_run is None:
            return JobHealthResponse(
                job_name=job_name,
                status="critical",
                message="Job has never run",
            )

        elapsed = round(hours_since(last_run.started_at), 1)
        if elapsed <= HEALTHY_HOURS:
            status, message = "healthy", "Job running normally"
        elif elapsed <= alert_hours:
            status, message = "warning", "Job slightly delayed but within tolerance"
        else:
            status = "critical"
            message = f"Job has not run in {round(elapsed)} hours - missed execution detected"

        return JobHealthResponse(
            job_name=job_name,
            status=status,
            last_run_at=last_run.started_at,
            last_run_status=last_run.status,
            hours_since_last_run=elapsed,
            message=message,
        )


async def run_logged_job(
    db: AsyncSession,
    job_name: str,
    work: Callable[[], Awaitable[dict[str, Any]]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> dict[str, Any]:
    """Run a job with jobs_log bookkeeping and transient retries.

    Args:
        db: Session used for the jobs_log row.
        job_name: Name recorded in jobs_log.
        work: Coroutine factory returning a result dict with records_updated.
        max_retries: Retries for transient failures.
        base_delay: First backoff delay in seconds.
        sleep: Awaitable sleep, replaceable in tests.

    Returns:
        The work result.

    Raises:
        Exception: Whatever the work raised after retries, once the run has
            been marked failed.
    """
    job_log = JobLogService(db)
    entry = await job_log.start_job(job_name)

    try:
        result = await run_with_retry(work, max_retries, base_delay, sleep)
    except Exception as e:
        await db.rollback()
        await job_log.fail_job(entry, e)
        raise

    await job_log.complete_job(entry, int(result.get("records_updated", 0)), result)
    return result
