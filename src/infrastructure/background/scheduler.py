# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-process APScheduler that enqueues the installment jobs.

The API process owns the clock; workers own the work. Each scheduled entry
only sends a Dramatiq message for a job actor, so a slow status run never
blocks the event loop and a second API replica with the scheduler disabled
(JOBS_SCHEDULER_ENABLED=false) cannot double-run a job.

Jobs registered by default (UTC):
    update_installment_statuses_job   JOBS_STATUS_UPDATE_CRON, 07:00 daily
    send_due_soon_notifications_job   JOBS_DUE_SOON_CRON, 19:00 daily
    check_job_health_job              every JOBS_HEALTH_CHECK_INTERVAL_MINUTES
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

if TYPE_CHECKING:
    from src.core.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class ScheduledJob:
    """One periodic job and its enqueue counters.

    The actor name doubles as the APScheduler job id, so a job actor can be
    registered at most once.
    """

    name: str
    actor_name: str
    trigger: BaseTrigger
    last_run: datetime | None = None
    run_count: int = 0
    error_count: int = 0

    @property
    def id(self) -> str:
        return self.actor_name


class DramatiqScheduler:
    """Keeps the job table and mirrors it into an AsyncIOScheduler once started."""

    def __init__(self) -> None:
        self._scheduler: AsyncIOScheduler | None = None
        self._jobs: dict[str, ScheduledJob] = {}

    def _get_actor(self, actor_name: str) -> Any:
        from src.infrastructure.background import tasks

        return getattr(tasks, actor_name, None)

    def _register(self, job: ScheduledJob) -> ScheduledJob:
        if job.id in self._jobs:
            raise ValueError(f"Job already scheduled: {job.actor_name}")
        self._jobs[job.id] = job
        if self._scheduler is not None:
            self._schedule(job)
        return job

    def _schedule(self, job: ScheduledJob) -> None:
        self._scheduler.add_job(
            self._execute_task,
            trigger=job.trigger,
            args=[job.id],
            id=job.id,
            name=job.name,
            coalesce=True,
            max_instances=1,
            replace_existing=True,
        )

    def add_cron_task(self, name: str, actor_name: str, cron_expression: str) -> ScheduledJob:
        """Schedule an actor on a five-field UTC crontab.

        Raises:
            ValueError: If the cron expression is invalid or the actor is
                already scheduled.
        """
        if len(cron_expression.split()) != 5:
            raise ValueError(f"Invalid cron expression: {cron_expression!r}")
        try:
            trigger = CronTrigger.from_crontab(cron_expression, timezone=timezone.utc)
        except ValueError as e:
            raise ValueError(f"Invalid cron expression: {cron_expression!r} ({e})") from e

        job = self._register(ScheduledJob(name=name, actor_name=actor_name, trigger=trigger))
        logger.info("Scheduled %s with cron %s", actor_name, cron_expression)
        return job

    def add_interval_task(self, name: str, actor_name: str, minutes: int) -> ScheduledJob:
        if minutes < 1:
            raise ValueError("Interval must be at least one minute")

        trigger = IntervalTrigger(minutes=minutes, timezone=timezone.utc)
        job = self._register(ScheduledJob(name=name, actor_name=actor_name, trigger=trigger))
        logger.info("Scheduled %s every %d minutes", actor_name, minutes)
        return job

    async def _execute_task(self, job_id: str) -> None:
        """Send the job's message. Failures are counted, never raised into APScheduler."""
        job = self._jobs.get(job_id)
        if job is None:
            return

        actor = self._get_actor(job.actor_name)
        if actor is None:
            job.error_count += 1
            logger.error("No actor named %s for job %s", job.actor_name, job.name)
            return

        try:
            actor.send()
        except Exception:
            job.error_count += 1
            logger.exception("Failed to enqueue %s", job.actor_name)
            return

        job.last_run = datetime.now(timezone.utc)
        job.run_count += 1
        logger.debug("Enqueued %s", job.actor_name)

    def list_tasks(self) -> list[ScheduledJob]:
        return list(self._jobs.values())

    def start(self) -> None:
        if self._scheduler is not None:
            return
        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        for job in self._jobs.values():
            self._schedule(job)
        self._scheduler.start()
        logger.info("Scheduler started with %d jobs", len(self._jobs))

    def stop(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Scheduler stopped")


_scheduler: DramatiqScheduler | None = None


def get_scheduler() -> DramatiqScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = DramatiqScheduler()
    return _scheduler


def register_default_tasks(scheduler: DramatiqScheduler, settings: "Settings") -> None:
    """Register the status, due soon and health jobs from JobSettings."""
    scheduler.add_cron_task(
        "Update installment statuses",
        "update_installment_statuses_job",
        settings.jobs.status_update_cron,
    )
    scheduler.add_cron_task(
        "Send due soon notifications",
        "send_due_soon_notifications_job",
        settings.jobs.due_soon_cron,
    )
    scheduler.add_interval_task(
        "Job health check",
        "check_job_health_job",
        settings.jobs.health_check_interval_minutes,
    )


async def start_scheduler(settings: "Settings") -> DramatiqScheduler:
    """Register the default jobs once and start the process-wide scheduler."""
    scheduler = get_scheduler()
    if not scheduler.list_tasks():
        register_default_tasks(scheduler, settings)
    scheduler.start()
    return scheduler


async def stop_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.stop()
        _scheduler = None
