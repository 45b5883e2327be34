# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Installment status job.

Moves pending installments of active plans to overdue, agency by agency,
using each agency's own clock:

- due before the agency's local today: overdue
- due today: overdue once the local time is past the agency cutoff
- installments whose last_notified_date is today are left alone

Each transition writes a system activity entry and an agency-wide in-app
notification. Running the job again changes nothing, since transitioned
installments are no longer pending.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, time
from typing import Any, NamedTuple

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.domains.activity.service import ActivityService
from src.domains.dashboard.cache import invalidate_dashboard_cache
from src.domains.jobs.job_log import JobRunError, run_with_retry
from src.domains.notification.in_app import InAppNotificationService
from src.infrastructure.database.models import (
    Agency,
    Enrollment,
    Installment,
    PaymentPlan,
)
from src.utils.datetime import agency_now, is_past_cutoff, utc_now
from src.utils.money import format_currency

logger = logging.getLogger(__name__)

OVERDUE_LINK = "/payments/plans?status=overdue"


class AgencyClock(NamedTuple):
    """The agency fields the job needs, detached from the session.

    A rollback expires loaded rows, so retries must not touch Agency objects.
    """

    id: str
    timezone: str
    overdue_cutoff_time: time


class InstallmentStatusJob:
    """Marks installments overdue across every agency.

    Each agency is committed on its own and retried on its own, so a
    transient failure in one agency never repeats or discards the work
    already committed for the others.

    Attributes:
        _db: Unscoped async database session.
    """

    def __init__(
        self,
        db: AsyncSession,
        max_retries: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._db = db
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._sleep = sleep

    async def run(self, now: datetime | None = None) -> dict[str, Any]:
        """Run the job for all agencies.

        Args:
            now: Reference instant, defaults to the current time.

        Returns:
            Dict with per-agency results, records_updated and
            newly_overdue_ids.

        Raises:
            JobRunError: If any agency still failed after its retries. The
                error carries the results of the agencies that committed.
        """
        reference = now or utc_now()
        result = await self._db.execute(select(Agency).order_by(Agency.created_at))
        rows = result.scalars().all()
        agencies = [AgencyClock(a.id, a.timezone, a.overdue_cutoff_time) for a in rows]

        results: list[dict[str, Any]] = []
        failed: list[str] = []
        for agency in agencies:
            try:
                results.append(await self._update_agency_with_retry(agency, reference))
            except Exception as e:
                logger.exception("Installment status job failed for agency %s", agency.id)
                failed.append(agency.id)
                results.append(self._failed_result(agency.id, e))

        newly_overdue = [i for r in results for i in r["newly_overdue_ids"]]
        total = sum(r["updated_count"] for r in results)
        summary = {
            "agencies": results,
            "total_agencies_processed": len(results),
            "records_updated": total,
            "newly_overdue_ids": newly_overdue,
        }

        if failed:
            raise JobRunError(
                f"Installment status job failed for {len(failed)} of {len(results)} agencies: "
                + ", ".join(failed),
                summary,
            )

        logger.info(
            "Installment status job: %d installments marked overdue across %d agencies",
            total,
            len(results),
        )
        return summary

    async def _update_agency_with_retry(self, agency: AgencyClock, now: datetime) -> dict[str, Any]:
        async def attempt() -> dict[str, Any]:
            try:
                return await self.update_agency(agency, now)
            except Exception:
                await self._db.rollback()
                raise

        return await run_with_retry(attempt, self._max_retries, self._base_delay, self._sleep)

    @staticmethod
    def _failed_result(agency_id: str, error: BaseException) -> dict[str, Any]:
        return {
            "agency_id": agency_id,
            "updated_count": 0,
            "transitions": {"pending_to_overdue": 0},
            "newly_overdue_ids": [],
            "error": str(error),
        }

    async def update_agency(self, agency: AgencyClock, now: datetime) -> dict[str, Any]:
        """Transition one agency's installments in a single transaction.

        Returns:
            {agency_id, updated_count, transitions: {pending_to_overdue},
            newly_overdue_ids}
        """
        local_now = agency_now(agency.timezone, now)
        today = local_now.date()
        past_cutoff = is_past_cutoff(local_now, agency.overdue_cutoff_time)

        due_condition = Installment.student_due_date < today
        if past_cutoff:
            due_condition = Installment.student_due_date <= today

        result = await self._db.execute(
            select(Installment)
            .join(PaymentPlan, PaymentPlan.id == Installment.payment_plan_id)
            .where(
                Installment.agency_id == agency.id,
                Installment.status == "pending",
                PaymentPlan.status == "active",
                Installment.student_due_date.is_not(None),
                due_condition,
                or_(
                    Installment.last_notified_date.is_(None),
                    Installment.last_notified_date != today,
                ),
            )
            .options(
                selectinload(Installment.payment_plan)
                .selectinload(PaymentPlan.enrollment)
                .selectinload(Enrollment.student)
            )
            .order_by(Installment.student_due_date)
            .with_for_update(of=Installment, skip_locked=True)
        )
        installments = list(result.scalars().all())

        activity = ActivityService(self._db, agency.id)
        notifications = InAppNotificationService(self._db, agency.id)
        newly_overdue: list[str] = []

        for installment in installments:
            installment.status = "overdue"
            newly_overdue.append(installment.id)

            plan = installment.payment_plan
            student = plan.enrollment.student if plan.enrollment else None
            student_name = student.full_name if student else "Unknown student"
            amount = format_currency(installment.amount, plan.currency)
            due = installment.student_due_date

            activity.log_activity(
                entity_type="installment",
                entity_id=installment.id,
                action="marked_overdue",
                description=f"System marked installment {amount} as overdue for {student_name}",
                user_id=None,
                metadata={
                    "student_name": student_name,
                    "amount": str(installment.amount),
                    "installment_id": installment.id,
                    "payment_plan_id": plan.id,
                    "original_due_date": due.isoformat(),
                },
            )
            notifications.create_notification(
                type="overdue_payment",
                message=(
                    f"Payment overdue: {student_name} - {amount} due "
                    f"{due.strftime('%d/%m/%Y')}"
                ),
                link=OVERDUE_LINK,
            )

        await self._db.commit()
        if newly_overdue:
            await invalidate_dashboard_cache(agency.id)
            logger.info(
                "Agency %s: %d installments marked overdue (local %s, cutoff passed: %s)",
                agency.id,
                len(newly_overdue),
                local_now.isoformat(),
                past_cutoff,
            )

        return {
            "agency_id": agency.id,
            "updated_count": len(newly_overdue),
            "transitions": {"pending_to_overdue": len(newly_overdue)},
            "newly_overdue_ids": newly_overdue,
        }


async def update_installment_statuses(
    db: AsyncSession,
    now: datetime | None = None,
    max_retries: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> dict[str, Any]:
    """Run the installment status job, retrying transient failures per agency."""
    return await InstallmentStatusJob(db, max_retries, base_delay, sleep).run(now)
