# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Due soon reminder job.

Finds pending installments of active plans due within each agency's
due_soon_threshold_days of its local today, and dispatches due_soon
emails for them. Deduplication in the dispatcher keeps reminders to one
per recipient and installment.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.domains.notification.dispatcher import NotificationDispatcher
from src.infrastructure.database.models import Agency, Installment, PaymentPlan
from src.utils.datetime import agency_today, utc_now

logger = logging.getLogger(__name__)


async def find_due_soon_installments(
    db: AsyncSession,
    agency: Agency,
    now: datetime | None = None,
) -> list[str]:
    """Get IDs of an agency's pending installments due within its threshold."""
    today = agency_today(agency.timezone, now)
    horizon = today + timedelta(days=agency.due_soon_threshold_days)

    result = await db.execute(
        select(Installment.id)
        .join(PaymentPlan, PaymentPlan.id == Installment.payment_plan_id)
        .where(
            Installment.agency_id == agency.id,
            Installment.status == "pending",
            PaymentPlan.status == "active",
            Installment.student_due_date >= today,
            Installment.student_due_date <= horizon,
        )
        .order_by(Installment.student_due_date)
    )
    return list(result.scalars().all())


async def send_due_soon_notifications(
    db: AsyncSession,
    dispatcher: NotificationDispatcher,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Dispatch due_soon emails for every agency.

    Returns:
        Dict with per-agency counts, records_updated (emails sent) and the
        dispatch totals.
    """
    reference = now or utc_now()
    agencies = (await db.execute(select(Agency).order_by(Agency.created_at))).scalars().all()

    per_agency: list[dict[str, Any]] = []
    sent = failed = skipped = 0

    for agency in agencies:
        installment_ids = await find_due_soon_installments(db, agency, reference)
        if not installment_ids:
            per_agency.append({"agency_id": agency.id, "installments": 0, "sent": 0})
            continue

        summary = await dispatcher.send_notifications(installment_ids, "due_soon")
        sent += summary.sent
        failed += summary.failed
        skipped += summary.skipped
        per_agency.append(
            {"agency_id": agency.id, "installments": len(installment_ids), "sent": summary.sent}
        )

    logger.info(
        "Due soon notifications: %d sent, %d failed, %d skipped across %d agencies",
        sent,
        failed,
        skipped,
        len(per_agency),
    )
    return {
        "agencies": per_agency,
        "records_updated": sent,
        "sent": sent,
        "failed": failed,
        "skipped": skipped,
    }
