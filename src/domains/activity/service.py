# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Activity log service.

Every service that changes agency data records a human readable entry
here. Entries are added to the caller's session and committed together
with the change they describe.

Example:
    >>> activity = ActivityService(db, agency_id)
    >>> activity.log_activity("payment", installment.id, "recorded", "Recorded payment")
    >>> await db.commit()
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database.models import ActivityLog, User
from src.models.activity import ActivityResponse

logger = logging.getLogger(__name__)

SYSTEM_USER_NAME = "System"


class ActivityService:
    """Service for the agency activity feed.

    Attributes:
        _db: Async database session.
        _agency_id: Agency the entries belong to.
    """

    def __init__(self, db: AsyncSession, agency_id: str) -> None:
        self._db = db
        self._agency_id = agency_id

    def log_activity(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        description: str,
        user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ActivityLog:
        """Add an activity entry to the session without committing.

        Args:
            entity_type: Kind of entity that changed.
            entity_id: ID of the entity.
            action: What happened.
            description: Human readable sentence.
            user_id: Acting user, None for the system.
            metadata: Extra structured context.

        Returns:
            The pending ActivityLog row.
        """
        entry = ActivityLog(
            agency_id=self._agency_id,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            description=description,
            metadata_=metadata or {},
        )
        self._db.add(entry)
        logger.debug("Activity logged: %s %s %s", entity_type, action, entity_id)
        return entry

    async def list_activity(
        self,
        entity_type: str | None = None,
        entity_id: str | None = None,
        since: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[ActivityResponse], int]:
        """List activity newest first.

        Args:
            entity_type: Filter by entity type.
            entity_id: Filter by entity ID.
            since: Only entries created at or after this time.
            limit: Maximum entries.
            offset: Entries to skip.

        Returns:
            Tuple of (entries, total count).
        """
        stmt = select(ActivityLog, User.full_name).outerjoin(
            User, User.id == ActivityLog.user_id
        ).where(ActivityLog.agency_id == self._agency_id)

        if entity_type:
            stmt = stmt.where(ActivityLog.entity_type == entity_type)
        if entity_id:
            stmt = stmt.where(ActivityLog.entity_id == entity_id)
        if since:
            stmt = stmt.where(ActivityLog.created_at >= since)

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self._db.execute(count_stmt)).scalar() or 0

        stmt = stmt.order_by(ActivityLog.created_at.desc()).offset(offset).limit(limit)
        result = await self._db.execute(stmt)

        items = [
            ActivityResponse(
                id=entry.id,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                action=entry.action,
                description=entry.description,
                metadata=entry.metadata_ or {},
                user_id=entry.user_id,
                user_name=user_name if entry.user_id and user_name else SYSTEM_USER_NAME,
                created_at=entry.created_at,
            )
            for entry, user_name in result.all()
        ]
        return items, total
