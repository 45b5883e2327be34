# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-app notification service.

Notifications with a user_id belong to that user. Notifications without
one are shown to everyone in the agency.
"""

import logging

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import NotFoundError
from src.infrastructure.database.models import Notification
from src.models.notification import NotificationListResponse, NotificationResponse
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class NotificationNotFoundError(NotFoundError):
    """Raised when a notification is not visible to the user."""

    def __init__(self, notification_id: str) -> None:
        super().__init__(f"Notification not found: {notification_id}")


class InAppNotificationService:
    """Service for in-app notifications.

    Attributes:
        _db: Async database session.
        _agency_id: Agency the notifications belong to.
    """

    def __init__(self, db: AsyncSession, agency_id: str) -> None:
        self._db = db
        self._agency_id = agency_id

    def create_notification(
        self,
        type: str,
        message: str,
        link: str | None = None,
        user_id: str | None = None,
    ) -> Notification:
        """Add a notification to the session without committing.

        Args:
            type: overdue_payment, due_soon, payment_received or system.
            message: Text shown to the user.
            link: Optional in-app path.
            user_id: Target user, None for agency-wide.

        Returns:
            The pending Notification row.
        """
        notification = Notification(
            agency_id=self._agency_id,
            user_id=user_id,
            type=type,
            message=message,
            link=link,
            is_read=False,
        )
        self._db.add(notification)
        return notification

    def _visible_to(self, user_id: str):
        return (
            Notification.agency_id == self._agency_id,
            or_(Notification.user_id == user_id, Notification.user_id.is_(None)),
        )

    async def list_notifications(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> NotificationListResponse:
        """List the user's own and agency-wide notifications, newest first."""
        conditions = list(self._visible_to(user_id))
        if unread_only:
            conditions.append(Notification.is_read.is_(False))

        query = select(Notification).where(*conditions)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self._db.execute(count_query)).scalar() or 0

        unread_query = select(func.count(Notification.id)).where(
            *self._visible_to(user_id), Notification.is_read.is_(False)
        )
        unread_count = (await self._db.execute(unread_query)).scalar() or 0

        query = query.order_by(Notification.created_at.desc()).limit(limit).offset(offset)
        result = await self._db.execute(query)

        return NotificationListResponse(
            items=[NotificationResponse.model_validate(n) for n in result.scalars().all()],
            total=total,
            unread_count=unread_count,
            limit=limit,
            offset=offset,
        )

    async def mark_read(self, notification_id: str, user_id: str) -> NotificationResponse:
        """Mark one notification as read.

        Raises:
            NotificationNotFoundError: If the notification is not visible to the user.
        """
        result = await self._db.execute(
            select(Notification).where(
                Notification.id == notification_id, *self._visible_to(user_id)
            )
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            raise NotificationNotFoundError(notification_id)

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utc_now()
            await self._db.commit()
            await self._db.refresh(notification)

        return NotificationResponse.model_validate(notification)

    async def mark_all_read(self, user_id: str) -> int:
        """Mark every unread notification visible to the user as read.

        Returns:
            Number of notifications updated.
        """
        result = await self._db.execute(
            update(Notification)
            .where(*self._visible_to(user_id), Notification.is_read.is_(False))
            .values(is_read=True, read_at=utc_now())
        )
        await self._db.commit()

        logger.info("Marked %d notifications read for user %s", result.rowcount, user_id)
        return result.rowcount
