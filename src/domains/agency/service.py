# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Agency service.

Reads and updates the tenant record: contact details, currency, timezone
and the overdue and due soon notification settings.

Example:
    >>> service = AgencyService(db, agency_id)
    >>> agency = await service.get_current_agency()
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import NotFoundError
from src.domains.activity.service import ActivityService
from src.infrastructure.database.models import Agency
from src.models.agency import (
    AgencyResponse,
    AgencyUpdateRequest,
    NotificationSettingsUpdateRequest,
)

logger = logging.getLogger(__name__)


class AgencyNotFoundError(NotFoundError):
    """Raised when the agency row is missing."""

    pass


class AgencyService:
    """Service for the caller's agency.

    Attributes:
        _db: Async database session.
        _agency_id: Caller's agency.
    """

    def __init__(self, db: AsyncSession, agency_id: str) -> None:
        self._db = db
        self._agency_id = agency_id
        self._activity = ActivityService(db, agency_id)

    async def get_current_agency(self) -> AgencyResponse:
        """Get the caller's agency.

        Raises:
            AgencyNotFoundError: If the agency does not exist.
        """
        return AgencyResponse.model_validate(await self._get_agency())

    async def update_agency(
        self,
        request: AgencyUpdateRequest,
        user_id: str | None = None,
    ) -> AgencyResponse:
        """Update agency details.

        Args:
            request: Fields to change. Unset fields are left untouched.
            user_id: Acting admin.

        Returns:
            Updated agency.
        """
        agency = await self._get_agency()
        changes = request.model_dump(exclude_unset=True)
        for required in ("name", "currency", "timezone"):
            if changes.get(required) is None:
                changes.pop(required, None)
        self._apply(agency, changes)

        self._activity.log_activity(
            entity_type="agency",
            entity_id=agency.id,
            action="updated",
            description=f"Updated agency settings: {', '.join(sorted(changes)) or 'no changes'}",
            user_id=user_id,
            metadata={"fields": sorted(changes)},
        )
        await self._db.commit()
        await self._db.refresh(agency)

        logger.info("Agency updated: %s", agency.id)
        return AgencyResponse.model_validate(agency)

    async def update_notification_settings(
        self,
        request: NotificationSettingsUpdateRequest,
        user_id: str | None = None,
    ) -> AgencyResponse:
        """Update the overdue cutoff time and due soon threshold."""
        agency = await self._get_agency()
        changes = request.model_dump(exclude_unset=True, exclude_none=True)
        self._apply(agency, changes)

        self._activity.log_activity(
            entity_type="agency",
            entity_id=agency.id,
            action="updated",
            description="Updated notification settings",
            user_id=user_id,
            metadata={key: str(value) for key, value in changes.items()},
        )
        await self._db.commit()
        await self._db.refresh(agency)

        logger.info("Agency notification settings updated: %s", agency.id)
        return AgencyResponse.model_validate(agency)

    async def _get_agency(self) -> Agency:
        result = await self._db.execute(select(Agency).where(Agency.id == self._agency_id))
        agency = result.scalar_one_or_none()
        if not agency:
            raise AgencyNotFoundError(f"Agency {self._agency_id} not found")
        return agency

    @staticmethod
    def _apply(agency: Agency, changes: dict[str, Any]) -> None:
        for field, value in changes.items():
            setattr(agency, field, value)
