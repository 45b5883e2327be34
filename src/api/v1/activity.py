# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Activity feed endpoint.

- GET / - Agency activity, newest first, filterable by entity and date
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_agency_db, require_auth
from src.api.middleware.auth import CurrentUser
from src.domains.activity.service import ActivityService
from src.models.activity import ActivityListResponse

router = APIRouter()


@router.get(
    "",
    response_model=ActivityListResponse,
    summary="List activity",
    description="Entries written by the system show the user name System.",
)
async def list_activity(
    entity_type: Annotated[str | None, Query(description="payment, student, college ...")] = None,
    entity_id: Annotated[str | None, Query()] = None,
    since: Annotated[datetime | None, Query(description="Only entries after this instant")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> ActivityListResponse:
    service = ActivityService(db, current_user.agency_id)
    items, total = await service.list_activity(
        entity_type=entity_type,
        entity_id=entity_id,
        since=since,
        limit=limit,
        offset=offset,
    )
    return ActivityListResponse(items=items, total=total, limit=limit, offset=offset)
