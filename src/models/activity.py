# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Activity log and job schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

JobHealthStatus = Literal["healthy", "warning", "critical"]


class ActivityResponse(BaseModel):
    """Activity feed entry."""

    id: str
    entity_type: str
    entity_id: str
    action: str
    description: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    user_id: str | None = None
    user_name: str
    created_at: datetime


class ActivityListResponse(BaseModel):
    """Paginated activity feed."""

    items: list[ActivityResponse]
    total: int
    limit: int
    offset: int


class JobRunResponse(BaseModel):
    """Result of a manually triggered job."""

    job_name: str
    status: str
    records_updated: int = 0
    details: dict[str, Any] = Field(default_factory=dict)


class JobHealthResponse(BaseModel):
    """Health of a scheduled job based on its last run."""

    job_name: str
    status: JobHealthStatus
    last_run_at: datetime | None = None
    last_run_status: str | None = None
    hours_since_last_run: float | None = None
    message: str
