# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unauthenticated health checks for load balancers and uptime checks.

PostgreSQL is required: without it nothing in Pleeno works, so it alone
decides readiness. Redis only holds dashboard cache and rate limit counters,
so losing it reports "degraded" and traffic keeps flowing.
"""

import logging
import time
from datetime import datetime
from typing import Awaitable, Callable, Literal

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from src import __version__
from src.core.config import get_settings
from src.infrastructure.cache import get_redis_or_none
from src.infrastructure.database import check_database_connection
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

router = APIRouter()

_started = time.monotonic()

Status = Literal["healthy", "degraded", "unhealthy"]


class ComponentHealth(BaseModel):
    status: Status
    latency_ms: float | None = None
    message: str | None = None


class ComponentsHealth(BaseModel):
    database: ComponentHealth
    redis: ComponentHealth


class HealthResponse(BaseModel):
    status: Status
    version: str
    environment: str
    uptime_seconds: int
    checked_at: datetime
    components: ComponentsHealth


class ReadinessResponse(BaseModel):
    ready: bool
    checks: ComponentsHealth


async def _run_check(
    check: Callable[[], Awaitable[bool]], failure: Status, message: str
) -> ComponentHealth:
    started = time.perf_counter()
    if not await check():
        return ComponentHealth(status=failure, message=message)
    latency = (time.perf_counter() - started) * 1000
    return ComponentHealth(status="healthy", latency_ms=round(latency, 2))


async def check_database() -> ComponentHealth:
    result = await _run_check(check_database_connection, "unhealthy", "Database unreachable")
    if result.status != "healthy":
        logger.error("Database health check failed")
    return result


async def check_redis() -> ComponentHealth:
    redis = get_redis_or_none()
    if redis is None:
        return ComponentHealth(status="degraded", message="Redis not initialized")

    result = await _run_check(redis.ping, "degraded", "Redis unreachable")
    if result.status != "healthy":
        logger.warning("Redis health check failed")
    return result


async def _components() -> ComponentsHealth:
    return ComponentsHealth(database=await check_database(), redis=await check_redis())


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Overall status: unhealthy without the database, degraded without Redis."""
    components = await _components()
    if components.database.status != "healthy":
        overall: Status = "unhealthy"
    elif components.redis.status != "healthy":
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        version=__version__,
        environment=get_settings().environment,
        uptime_seconds=int(time.monotonic() - _started),
        checked_at=utc_now(),
        components=components,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(response: Response) -> ReadinessResponse:
    """503 until the database answers."""
    components = await _components()
    ready = components.database.status == "healthy"
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(ready=ready, checks=components)
