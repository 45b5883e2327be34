# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dashboard widget cache.

Widgets are cached per agency under agency:{agency_id}:dashboard:{widget}.
A missing or unreachable Redis only disables caching.
"""

import logging
from typing import Any

from src.infrastructure.cache import RedisError, get_redis_or_none

logger = logging.getLogger(__name__)

DASHBOARD_KEY_PREFIX = "dashboard"


def dashboard_key(widget: str, *parts: object) -> str:
    """Build the cache key of a widget, e.g. dashboard:cash_flow:90:week."""
    return ":".join([DASHBOARD_KEY_PREFIX, widget, *(str(p) for p in parts)])


async def get_cached(agency_id: str, key: str) -> Any:
    redis = get_redis_or_none()
    if redis is None:
        return None
    try:
        return await redis.get_for_agency(agency_id, key)
    except RedisError as e:
        logger.warning("Dashboard cache read failed for %s: %s", key, str(e))
        return None


async def set_cached(agency_id: str, key: str, value: Any, ttl_seconds: int) -> None:
    redis = get_redis_or_none()
    if redis is None:
        return
    try:
        await redis.set_for_agency(agency_id, key, value, expire_seconds=ttl_seconds)
    except RedisError as e:
        logger.warning("Dashboard cache write failed for %s: %s", key, str(e))


async def invalidate_dashboard_cache(agency_id: str) -> int:
    """Drop every cached widget of an agency.

    Returns:
        Number of keys removed.
    """
    redis = get_redis_or_none()
    if redis is None:
        return 0
    try:
        deleted = await redis.delete_agency_keys(agency_id, f"{DASHBOARD_KEY_PREFIX}:*")
    except RedisError as e:
        logger.warning("Dashboard cache invalidation failed for %s: %s", agency_id, str(e))
        return 0

    logger.debug("Invalidated %d dashboard cache keys for agency %s", deleted, agency_id)
    return deleted
