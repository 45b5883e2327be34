# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Cache infrastructure using Redis.

Agency isolation is achieved via key prefixes: agency:{agency_id}:*

Example:
    from src.infrastructure.cache import init_redis, get_redis

    await init_redis(settings)
    redis = get_redis()
    await redis.set_for_agency(agency_id, "dashboard:kpis", kpis, expire_seconds=300)
    await close_redis()
"""

from src.infrastructure.cache.redis_client import (
    RedisClient,
    RedisError,
    close_redis,
    get_redis,
    get_redis_or_none,
    init_redis,
)

__all__ = [
    "RedisClient",
    "RedisError",
    "close_redis",
    "get_redis",
    "get_redis_or_none",
    "init_redis",
]
