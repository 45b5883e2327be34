# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Agency-scoped Redis cache.

Redis holds derived data only (dashboard aggregates), so the API keeps
serving when it is down: init failures are logged by the lifespan and
callers use get_redis_or_none(). Every key an agency owns lives under
``agency:{agency_id}:`` which lets one write invalidate all of that agency's
entries with a SCAN and never touch another agency's.
"""

import json
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError as BaseRedisError

if TYPE_CHECKING:
    from src.core.config.settings import Settings

# Keys per DEL when invalidating an agency.
DELETE_BATCH_SIZE = 500


class RedisError(Exception):
    """A cache operation failed. Wraps the redis-py exception when there is one."""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error is None:
            return self.message
        return f"{self.message}: {self.original_error}"


@contextmanager
def _wrapped(message: str) -> Iterator[None]:
    try:
        yield
    except BaseRedisError as e:
        raise RedisError(message, e) from e


def _dump(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def _load(raw: str | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


class RedisClient:
    """Thin async wrapper over a redis-py connection pool."""

    AGENCY_KEY_PREFIX = "agency"

    def __init__(self, settings: "Settings") -> None:
        self._settings = settings
        self._pool: ConnectionPool | None = None
        self._redis: Redis | None = None

    async def connect(self) -> None:
        """Open the pool and ping once so startup sees a dead server immediately.

        Raises:
            RedisError: If the server cannot be reached.
        """
        self._pool = ConnectionPool.from_url(
            self._settings.redis.url,
            max_connections=self._settings.redis.max_connections,
            decode_responses=True,
        )
        self._redis = Redis(connection_pool=self._pool)
        with _wrapped("Failed to connect to Redis"):
            await self._redis.ping()

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None

    @property
    def connection(self) -> Redis:
        if self._redis is None:
            raise RedisError("Redis client not connected. Call connect() first.")
        return self._redis

    def agency_key(self, agency_id: str, key: str) -> str:
        return f"{self.AGENCY_KEY_PREFIX}:{agency_id}:{key}"

    async def set(self, key: str, value: Any, expire_seconds: int | None = None) -> None:
        """Store a value. Non-string values are stored as JSON."""
        redis = self.connection
        with _wrapped(f"Failed to set key: {key}"):
            await redis.set(key, _dump(value), ex=expire_seconds)

    async def get(self, key: str) -> Any:
        """Return the stored value, decoded from JSON when it parses, else None."""
        redis = self.connection
        with _wrapped(f"Failed to get key: {key}"):
            return _load(await redis.get(key))

    async def set_for_agency(
        self,
        agency_id: str,
        key: str,
        value: Any,
        expire_seconds: int | None = None,
    ) -> None:
        await self.set(self.agency_key(agency_id, key), value, expire_seconds)

    async def get_for_agency(self, agency_id: str, key: str) -> Any:
        return await self.get(self.agency_key(agency_id, key))

    async def delete_agency_keys(self, agency_id: str, pattern: str = "*") -> int:
        """Delete the agency's keys matching ``pattern`` and return how many went.

        Raises:
            RedisError: If the scan or delete fails.
        """
        redis = self.connection
        deleted = 0
        with _wrapped(f"Failed to delete agency keys: {agency_id}/{pattern}"):
            batch: list[str] = []
            async for key in redis.scan_iter(match=self.agency_key(agency_id, pattern)):
                batch.append(key)
                if len(batch) >= DELETE_BATCH_SIZE:
                    deleted += await redis.delete(*batch)
                    batch = []
            if batch:
                deleted += await redis.delete(*batch)
        return deleted

    async def ping(self) -> bool:
        """Health check; never raises."""
        try:
            with _wrapped("Redis ping failed"):
                await self.connection.ping()
        except RedisError:
            return False
        return True


_redis_client: RedisClient | None = None


async def init_redis(settings: "Settings") -> None:
    """Connect the process-wide client.

    Raises:
        RedisError: If Redis is unreachable. The client stays unset.
    """
    global _redis_client

    client = RedisClient(settings)
    try:
        await client.connect()
    except RedisError:
        await client.close()
        raise
    _redis_client = client


async def close_redis() -> None:
    global _redis_client

    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None


def get_redis() -> RedisClient:
    if _redis_client is None:
        raise RedisError("Redis not initialized. Call init_redis() first.")
    return _redis_client


def get_redis_or_none() -> RedisClient | None:
    """The process-wide client, or None when the cache is unavailable."""
    return _redis_client
