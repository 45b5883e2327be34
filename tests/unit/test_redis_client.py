# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the agency-isolated Redis client.

The redis.asyncio connection is replaced with a mock, so no server is needed.
"""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.core.config.settings import Settings
from src.infrastructure.cache.redis_client import (
    RedisClient,
    RedisError,
    close_redis,
    get_redis,
    get_redis_or_none,
)


@pytest.fixture
def connection() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def redis_client(connection: AsyncMock) -> RedisClient:
    client = RedisClient(Settings())
    client._redis = connection
    return client


class TestAgencyKeys:
    """Tests for agency key isolation."""

    def test_agency_key_prefix(self, redis_client: RedisClient) -> None:
        assert redis_client.agency_key("agency-1", "dashboard:kpis") == (
            "agency:agency-1:dashboard:kpis"
        )

    @pytest.mark.asyncio
    async def test_set_for_agency_serializes_json(
        self, redis_client: RedisClient, connection: AsyncMock
    ) -> None:
        await redis_client.set_for_agency(
            "agency-1", "dashboard:kpis", {"active_students": 3}, expire_seconds=300
        )

        connection.set.assert_awaited_once_with(
            "agency:agency-1:dashboard:kpis", '{"active_students": 3}', ex=300
        )

    @pytest.mark.asyncio
    async def test_get_for_agency_deserializes(
        self, redis_client: RedisClient, connection: AsyncMock
    ) -> None:
        connection.get.return_value = '{"active_students": 3}'

        value = await redis_client.get_for_agency("agency-1", "dashboard:kpis")

        assert value == {"active_students": 3}
        connection.get.assert_awaited_once_with("agency:agency-1:dashboard:kpis")

    @pytest.mark.asyncio
    async def test_plain_strings_round_trip(
        self, redis_client: RedisClient, connection: AsyncMock
    ) -> None:
        connection.get.return_value = "not json"

        assert await redis_client.get("key") == "not json"

    @pytest.mark.asyncio
    async def test_delete_agency_keys_matches_prefix(
        self, redis_client: RedisClient, connection: AsyncMock
    ) -> None:
        patterns = []

        async def scan_iter(match):
            patterns.append(match)
            for key in ("agency:agency-1:dashboard:kpis", "agency:agency-1:dashboard:trend"):
                yield key

        connection.scan_iter = scan_iter
        connection.delete.return_value = 2

        deleted = await redis_client.delete_agency_keys("agency-1", "dashboard:*")

        assert deleted == 2
        assert patterns == ["agency:agency-1:dashboard:*"]
        connection.delete.assert_awaited_once_with(
            "agency:agency-1:dashboard:kpis", "agency:agency-1:dashboard:trend"
        )

    @pytest.mark.asyncio
    async def test_delete_agency_keys_without_matches(
        self, redis_client: RedisClient, connection: AsyncMock
    ) -> None:
        async def scan_iter(match):
            return
            yield

        connection.scan_iter = scan_iter

        assert await redis_client.delete_agency_keys("agency-1") == 0
        connection.delete.assert_not_awaited()


class TestErrors:
    """Tests for error wrapping and health."""

    @pytest.mark.asyncio
    async def test_operation_errors_are_wrapped(
        self, redis_client: RedisClient, connection: AsyncMock
    ) -> None:
        connection.get.side_effect = RedisConnectionError("refused")

        with pytest.raises(RedisError, match="Failed to get key: key"):
            await redis_client.get("key")

    @pytest.mark.asyncio
    async def test_not_connected(self) -> None:
        with pytest.raises(RedisError, match="not connected"):
            await RedisClient(Settings()).get("key")

    @pytest.mark.asyncio
    async def test_ping_reports_failure(
        self, redis_client: RedisClient, connection: AsyncMock
    ) -> None:
        connection.ping.side_effect = RedisConnectionError("refused")

        assert await redis_client.ping() is False

    @pytest.mark.asyncio
    async def test_uninitialized_global_client(self) -> None:
        await close_redis()

        assert get_redis_or_none() is None
        with pytest.raises(RedisError, match="not initialized"):
            get_redis()
