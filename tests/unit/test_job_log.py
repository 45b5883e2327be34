# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for job bookkeeping, retries and health checks."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from src.domains.jobs.job_log import (
    STATUS_UPDATE_JOB,
    JobLogService,
    is_transient_error,
    run_logged_job,
    run_with_retry,
)
from src.infrastructure.database.connection import DatabaseError
from src.infrastructure.database.models import JobLog
from src.utils.datetime import utc_now
from tests.conftest import result_with


def connection_error() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("could not connect: Connection refused"))


class TestIsTransientError:
    """Tests for is_transient_error."""

    def test_connection_errors_are_transient(self) -> None:
        assert is_transient_error(connection_error())
        assert is_transient_error(ConnectionResetError())
        assert is_transient_error(asyncio.TimeoutError())

    def test_wrapped_errors_use_the_original(self) -> None:
        assert is_transient_error(DatabaseError("failed", connection_error()))
        assert not is_transient_error(DatabaseError("failed", ValueError("bad")))

    def test_permanent_errors_are_not_retried(self) -> None:
        assert not is_transient_error(OperationalError("SELECT 1", {}, Exception("syntax error")))
        assert not is_transient_error(IntegrityError("INSERT", {}, Exception("duplicate key")))
        assert not is_transient_error(ValueError("bad input"))


class TestRunWithRetry:
    """Tests for run_with_retry."""

    @pytest.mark.asyncio
    async def test_retries_with_exponential_backoff(self) -> None:
        sleep = AsyncMock()
        operation = AsyncMock(
            side_effect=[connection_error(), connection_error(), {"records_updated": 3}]
        )

        result = await run_with_retry(operation, max_retries=3, base_delay=1.0, sleep=sleep)

        assert result == {"records_updated": 3}
        assert operation.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self) -> None:
        sleep = AsyncMock()
        operation = AsyncMock(side_effect=connection_error())

        with pytest.raises(OperationalError):
            await run_with_retry(operation, max_retries=3, base_delay=1.0, sleep=sleep)

        assert operation.await_count == 4
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_permanent_error_fails_immediately(self) -> None:
        sleep = AsyncMock()
        operation = AsyncMock(side_effect=ValueError("bad data"))

        with pytest.raises(ValueError):
            await run_with_retry(operation, sleep=sleep)

        assert operation.await_count == 1
        sleep.assert_not_awaited()


class TestRunLoggedJob:
    """Tests for run_logged_job."""

    @pytest.mark.asyncio
    async def test_success_is_recorded(self, mock_db) -> None:
        work = AsyncMock(return_value={"records_updated": 5, "agencies": []})

        result = await run_logged_job(mock_db, STATUS_UPDATE_JOB, work)

        entry = mock_db.add.call_args.args[0]
        assert isinstance(entry, JobLog)
        assert entry.job_name == STATUS_UPDATE_JOB
        assert entry.status == "success"
        assert entry.records_updated == 5
        assert entry.completed_at is not None
        assert result["records_updated"] == 5

    @pytest.mark.asyncio
    async def test_failure_is_recorded_and_raised(self, mock_db) -> None:
        work = AsyncMock(side_effect=ValueError("constraint violated"))

        with pytest.raises(ValueError):
            await run_logged_job(mock_db, STATUS_UPDATE_JOB, work)

        entry = mock_db.add.call_args.args[0]
        assert entry.status == "failed"
        assert entry.error_message == "constraint violated"
        assert entry.metadata_ == {"error_type": "ValueError"}
        mock_db.rollback.assert_awaited_once()


class TestCheckJobHealth:
    """Tests for JobLogService.check_job_health."""

    def _last_run(self, hours_ago: float) -> MagicMock:
        entry = MagicMock()
        entry.started_at = utc_now() - timedelta(hours=hours_ago)
        entry.status = "success"
        return entry

    @pytest.mark.asyncio
    async def test_never_run_is_critical(self, mock_db) -> None:
        mock_db.execute.return_value = result_with(None)

        health = await JobLogService(mock_db).check_job_health()

        assert health.status == "critical"
        assert health.last_run_at is None

    @pytest.mark.parametrize(
        ("hours_ago", "expected"),
        [(2, "healthy"), (24.5, "warning"), (30, "critical")],
    )
    @pytest.mark.asyncio
    async def test_status_by_time_since_last_run(self, mock_db, hours_ago, expected) -> None:
        mock_db.execute.return_value = result_with(self._last_run(hours_ago))

        health = await JobLogService(mock_db).check_job_health(STATUS_UPDATE_JOB, 25)

        assert health.status == expected
        assert health.last_run_status == "success"
        assert health.hours_since_last_run == pytest.approx(hours_ago, abs=0.1)
