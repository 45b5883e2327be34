# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the scheduler and the installment job actors."""

from unittest.mock import MagicMock, patch

import pytest
from dramatiq import Message

from src.core.config.settings import Settings
from src.domains.jobs.job_log import JobRunError
from src.infrastructure.background.middleware.agency import (
    AgencyContextMiddleware,
    get_current_agency,
    set_current_agency,
)
from src.infrastructure.background.scheduler import DramatiqScheduler, register_default_tasks
from src.infrastructure.background.tasks import installments


class TestRegisterDefaultTasks:
    """Tests for register_default_tasks."""

    def test_registers_every_job(self) -> None:
        scheduler = DramatiqScheduler()

        register_default_tasks(scheduler, Settings())

        assert sorted(t.actor_name for t in scheduler.list_tasks()) == [
            "check_job_health_job",
            "send_due_soon_notifications_job",
            "update_installment_statuses_job",
        ]

    def test_registered_actors_exist(self) -> None:
        scheduler = DramatiqScheduler()
        register_default_tasks(scheduler, Settings())

        for task in scheduler.list_tasks():
            assert scheduler._get_actor(task.actor_name) is not None

    def test_invalid_cron_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="Invalid cron"):
            DramatiqScheduler().add_cron_task("Broken", "update_installment_statuses_job", "0 7 *")


class TestExecuteTask:
    """Tests for sending scheduled messages."""

    @pytest.mark.asyncio
    async def test_sends_actor_message(self) -> None:
        scheduler = DramatiqScheduler()
        task = scheduler.add_cron_task("Status", "update_installment_statuses_job", "0 7 * * *")
        actor = MagicMock()

        with patch.object(scheduler, "_get_actor", return_value=actor):
            await scheduler._execute_task(task.id)

        actor.send.assert_called_once_with()
        assert task.run_count == 1
        assert task.last_run is not None

    @pytest.mark.asyncio
    async def test_enqueue_failure_is_counted(self) -> None:
        scheduler = DramatiqScheduler()
        task = scheduler.add_cron_task("Status", "update_installment_statuses_job", "0 7 * * *")
        actor = MagicMock()
        actor.send.side_effect = ConnectionError("redis down")

        with patch.object(scheduler, "_get_actor", return_value=actor):
            await scheduler._execute_task(task.id)

        assert task.error_count == 1
        assert task.run_count == 0


class TestEnqueueOverdueNotifications:
    """Tests for enqueue_overdue_notifications."""

    def test_one_message_per_agency_with_context(self) -> None:
        sent = []

        def capture(installment_ids):
            sent.append((installment_ids, get_current_agency()))

        with patch.object(installments.send_overdue_notifications, "send", side_effect=capture):
            queued = installments.enqueue_overdue_notifications(
                [
                    {"agency_id": "agency-1", "newly_overdue_ids": ["inst-1", "inst-2"]},
                    {"agency_id": "agency-2", "newly_overdue_ids": []},
                    {"agency_id": "agency-3", "newly_overdue_ids": ["inst-3"]},
                ]
            )

        assert queued == 2
        assert sent == [(["inst-1", "inst-2"], "agency-1"), (["inst-3"], "agency-3")]
        assert get_current_agency() is None


class TestAgencyContextMiddleware:
    """Tests for AgencyContextMiddleware."""

    def _message(self) -> Message:
        return Message(
            queue_name="notifications",
            actor_name="send_overdue_notifications",
            args=(["inst-1"],),
            kwargs={},
            options={},
        )

    def test_agency_travels_with_message(self) -> None:
        middleware = AgencyContextMiddleware()
        message = self._message()

        set_current_agency("agency-1")
        try:
            middleware.before_enqueue(MagicMock(), message, None)
        finally:
            set_current_agency(None)

        assert message.options["agency_id"] == "agency-1"

        middleware.before_process_message(MagicMock(), message)
        assert get_current_agency() == "agency-1"

        middleware.after_process_message(MagicMock(), message)
        assert get_current_agency() is None


class TestStatusJobActor:
    """Tests for update_installment_statuses_job."""

    def test_partial_failure_still_queues_committed_agencies(self) -> None:
        partial = {
            "agencies": [
                {"agency_id": "agency-1", "newly_overdue_ids": ["inst-1"]},
                {"agency_id": "agency-2", "newly_overdue_ids": [], "error": "boom"},
            ],
            "total_agencies_processed": 2,
            "records_updated": 1,
            "newly_overdue_ids": ["inst-1"],
        }

        def fail(coro):
            coro.close()
            raise JobRunError("Installment status job failed for 1 of 2 agencies", partial)

        with (
            patch.object(installments, "run_async", side_effect=fail),
            patch.object(installments.send_overdue_notifications, "send") as send,
        ):
            outcome = installments.update_installment_statuses_job.fn()

        send.assert_called_once_with(["inst-1"])
        assert outcome["status"] == "failed"
        assert outcome["records_updated"] == 1
