"""Unit tests for the cron scheduler service."""

import logging
import threading
from unittest.mock import Mock

import pytest

from notifier.logging.context import get_log_context
from notifier.scheduler import (
    JOB_ALERTS_TASK,
    RELATED_JOBS_TASK,
    ScheduledTask,
    SchedulerError,
    SchedulerService,
)

NIGHTLY = "0 3 * * *"


@pytest.fixture
def scheduler():
    service = SchedulerService(timezone="UTC")
    yield service
    service.stop(wait=False)


class TestTaskTable:
    def test_initial_tasks_registered(self):
        handler = Mock()
        service = SchedulerService(tasks=[ScheduledTask(JOB_ALERTS_TASK, "*/30 * * * *", handler)])

        status = service.status()

        assert status["registered_tasks"] == [JOB_ALERTS_TASK]
        assert status["running"] is False
        assert status["active_tasks"] == []
        assert status["task_count"] == 0

    def test_duplicate_name_rejected(self, scheduler):
        scheduler.add_task("digest", NIGHTLY, Mock())

        with pytest.raises(SchedulerError, match="already registered"):
            scheduler.add_task("digest", NIGHTLY, Mock())

    @pytest.mark.parametrize("expression", ["every day", "61 * * * *", "* * *"])
    def test_invalid_cron_rejected(self, scheduler, expression):
        with pytest.raises(SchedulerError, match="Invalid cron expression"):
            scheduler.add_task("broken", expression, Mock())

        assert "broken" not in scheduler.status()["registered_tasks"]

    def test_remove_task(self, scheduler):
        scheduler.add_task("digest", NIGHTLY, Mock())

        assert scheduler.remove_task("digest") is True
        assert scheduler.remove_task("digest") is False
        assert scheduler.status()["registered_tasks"] == []


class TestLifecycle:
    def test_start_schedules_every_task(self, scheduler):
        scheduler.add_task(JOB_ALERTS_TASK, "*/30 * * * *", Mock())
        scheduler.add_task(RELATED_JOBS_TASK, "0 9 * * *", Mock(), timezone="Europe/Istanbul")

        scheduler.start()
        scheduler.start()  # no-op when running

        status = scheduler.status()
        assert status["running"] is True
        assert sorted(status["active_tasks"]) == [JOB_ALERTS_TASK, RELATED_JOBS_TASK]
        assert status["task_count"] == 2
        assert all(status["next_run_times"].values())
        assert scheduler.get_next_run_time(JOB_ALERTS_TASK) is not None

    def test_job_defaults_prevent_overlap(self, scheduler):
        scheduler.add_task("digest", NIGHTLY, Mock())
        scheduler.start()

        job = scheduler._scheduler.get_job("digest")

        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.misfire_grace_time == 300

    def test_task_timezone_overrides_default(self, scheduler):
        scheduler.add_task("morning", "0 9 * * *", Mock(), timezone="Europe/Istanbul")
        scheduler.start()

        trigger = scheduler._scheduler.get_job("morning").trigger

        assert str(trigger.timezone) == "Europe/Istanbul"

    def test_add_while_running_schedules_immediately(self, scheduler):
        scheduler.start()
        scheduler.add_task("late", NIGHTLY, Mock())

        assert scheduler.status()["active_tasks"] == ["late"]

    def test_remove_while_running_unschedules(self, scheduler):
        scheduler.add_task("digest", NIGHTLY, Mock())
        scheduler.start()

        scheduler.remove_task("digest")

        assert scheduler.status()["active_tasks"] == []

    def test_stop_unschedules_and_signals(self):
        shutdown_event = threading.Event()
        service = SchedulerService(shutdown_event=shutdown_event)
        service.add_task("digest", NIGHTLY, Mock())
        service.start()

        service.stop(wait=True)

        assert not service.is_running()
        assert shutdown_event.is_set()
        assert service.get_next_run_time("digest") is None
        assert service.status()["uptime_seconds"] == 0.0
        assert service.status()["registered_tasks"] == ["digest"]

    def test_stop_before_start_is_safe(self):
        SchedulerService().stop()


class TestTrigger:
    def test_trigger_runs_handler_and_returns_result(self, scheduler):
        handler = Mock(return_value={"alerts_checked": 3})
        scheduler.add_task(JOB_ALERTS_TASK, "*/30 * * * *", handler)

        assert scheduler.trigger_job_alerts() == {"alerts_checked": 3}
        handler.assert_called_once_with()

    def test_trigger_does_not_require_running_scheduler(self, scheduler):
        handler = Mock()
        scheduler.add_task(RELATED_JOBS_TASK, "0 9 * * *", handler)

        scheduler.trigger_related_jobs()

        handler.assert_called_once()
        assert not scheduler.is_running()

    def test_unknown_task(self, scheduler):
        with pytest.raises(SchedulerError, match="Unknown task"):
            scheduler.trigger("nope")

    def test_manual_trigger_propagates_errors(self, scheduler, caplog):
        caplog.set_level(logging.ERROR, logger="notifier.scheduler.service")
        scheduler.add_task("flaky", NIGHTLY, Mock(side_effect=RuntimeError("database is locked")))

        with pytest.raises(RuntimeError, match="database is locked"):
            scheduler.trigger("flaky")

        [record] = [r for r in caplog.records if getattr(r, "event", None) == "scheduler.task.failed"]
        assert record.error_type == "RuntimeError"

    def test_cron_fire_swallows_errors(self, scheduler):
        handler = Mock(side_effect=RuntimeError("boom"))
        scheduler.add_task("flaky", NIGHTLY, handler)

        scheduler._run_scheduled("flaky")
        scheduler._run_scheduled("removed-meanwhile")

        handler.assert_called_once()

    def test_handler_runs_inside_task_log_context(self, scheduler):
        seen = {}
        scheduler.add_task("digest", NIGHTLY, lambda: seen.update(get_log_context()))

        scheduler.trigger("digest")

        assert seen["task"] == "digest"
        assert len(seen["run_id"]) == 32
        assert get_log_context() == {}


class TestWaitIdle:
    def test_idle_when_nothing_runs(self, scheduler):
        assert scheduler.wait_idle(timeout=0) is True

    def test_stop_without_wait_leaves_run_in_flight(self, scheduler):
        started = threading.Event()
        release = threading.Event()

        def slow_sweep():
            started.set()
            release.wait(timeout=5)

        scheduler.add_task("slow", NIGHTLY, slow_sweep)
        scheduler.start()
        worker = threading.Thread(target=scheduler._run_scheduled, args=("slow",))
        worker.start()
        assert started.wait(timeout=5)

        scheduler.stop(wait=False)
        assert scheduler.wait_idle(timeout=0.05) is False

        release.set()
        assert scheduler.wait_idle(timeout=5) is True
        worker.join(timeout=5)

    def test_failed_run_still_counts_as_finished(self, scheduler):
        scheduler.add_task("flaky", NIGHTLY, Mock(side_effect=RuntimeError("boom")))

        scheduler._run_scheduled("flaky")

        assert scheduler.wait_idle(timeout=0) is True
