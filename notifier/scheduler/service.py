"""Cron scheduler for the periodic sweeps."""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from ..logging import get_logger
from ..logging.context import log_context

logger = get_logger(__name__, component="scheduler")

JOB_ALERTS_TASK = "job-alerts"
RELATED_JOBS_TASK = "related-jobs"
CLEANUP_TASK = "notification-cleanup"


class SchedulerError(Exception):
    """Raised for unknown, duplicate, or malformed scheduler tasks."""


@dataclass(frozen=True)
class ScheduledTask:
    """
    One entry of the task table.

    Attributes:
        name: Unique task name, also used as the APScheduler job id
        cron_expression: Five-field crontab expression
        handler: Zero-argument callable run on each fire
        timezone: IANA timezone for the expression (scheduler default if None)
    """

    name: str
    cron_expression: str
    handler: Callable[[], Any]
    timezone: Optional[str] = None


class SchedulerService:
    """
    Runs a table of named cron tasks on an APScheduler BackgroundScheduler.

    A task is either stopped (not scheduled) or scheduled. ``start`` schedules
    every registered task and ``stop`` unschedules all of them. Cron fires log
    handler errors and carry on; manual triggers run the same handler in the
    caller's thread and propagate its errors.
    """

    def __init__(
        self,
        timezone: str = "UTC",
        tasks: Optional[List[ScheduledTask]] = None,
        shutdown_event: Optional[threading.Event] = None,
        misfire_grace_seconds: int = 300,
    ):
        """
        Initialize the scheduler service.

        Args:
            timezone: Default IANA timezone for task cron expressions
            tasks: Initial task table
            shutdown_event: Optional event set once the scheduler has stopped
            misfire_grace_seconds: How late a fire may start and still run
        """
        self.timezone = timezone
        self.shutdown_event = shutdown_event
        self.misfire_grace_seconds = misfire_grace_seconds

        self._tasks: Dict[str, ScheduledTask] = {}
        self._scheduler: Optional[BackgroundScheduler] = None
        self._started_at: Optional[float] = None
        self._state_lock = threading.RLock()
        self._idle = threading.Condition()
        self._in_flight = 0

        for task in tasks or []:
            self.add_task(task.name, task.cron_expression, task.handler, task.timezone)

    def _trigger_for(self, task: ScheduledTask) -> CronTrigger:
        try:
            return CronTrigger.from_crontab(task.cron_expression, timezone=task.timezone or self.timezone)
        except ValueError as e:
            raise SchedulerError(
                f"Invalid cron expression for task '{task.name}': {task.cron_expression} ({e})"
            ) from e

    def add_task(
        self,
        name: str,
        cron_expression: str,
        handler: Callable[[], Any],
        timezone: Optional[str] = None,
    ) -> ScheduledTask:
        """
        Register a task; schedule it immediately if the scheduler is running.

        Raises:
            SchedulerError: If the name is taken or the expression is invalid
        """
        task = ScheduledTask(name=name, cron_expression=cron_expression, handler=handler, timezone=timezone)
        trigger = self._trigger_for(task)

        with self._state_lock:
            if name in self._tasks:
                raise SchedulerError(f"Task already registered: {name}")
            self._tasks[name] = task
            if self._scheduler is not None:
                self._schedule(task, trigger)

        logger.debug(
            f"Task registered: {name}",
            extra={"event": "scheduler.task.registered", "task": name, "cron": cron_expression},
        )
        return task

    def remove_task(self, name: str) -> bool:
        """Unregister a task. Returns False if no task has that name."""
        with self._state_lock:
            task = self._tasks.pop(name, None)
            if task is None:
                return False
            if self._scheduler is not None:
                try:
                    self._scheduler.remove_job(name)
                except JobLookupError:
                    pass

        logger.info(f"Task removed: {name}", extra={"event": "scheduler.task.removed", "task": name})
        return True

    def _schedule(self, task: ScheduledTask, trigger: Optional[CronTrigger] = None) -> None:
        self._scheduler.add_job(
            func=self._run_scheduled,
            args=[task.name],
            trigger=trigger or self._trigger_for(task),
            id=task.name,
            name=task.name,
            replace_existing=True,
        )

    def start(self) -> None:
        """Schedule every registered task. No-op if already running."""
        with self._state_lock:
            if self._scheduler is not None:
                return

            self._scheduler = BackgroundScheduler(
                job_defaults={
                    "max_instances": 1,
                    "coalesce": True,
                    "misfire_grace_time": self.misfire_grace_seconds,
                },
                timezone=self.timezone,
            )
            for task in self._tasks.values():
                self._schedule(task)
            self._scheduler.start()
            self._started_at = time.monotonic()

        logger.info(
            f"Scheduler started with {len(self._tasks)} tasks",
            extra={
                "event": "scheduler.started",
                "tasks": list(self._tasks),
                "timezone": self.timezone,
            },
        )

    def stop(self, wait: bool = True) -> None:
        """
        Unschedule every task and stop the scheduler.

        Args:
            wait: If True, wait for in-flight task runs to finish
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        with self._state_lock:
            scheduler, self._scheduler = self._scheduler, None
            self._started_at = None

        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no task run is in flight.

        Returns:
            True if idle, False if ``timeout`` expired first
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._in_flight == 0, timeout=timeout)

    def is_running(self) -> bool:
        scheduler = self._scheduler
        return scheduler is not None and scheduler.running

    def get_next_run_time(self, name: str):
        scheduler = self._scheduler
        if scheduler is None:
            return None
        job = scheduler.get_job(name)
        return job.next_run_time if job else None

    def status(self) -> Dict[str, Any]:
        """
        Describe the scheduler for introspection.

        Returns:
            Dict with ``running``, ``active_tasks`` (scheduled task names),
            ``task_count``, ``registered_tasks``, ``uptime_seconds`` and
            ``next_run_times`` (ISO strings keyed by task name)
        """
        with self._state_lock:
            running = self.is_running()
            active = [job.id for job in self._scheduler.get_jobs()] if running else []
            uptime = round(time.monotonic() - self._started_at, 2) if running and self._started_at else 0.0
            next_runs = {}
            for name in active:
                next_run = self.get_next_run_time(name)
                next_runs[name] = next_run.isoformat() if next_run else None

            return {
                "running": running,
                "active_tasks": active,
                "task_count": len(active),
                "registered_tasks": list(self._tasks),
                "uptime_seconds": uptime,
                "next_run_times": next_runs,
            }

    def trigger(self, name: str) -> Any:
        """
        Run a task once, now, in the calling thread.

        Returns:
            Whatever the task handler returns

        Raises:
            SchedulerError: If no task has that name
            Exception: Anything the handler raises
        """
        task = self._tasks.get(name)
        if task is None:
            raise SchedulerError(f"Unknown task: {name}")

        logger.info(
            f"Triggering task manually: {name}",
            extra={"event": "scheduler.trigger_now", "task": name},
        )
        return self._execute(task)

    def trigger_job_alerts(self) -> Any:
        return self.trigger(JOB_ALERTS_TASK)

    def trigger_related_jobs(self) -> Any:
        return self.trigger(RELATED_JOBS_TASK)

    def _run_scheduled(self, name: str) -> None:
        """Cron entry point; never lets an exception escape."""
        task = self._tasks.get(name)
        if task is None:
            return
        try:
            self._execute(task)
        except Exception:
            # Already logged by _run_handler
            pass

    def _execute(self, task: ScheduledTask) -> Any:
        with self._idle:
            self._in_flight += 1
        try:
            return self._run_handler(task)
        finally:
            with self._idle:
                self._in_flight -= 1
                self._idle.notify_all()

    def _run_handler(self, task: ScheduledTask) -> Any:
        with log_context(task=task.name, run_id=uuid4().hex):
            logger.info(
                f"Task started: {task.name}",
                extra={"event": "scheduler.task.started"},
            )
            started = time.monotonic()
            try:
                result = task.handler()
            except Exception as e:
                logger.error(
                    f"Task failed: {task.name}: {e}",
                    exc_info=True,
                    extra={
                        "event": "scheduler.task.failed",
                        "error_type": type(e).__name__,
                        "duration_seconds": round(time.monotonic() - started, 3),
                    },
                )
                raise

            logger.info(
                f"Task completed: {task.name}",
                extra={
                    "event": "scheduler.task.completed",
                    "duration_seconds": round(time.monotonic() - started, 3),
                },
            )
            return result
