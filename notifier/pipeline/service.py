"""Service facade that wires the notification pipeline together."""

import threading
import time
from typing import Any, Callable, Dict, List, Optional, Union

from ..config.environment import EnvironmentConfig
from ..config.models import AppConfig
from ..domain.models import QueueType
from ..logging import get_logger
from ..notifications.dispatcher import NotificationDispatcher
from ..notifications.sinks import Sink, build_sink
from ..scheduler.service import (
    CLEANUP_TASK,
    JOB_ALERTS_TASK,
    RELATED_JOBS_TASK,
    ScheduledTask,
    SchedulerError,
    SchedulerService,
)
from ..sweeps.alerts import AlertSweep
from ..sweeps.cleanup import NotificationCleanup
from ..sweeps.related import RelatedJobsSweep
from ..workqueue.handlers import NewJobPostingHandler
from ..workqueue.models import ProcessorRunResult, RetryPolicy
from ..workqueue.processor import QueueProcessor
from ..workqueue.queue import WorkQueue
from .postings import JobPostingService

logger = get_logger(__name__, component="pipeline")


class NotificationPipeline:
    """
    Owns the queue, processor, dispatcher, sweeps and scheduler of one process.

    Build it once at startup and pass it to whatever needs to enqueue work,
    trigger a sweep, or inspect state. ``start`` and ``stop`` drive the
    background processor and the cron scheduler together.
    """

    def __init__(
        self,
        app_config: AppConfig,
        env_config: EnvironmentConfig,
        sink: Optional[Sink] = None,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            app_config: Application configuration
            env_config: Environment configuration (SMTP credentials etc.)
            sink: Outbound transport; built from ``app_config.delivery`` if None
            shutdown_event: Optional event set once the scheduler has stopped
        """
        self.app_config = app_config
        self.env_config = env_config

        queue_config = app_config.queue
        sweep_config = app_config.sweeps

        self.work_queue = WorkQueue(
            max_attempts=queue_config.max_attempts,
            retry_policy=RetryPolicy(
                initial_delay=queue_config.retry_initial_delay,
                multiplier=queue_config.retry_backoff_multiplier,
                max_delay=queue_config.retry_max_delay,
            ),
        )
        self.dispatcher = NotificationDispatcher(
            sink=sink or build_sink(app_config.delivery, env_config),
            frontend_url=app_config.delivery.frontend_url,
        )
        self.processor = QueueProcessor(
            self.work_queue,
            handlers={QueueType.NEW_JOB_POSTING.value: NewJobPostingHandler(self.dispatcher)},
            batch_size=queue_config.batch_size,
            poll_interval_seconds=queue_config.poll_interval_seconds,
            stale_timeout_seconds=queue_config.stale_processing_timeout_seconds,
        )
        self.postings = JobPostingService(
            self.work_queue,
            new_job_priority=queue_config.new_job_priority,
            application_priority=queue_config.application_priority,
        )

        self.alert_sweep = AlertSweep(self.dispatcher, match_limit=sweep_config.alert_match_limit)
        self.related_sweep = RelatedJobsSweep(
            self.dispatcher,
            limit=sweep_config.related_jobs_limit,
            search_window_days=sweep_config.search_window_days,
            job_window_days=sweep_config.related_job_window_days,
        )
        self.cleanup = NotificationCleanup(
            self.work_queue,
            notification_retention_days=sweep_config.notification_retention_days,
            search_history_retention_days=sweep_config.search_history_retention_days,
            queue_retention_days=queue_config.retention_days,
        )

        self.task_handlers: Dict[str, Callable[[], Any]] = {
            JOB_ALERTS_TASK: self.alert_sweep.run,
            RELATED_JOBS_TASK: self.related_sweep.run,
            CLEANUP_TASK: self.cleanup.run,
        }
        self.scheduler = SchedulerService(
            timezone=app_config.scheduler.timezone,
            tasks=self._enabled_tasks(),
            shutdown_event=shutdown_event,
        )

    def _enabled_tasks(self) -> List[ScheduledTask]:
        scheduler_config = self.app_config.scheduler
        table = [
            (JOB_ALERTS_TASK, scheduler_config.job_alerts_cron, scheduler_config.job_alerts_enabled),
            (RELATED_JOBS_TASK, scheduler_config.related_jobs_cron, scheduler_config.related_jobs_enabled),
            (CLEANUP_TASK, scheduler_config.cleanup_cron, scheduler_config.cleanup_enabled),
        ]
        return [
            ScheduledTask(name=name, cron_expression=cron, handler=self.task_handlers[name])
            for name, cron, enabled in table
            if enabled
        ]

    def start(self) -> None:
        """Start the queue processor and the scheduler (idempotent)."""
        self.processor.start()
        self.scheduler.start()
        logger.info("Notification pipeline started", extra={"event": "pipeline.started"})

    def stop(self, wait: bool = True) -> None:
        """Stop ticking; in-flight work completes when ``wait`` is True."""
        self.processor.stop(wait=wait)
        self.scheduler.stop(wait=wait)
        logger.info("Notification pipeline stopped", extra={"event": "pipeline.stopped"})

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight queue ticks and task runs, sharing one ``timeout``.

        Returns:
            True if both went idle, False if ``timeout`` expired first
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        def remaining():
            return None if deadline is None else max(0.0, deadline - time.monotonic())

        processor_idle = self.processor.wait_idle(timeout=remaining())
        scheduler_idle = self.scheduler.wait_idle(timeout=remaining())
        return processor_idle and scheduler_idle

    def enqueue(
        self,
        queue_type: Union[QueueType, str],
        job_id: Optional[int] = None,
        priority: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Enqueue work. Priority defaults per type from the queue configuration."""
        if priority is None:
            type_value = queue_type.value if isinstance(queue_type, QueueType) else str(queue_type)
            if type_value == QueueType.NEW_JOB_POSTING.value:
                priority = self.app_config.queue.new_job_priority
            elif type_value == QueueType.JOB_APPLICATION.value:
                priority = self.app_config.queue.application_priority
            else:
                priority = 1
        return self.work_queue.enqueue(queue_type, job_id=job_id, priority=priority, payload=payload)

    def run_task(self, name: str) -> Any:
        """
        Run a built-in task once, now, even if its cron schedule is disabled.

        Raises:
            SchedulerError: If ``name`` is not a built-in task
        """
        if name in self.scheduler.status()["registered_tasks"]:
            return self.scheduler.trigger(name)
        handler = self.task_handlers.get(name)
        if handler is None:
            raise SchedulerError(f"Unknown task: {name}")
        return handler()

    def trigger_job_alerts(self):
        return self.run_task(JOB_ALERTS_TASK)

    def trigger_related_jobs(self):
        return self.run_task(RELATED_JOBS_TASK)

    def process_queue_now(self) -> ProcessorRunResult:
        return self.processor.process_once()

    def get_queue_stats(self) -> List[Dict[str, Any]]:
        return self.work_queue.stats()

    def get_status(self) -> Dict[str, Any]:
        next_run = self.processor.get_next_run_time()
        last_result = self.processor.last_result
        return {
            "scheduler": self.scheduler.status(),
            "processor": {
                "running": self.processor.is_running(),
                "next_run_time": next_run.isoformat() if next_run else None,
                "handled_types": self.processor.handled_types,
                "last_result": last_result.to_dict() if last_result else None,
            },
        }
