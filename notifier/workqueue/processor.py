"""Queue processor: drains the work queue on an interval or on demand."""

import threading
from datetime import timezone
from typing import Dict, Optional
from uuid import uuid4

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..domain.models import QueueItem, QueueStatus, QueueType
from ..logging import get_logger
from ..logging.context import log_context
from ..persistence.exceptions import PersistenceError
from ..utils.timestamps import utc_now
from .handlers import handle_generic_notification, handle_job_application
from .models import ProcessorRunResult, QueueHandler
from .queue import WorkQueue

logger = get_logger(__name__, component="processor")

PROCESSOR_JOB_ID = "queue-processor"


class QueueProcessor:
    """
    Claims batches from the WorkQueue and runs each item through its handler.

    Ticks are serialized: a tick that fires while another is in flight is
    dropped, not queued. ``job_application`` and ``generic_notification``
    items are handled by default; ``new_job_posting`` needs a handler
    registered by the owner (it depends on the dispatcher). Items of a type
    with no handler fail.
    """

    def __init__(
        self,
        work_queue: WorkQueue,
        handlers: Optional[Dict[str, QueueHandler]] = None,
        batch_size: int = 10,
        poll_interval_seconds: int = 30,
        stale_timeout_seconds: Optional[int] = None,
    ):
        """
        Initialize the queue processor.

        Args:
            work_queue: Queue to drain
            handlers: Extra handlers by queue type (override the defaults)
            batch_size: Maximum items claimed per tick
            poll_interval_seconds: Interval between background ticks
            stale_timeout_seconds: If set, abandoned processing claims older
                than this are recovered when the processor starts
        """
        self.work_queue = work_queue
        self.batch_size = batch_size
        self.poll_interval_seconds = poll_interval_seconds
        self.stale_timeout_seconds = stale_timeout_seconds

        self._handlers: Dict[str, QueueHandler] = {
            QueueType.JOB_APPLICATION.value: handle_job_application,
            QueueType.GENERIC_NOTIFICATION.value: handle_generic_notification,
        }
        for queue_type, handler in (handlers or {}).items():
            self.register_handler(queue_type, handler)

        self._lock = threading.Lock()
        self._scheduler: Optional[BackgroundScheduler] = None
        self.last_result: Optional[ProcessorRunResult] = None

    def register_handler(self, queue_type, handler: QueueHandler) -> None:
        """Install (or replace) the handler for ``queue_type``."""
        key = queue_type.value if isinstance(queue_type, QueueType) else str(queue_type)
        self._handlers[key] = handler

    @property
    def handled_types(self):
        return sorted(self._handlers)

    def process_once(self) -> ProcessorRunResult:
        """
        Run one processing tick.

        Returns:
            ProcessorRunResult with per-outcome counts, or skipped=True if a
            tick was already in flight

        Raises:
            PersistenceError: If the batch cannot be claimed
        """
        result = ProcessorRunResult(run_started_at=utc_now())

        if not self._lock.acquire(blocking=False):
            logger.debug(
                "Queue tick skipped: previous tick still in progress",
                extra={"event": "processor.tick.skipped", "reason": "lock_held"},
            )
            result.skipped = True
            result.run_finished_at = utc_now()
            return result

        try:
            with log_context(run_id=uuid4().hex):
                items = self.work_queue.claim_batch(self.batch_size)
                result.claimed = len(items)

                for item in items:
                    self._process_item(item, result)

                result.run_finished_at = utc_now()
                if result.claimed:
                    logger.info(
                        f"Queue tick processed {result.claimed} items",
                        extra={"event": "processor.tick.completed", **result.to_dict()},
                    )
                self.last_result = result
                return result
        finally:
            self._lock.release()

    def _process_item(self, item: QueueItem, result: ProcessorRunResult) -> None:
        with log_context(queue_item_id=item.id, queue_type=item.queue_type):
            handler = self._handlers.get(item.queue_type)
            error: Optional[str] = None

            if handler is None:
                error = f"Unknown queue type: {item.queue_type}"
            else:
                try:
                    handler(item)
                except Exception as e:
                    error = f"{type(e).__name__}: {e}"
                    logger.warning(
                        f"Handler failed for queue item {item.id}: {e}",
                        exc_info=True,
                        extra={"event": "processor.item.handler_failed"},
                    )

            try:
                status = self.work_queue.finalize(item.id, success=error is None, error=error)
            except PersistenceError as e:
                # Left in processing; recovered as stale on a later start
                logger.error(
                    f"Could not finalize queue item {item.id}: {e}",
                    exc_info=True,
                    extra={"event": "processor.item.finalize_failed"},
                )
                result.failed += 1
                return

            if status == QueueStatus.COMPLETED:
                result.completed += 1
            elif status == QueueStatus.FAILED:
                result.failed += 1
            else:
                result.retried += 1

    def _tick(self) -> None:
        """Background entry point; never lets an exception escape."""
        try:
            self.process_once()
        except Exception as e:
            logger.error(
                f"Queue tick failed: {e}",
                exc_info=True,
                extra={"event": "processor.tick.failed", "error_type": type(e).__name__},
            )

    def start(self) -> None:
        """Recover stale claims and start ticking every ``poll_interval_seconds``.

        Calling start on a running processor is a no-op.
        """
        if self.is_running():
            return

        if self.stale_timeout_seconds:
            try:
                self.work_queue.recover_stale(self.stale_timeout_seconds)
            except PersistenceError as e:
                logger.error(
                    f"Stale claim recovery failed: {e}",
                    exc_info=True,
                    extra={"event": "processor.recovery.failed"},
                )

        self._scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": self.poll_interval_seconds,
            },
            timezone=timezone.utc,
        )
        self._scheduler.add_job(
            func=self._tick,
            trigger=IntervalTrigger(seconds=self.poll_interval_seconds, timezone=timezone.utc),
            id=PROCESSOR_JOB_ID,
            name="Queue processor",
            replace_existing=True,
            next_run_time=utc_now(),
        )
        self._scheduler.start()

        logger.info(
            f"Queue processor started with interval: {self.poll_interval_seconds} seconds",
            extra={
                "event": "processor.started",
                "interval_seconds": self.poll_interval_seconds,
                "batch_size": self.batch_size,
                "handled_types": self.handled_types,
            },
        )

    def stop(self, wait: bool = True) -> None:
        """Stop ticking. An in-flight tick completes; no new tick starts."""
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
        self._scheduler = None
        logger.info("Queue processor stopped", extra={"event": "processor.stopped", "wait": wait})

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no tick is in flight.

        Returns:
            True if idle, False if ``timeout`` expired first
        """
        acquired = self._lock.acquire(timeout=-1 if timeout is None else timeout)
        if acquired:
            self._lock.release()
        return acquired

    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def get_next_run_time(self):
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(PROCESSOR_JOB_ID)
        return job.next_run_time if job else None
