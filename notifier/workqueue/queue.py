"""Durable work queue backed by the job_queue table.

Delivery is at-least-once. Items drain by priority (higher first) and then by
age (oldest first). Claiming is a per-item compare-and-set from pending to
processing that also counts the attempt, so no two workers can hold the same
item. Completed and failed are terminal: recovery from a failure is a new
item created by ``requeue``.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, ContextManager, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from ..domain.models import QueueItem, QueueStatus, QueueType
from ..logging import get_logger
from ..persistence.database import get_session
from ..persistence.exceptions import QueueStateError, RecordNotFoundError
from ..persistence.repositories import QueueRepository
from ..utils.timestamps import days_ago, utc_now
from .models import RetryPolicy

logger = get_logger(__name__, component="queue")


class WorkQueue:
    """Enqueue, claim, finalize and maintain queue items."""

    def __init__(
        self,
        max_attempts: int = 3,
        retry_policy: Optional[RetryPolicy] = None,
        session_factory: Callable[[], ContextManager[Session]] = get_session,
        clock: Callable[[], datetime] = utc_now,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.retry_policy = retry_policy or RetryPolicy()
        self.session_factory = session_factory
        self.clock = clock

    def enqueue(
        self,
        queue_type: Union[QueueType, str],
        job_id: Optional[int] = None,
        priority: int = 1,
        payload: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Insert a pending item and return its id.

        Storage errors propagate to the caller.
        """
        type_value = queue_type.value if isinstance(queue_type, Enum) else str(queue_type)
        with self.session_factory() as session:
            item_id = QueueRepository(session).insert(
                queue_type=type_value,
                job_id=job_id,
                priority=priority,
                payload=payload or {},
                max_attempts=self.max_attempts,
                created_at=self.clock(),
            )

        logger.info(
            f"Enqueued {type_value} item {item_id}",
            extra={
                "event": "queue.item.enqueued",
                "queue_item_id": item_id,
                "queue_type": type_value,
                "job_id": job_id,
                "priority": priority,
            },
        )
        return item_id

    def claim_batch(self, limit: int, now: Optional[datetime] = None) -> List[QueueItem]:
        """Claim up to ``limit`` pending items in drain order.

        Each claimed item is moved to processing with its attempt counter
        incremented. Items whose backoff has not elapsed are not claimable.
        """
        if limit <= 0:
            return []
        now = now or self.clock()

        with self.session_factory() as session:
            repo = QueueRepository(session)
            claimed_ids = [
                item_id
                for item_id in repo.claimable_ids(now, limit)
                if repo.try_claim(item_id, now)
            ]
            items = repo.get_many(claimed_ids)

        for item in items:
            logger.debug(
                f"Claimed queue item {item.id}",
                extra={
                    "event": "queue.item.claimed",
                    "queue_item_id": item.id,
                    "queue_type": item.queue_type,
                    "attempt": item.attempts,
                    "max_attempts": item.max_attempts,
                },
            )
        return items

    def finalize(
        self,
        item_id: int,
        success: bool,
        error: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> QueueStatus:
        """Record the outcome of processing a claimed item.

        Success completes the item. Failure returns it to pending with a
        backoff, or fails it terminally once its attempts are exhausted.

        Returns:
            The item's new status

        Raises:
            RecordNotFoundError: If the item doesn't exist
            QueueStateError: If the item is not processing
        """
        now = now or self.clock()

        with self.session_factory() as session:
            repo = QueueRepository(session)
            item = repo.get(item_id)
            if item is None:
                raise RecordNotFoundError(f"Queue item {item_id} not found")
            if item.status != QueueStatus.PROCESSING:
                raise QueueStateError(
                    f"Queue item {item_id} is {item.status.value}, expected processing"
                )

            if success:
                status = QueueStatus.COMPLETED
                repo.finalize(item_id, status, None, processed_at=now, available_at=None)
            elif item.attempts_exhausted:
                status = QueueStatus.FAILED
                repo.finalize(item_id, status, error, processed_at=now, available_at=None)
            else:
                status = QueueStatus.PENDING
                available_at = self.retry_policy.next_available_at(item.attempts, now)
                repo.finalize(item_id, status, error, processed_at=None, available_at=available_at)

        self._log_outcome(item, status, error)
        return status

    def _log_outcome(self, item: QueueItem, status: QueueStatus, error: Optional[str]) -> None:
        fields = {
            "queue_item_id": item.id,
            "queue_type": item.queue_type,
            "attempt": item.attempts,
            "max_attempts": item.max_attempts,
        }
        if status == QueueStatus.COMPLETED:
            logger.info(
                f"Queue item {item.id} completed",
                extra={"event": "queue.item.completed", **fields},
            )
        elif status == QueueStatus.FAILED:
            logger.error(
                f"Queue item {item.id} failed after {item.attempts} attempts: {error}",
                extra={"event": "queue.item.failed", "error": error, **fields},
            )
        else:
            logger.warning(
                f"Queue item {item.id} will be retried: {error}",
                extra={"event": "queue.item.retry_scheduled", "error": error, **fields},
            )

    def get(self, item_id: int) -> Optional[QueueItem]:
        with self.session_factory() as session:
            return QueueRepository(session).get(item_id)

    def stats(self) -> List[Dict[str, Any]]:
        """Item counts grouped by status and queue type."""
        with self.session_factory() as session:
            return QueueRepository(session).counts()

    def cleanup(self, retention_days: int, now: Optional[datetime] = None) -> int:
        """Delete completed/failed items created more than ``retention_days`` ago."""
        cutoff = days_ago(retention_days, now or self.clock())
        with self.session_factory() as session:
            deleted = QueueRepository(session).delete_finished_before(cutoff)

        logger.info(
            f"Queue cleanup removed {deleted} items",
            extra={
                "event": "queue.cleanup.completed",
                "deleted": deleted,
                "retention_days": retention_days,
            },
        )
        return deleted

    def requeue(self, item_id: int) -> int:
        """Create a fresh pending copy of a completed or failed item.

        The original item is left untouched.

        Raises:
            RecordNotFoundError: If the item doesn't exist
            QueueStateError: If the item is still pending or processing
        """
        with self.session_factory() as session:
            repo = QueueRepository(session)
            item = repo.get(item_id)
            if item is None:
                raise RecordNotFoundError(f"Queue item {item_id} not found")
            if not item.status.is_terminal:
                raise QueueStateError(
                    f"Only completed or failed items can be requeued; item {item_id} is {item.status.value}"
                )
            new_id = repo.insert(
                queue_type=item.queue_type,
                job_id=item.job_id,
                priority=item.priority,
                payload=item.payload,
                max_attempts=item.max_attempts,
                created_at=self.clock(),
            )

        logger.info(
            f"Requeued item {item_id} as {new_id}",
            extra={
                "event": "queue.item.requeued",
                "queue_item_id": new_id,
                "original_item_id": item_id,
                "queue_type": item.queue_type,
            },
        )
        return new_id

    def recover_stale(self, timeout_seconds: float, now: Optional[datetime] = None) -> int:
        """Fail items whose processing claim is older than ``timeout_seconds``.

        Each abandoned claim counts as a failed attempt, so the item goes back
        to pending or, if exhausted, to failed.
        """
        now = now or self.clock()
        with self.session_factory() as session:
            stale = QueueRepository(session).stale_processing(now - timedelta(seconds=timeout_seconds))

        recovered = 0
        for item in stale:
            try:
                self.finalize(item.id, success=False, error="Processing claim expired", now=now)
            except QueueStateError:
                # Finalized by its worker in the meantime
                continue
            recovered += 1

        if recovered:
            logger.warning(
                f"Recovered {recovered} stale queue items",
                extra={"event": "queue.stale.recovered", "recovered": recovered},
            )
        return recovered
