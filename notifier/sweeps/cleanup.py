"""Storage hygiene: prunes old notification logs, search history and queue items."""

from datetime import datetime
from typing import Callable, ContextManager, Optional

from sqlalchemy.orm import Session

from ..logging import get_logger
from ..persistence.database import get_session
from ..persistence.repositories import NotificationLogRepository, SearchHistoryRepository
from ..utils.timestamps import days_ago, utc_now
from ..workqueue.queue import WorkQueue
from .models import CleanupResult

logger = get_logger(__name__, component="sweep")


class NotificationCleanup:
    """Deletes records past their retention windows."""

    def __init__(
        self,
        work_queue: Optional[WorkQueue] = None,
        notification_retention_days: int = 90,
        search_history_retention_days: int = 180,
        queue_retention_days: int = 7,
        session_factory: Callable[[], ContextManager[Session]] = get_session,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.work_queue = work_queue
        self.notification_retention_days = notification_retention_days
        self.search_history_retention_days = search_history_retention_days
        self.queue_retention_days = queue_retention_days
        self.session_factory = session_factory
        self.clock = clock

    def run(self) -> CleanupResult:
        now = self.clock()
        result = CleanupResult()

        with self.session_factory() as session:
            result.notifications_deleted = NotificationLogRepository(session).delete_older_than(
                days_ago(self.notification_retention_days, now)
            )
            result.searches_deleted = SearchHistoryRepository(session).delete_older_than(
                days_ago(self.search_history_retention_days, now)
            )

        if self.work_queue is not None:
            result.queue_items_deleted = self.work_queue.cleanup(self.queue_retention_days, now=now)

        logger.info(
            "Cleanup completed",
            extra={"event": "sweep.cleanup.completed", **result.to_dict()},
        )
        return result
