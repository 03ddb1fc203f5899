"""Queue item handlers, keyed by queue type.

A handler returns normally when the item's work is done and raises when it
is not; the processor turns the outcome into a finalize call.
"""

from typing import Callable, ContextManager, Optional

from sqlalchemy.orm import Session

from ..domain.models import QueueItem
from ..logging import get_logger
from ..matching.engine import AlertMatcher
from ..notifications.dispatcher import NotificationDispatcher
from ..persistence.database import get_session
from ..persistence.exceptions import RecordNotFoundError
from ..persistence.repositories import AlertRepository, JobRepository

logger = get_logger(__name__, component="queue")


class NewJobPostingHandler:
    """Fans a newly posted job out to every matching active alert.

    Each matching alert gets a single-job dispatch. A failure for one alert is
    logged and does not fail the item. The queue path never touches an
    alert's ``last_notification_sent``; only the alert sweep advances it.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        matcher: Optional[AlertMatcher] = None,
        session_factory: Callable[[], ContextManager[Session]] = get_session,
    ):
        self.dispatcher = dispatcher
        self.matcher = matcher or AlertMatcher()
        self.session_factory = session_factory

    def __call__(self, item: QueueItem) -> None:
        job_id = item.job_id if item.job_id is not None else item.payload.get("job_id")
        if job_id is None:
            raise ValueError(f"Queue item {item.id} has no job id")

        with self.session_factory() as session:
            job = JobRepository(session).get_by_id(job_id)
            if job is None:
                raise RecordNotFoundError(f"Job {job_id} not found")
            subscriptions = AlertRepository(session).list_active_with_users()

        matched = self.matcher.matching_subscriptions(job, subscriptions)

        sent = 0
        failed = 0
        for subscription in matched:
            try:
                result = self.dispatcher.send_job_alert(subscription.alert, subscription.user, [job])
            except Exception as e:
                failed += 1
                logger.error(
                    f"Fan-out to alert {subscription.alert.id} failed: {e}",
                    exc_info=True,
                    extra={
                        "event": "fanout.alert.failed",
                        "alert_id": subscription.alert.id,
                        "job_id": job.id,
                        "error_type": type(e).__name__,
                    },
                )
                continue
            if result.succeeded:
                sent += 1
            else:
                failed += 1

        logger.info(
            f"Job {job.id} fanned out to {len(matched)} alerts",
            extra={
                "event": "fanout.completed",
                "job_id": job.id,
                "alerts_matched": len(matched),
                "notifications_sent": sent,
                "notifications_failed": failed,
            },
        )


def handle_job_application(item: QueueItem) -> None:
    """Hook for application events; currently only recorded in the log."""
    logger.info(
        f"Job application recorded for job {item.job_id}",
        extra={
            "event": "queue.application.recorded",
            "job_id": item.job_id,
            "user_id": item.payload.get("user_id"),
        },
    )


def handle_generic_notification(item: QueueItem) -> None:
    """Payload-only signal; nothing to do beyond completing the item."""
    logger.debug(
        "Generic notification item acknowledged",
        extra={"event": "queue.generic.acknowledged", "payload_keys": sorted(item.payload)},
    )
