"""Alert sweep: periodic re-match of every active alert against new jobs.

For each active alert, jobs created after the alert's last notification
(or ever, if never notified) that satisfy its filters are sent as one batch,
newest first and capped. The alert's ``last_notification_sent`` then moves
forward, but only when the dispatch succeeded.
"""

from datetime import datetime
from typing import Callable, ContextManager

from sqlalchemy.orm import Session

from ..domain.models import AlertSubscription
from ..logging import get_logger
from ..logging.context import log_context
from ..matching.models import AlertCriteria
from ..notifications.dispatcher import NotificationDispatcher
from ..persistence.database import get_session
from ..persistence.repositories import AlertRepository, JobRepository
from ..utils.timestamps import EPOCH, utc_now
from .models import AlertSweepResult

logger = get_logger(__name__, component="sweep")


class AlertSweep:
    """Runs the alert sweep; one failing alert never stops the others."""

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        match_limit: int = 10,
        session_factory: Callable[[], ContextManager[Session]] = get_session,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.dispatcher = dispatcher
        self.match_limit = match_limit
        self.session_factory = session_factory
        self.clock = clock

    def run(self) -> AlertSweepResult:
        """Sweep all active alerts.

        Raises:
            PersistenceError: If the active alerts cannot be loaded
        """
        result = AlertSweepResult()

        with self.session_factory() as session:
            subscriptions = AlertRepository(session).list_active_with_users()

        logger.info(
            f"Alert sweep started for {len(subscriptions)} active alerts",
            extra={"event": "sweep.alerts.started", "active_alerts": len(subscriptions)},
        )

        for subscription in subscriptions:
            result.alerts_checked += 1
            with log_context(alert_id=subscription.alert.id, user_id=subscription.user.id):
                try:
                    self._sweep_alert(subscription, result)
                except Exception as e:
                    result.alerts_failed += 1
                    logger.error(
                        f"Error processing alert {subscription.alert.id}: {e}",
                        exc_info=True,
                        extra={"event": "sweep.alert.failed", "error_type": type(e).__name__},
                    )

        logger.info(
            "Alert sweep completed",
            extra={"event": "sweep.alerts.completed", **result.to_dict()},
        )
        return result

    def _sweep_alert(self, subscription: AlertSubscription, result: AlertSweepResult) -> None:
        alert = subscription.alert
        criteria = AlertCriteria.from_alert(alert)
        if criteria.is_empty:
            result.unfiltered_alerts += 1
            logger.warning(
                f"Alert {alert.id} has no filters and matches every job",
                extra={"event": "sweep.alert.unfiltered"},
            )

        checked_at = self.clock()
        since = alert.last_notification_sent or EPOCH

        with self.session_factory() as session:
            jobs = JobRepository(session).find_for_alert(criteria, since, self.match_limit)

        if not jobs:
            return

        result.alerts_matched += 1
        dispatch = self.dispatcher.send_job_alert(alert, subscription.user, jobs)
        if not dispatch.succeeded:
            result.notifications_failed += 1
            return

        result.notifications_sent += 1
        # A job inserted after checked_at may be in this batch; cover it too
        notified_through = max(checked_at, max(job.created_at for job in jobs))
        with self.session_factory() as session:
            AlertRepository(session).mark_notified(alert.id, notified_through)
