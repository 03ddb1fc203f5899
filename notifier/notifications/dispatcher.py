"""Notification dispatcher.

Builds notification content for a batch of matched jobs, hands it to the
outbound sink once per (recipient, job set), and records one NotificationLog
per (user, job) pair. A sink failure becomes failed log rows, never an
exception, so the calling sweep or queue item carries on with its next
recipient. Storage errors while writing the logs do propagate.
"""

from typing import Callable, ContextManager, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..domain.models import (
    Job,
    JobAlert,
    NotificationLog,
    NotificationStatus,
    NotificationType,
    User,
)
from ..logging import get_logger
from ..logging.context import log_context
from ..persistence.database import get_session
from ..persistence.repositories import NotificationLogRepository
from ..utils.timestamps import utc_now
from .models import DispatchResult, NotificationTemplateError
from .payloads import build_job_alert_context, build_related_jobs_context
from .sinks import LoggingSink, Sink
from .smtp_client import normalize_recipient
from .templates import JOB_ALERT, RELATED_JOBS, TemplateRenderer

logger = get_logger(__name__, component="dispatch")


class NotificationDispatcher:
    """Renders, delivers and audits notifications for matched jobs."""

    def __init__(
        self,
        sink: Optional[Sink] = None,
        template_renderer: Optional[TemplateRenderer] = None,
        frontend_url: str = "http://localhost:3000",
        session_factory: Callable[[], ContextManager[Session]] = get_session,
    ):
        """Initialize dispatcher.

        Args:
            sink: Outbound transport (LoggingSink if None)
            template_renderer: Template renderer (creates default if None)
            frontend_url: Base URL for job and alert-management links
            session_factory: Context manager factory providing a transactional session
        """
        self.sink = sink or LoggingSink()
        self.template_renderer = template_renderer or TemplateRenderer()
        self.frontend_url = frontend_url.rstrip("/")
        self.session_factory = session_factory

    def send_job_alert(self, alert: JobAlert, user: User, jobs: Sequence[Job]) -> DispatchResult:
        """Notify ``user`` about ``jobs`` matching ``alert`` in a single message."""
        with log_context(alert_id=alert.id, user_id=user.id):
            if not jobs:
                return DispatchResult(status="skipped")
            context = build_job_alert_context(alert, user, jobs, self.frontend_url)
            return self._dispatch(
                kind=JOB_ALERT,
                notification_type=NotificationType.JOB_ALERT,
                user=user,
                jobs=jobs,
                context=context,
                alert_id=alert.id,
                message_prefix="Job alert notification for",
            )

    def send_related_jobs(self, user: User, jobs: Sequence[Job]) -> DispatchResult:
        """Recommend ``jobs`` to ``user`` based on their search history."""
        with log_context(user_id=user.id):
            if not jobs:
                return DispatchResult(status="skipped")
            context = build_related_jobs_context(user, jobs, self.frontend_url)
            return self._dispatch(
                kind=RELATED_JOBS,
                notification_type=NotificationType.RELATED_JOB,
                user=user,
                jobs=jobs,
                context=context,
                alert_id=None,
                message_prefix="Related job recommendation:",
            )

    def _dispatch(
        self,
        kind: str,
        notification_type: NotificationType,
        user: User,
        jobs: Sequence[Job],
        context: dict,
        alert_id: Optional[int],
        message_prefix: str,
    ) -> DispatchResult:
        subject = f"{notification_type.value} notification"
        error: Optional[str] = None

        try:
            rendered = self.template_renderer.render(kind, context)
            subject = rendered["subject"]
            recipient = normalize_recipient(user.email)
        except NotificationTemplateError as e:
            error = str(e)
        except ValueError as e:
            error = str(e)
            logger.warning(
                f"Skipping delivery to invalid address for user {user.id}",
                extra={"event": "dispatch.invalid_recipient", "error": error},
            )
        else:
            try:
                self.sink.deliver(
                    recipient, subject, rendered["html_body"], text_body=rendered["text_body"]
                )
            except Exception as e:
                error = str(e) or type(e).__name__
                logger.error(
                    f"Sink delivery failed for user {user.id}: {error}",
                    exc_info=True,
                    extra={
                        "event": "dispatch.sink_failed",
                        "error_type": type(e).__name__,
                        "delivery_method": self.sink.delivery_method,
                    },
                )

        status = NotificationStatus.FAILED if error else NotificationStatus.SENT
        logs = self._record(
            user=user,
            jobs=jobs,
            notification_type=notification_type,
            alert_id=alert_id,
            subject=subject,
            message_prefix=message_prefix,
            status=status,
            error=error,
        )

        if error:
            logger.warning(
                f"Notification to user {user.id} failed: {error}",
                extra={
                    "event": "dispatch.failed",
                    "notification_type": notification_type.value,
                    "job_count": len(jobs),
                },
            )
            return DispatchResult(status=status.value, logs=logs, error=error)

        logger.info(
            f"Sent {notification_type.value} notification to user {user.id} for {len(jobs)} job(s)",
            extra={
                "event": "dispatch.sent",
                "notification_type": notification_type.value,
                "job_count": len(jobs),
                "delivery_method": self.sink.delivery_method,
            },
        )
        return DispatchResult(status=status.value, logs=logs)

    def _record(
        self,
        user: User,
        jobs: Sequence[Job],
        notification_type: NotificationType,
        alert_id: Optional[int],
        subject: str,
        message_prefix: str,
        status: NotificationStatus,
        error: Optional[str],
    ) -> List[NotificationLog]:
        now = utc_now()
        written: List[NotificationLog] = []
        with self.session_factory() as session:
            repo = NotificationLogRepository(session)
            for job in jobs:
                written.append(
                    repo.add(
                        NotificationLog(
                            user_id=user.id,
                            job_alert_id=alert_id,
                            job_id=job.id,
                            type=notification_type,
                            title=subject,
                            message=f"{message_prefix} {job.title}",
                            status=status,
                            delivery_method=self.sink.delivery_method,
                            error_message=error,
                            sent_at=now if status == NotificationStatus.SENT else None,
                            created_at=now,
                        )
                    )
                )
        return written
