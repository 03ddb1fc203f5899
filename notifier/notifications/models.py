"""Result types and exceptions for the notification dispatcher."""

from dataclasses import dataclass, field
from typing import List, Optional

from ..domain.models import NotificationLog, NotificationStatus


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationTemplateError(NotificationError):
    """Raised when template rendering fails due to configuration or missing variables."""

    pass


class SinkDeliveryError(NotificationError):
    """Raised by a sink when the outbound transport rejects or fails a delivery."""

    pass


@dataclass
class DispatchResult:
    """Outcome of one dispatch call (one recipient, one batch of jobs).

    Attributes:
        status: "sent", "failed", or "skipped" (nothing to send)
        logs: NotificationLog rows written, one per (user, job) pair
        error: Error message when status is "failed"
    """

    status: str
    logs: List[NotificationLog] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == NotificationStatus.SENT.value
