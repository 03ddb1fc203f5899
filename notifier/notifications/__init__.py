"""Notification dispatch: templates, sinks, and the audit trail."""

from .dispatcher import NotificationDispatcher
from .models import (
    DispatchResult,
    NotificationError,
    NotificationTemplateError,
    SinkDeliveryError,
)
from .sinks import LoggingSink, Sink, SMTPSink, WebhookSink, build_sink
from .smtp_client import SMTPClient
from .templates import TemplateRenderer

__all__ = [
    "NotificationDispatcher",
    "DispatchResult",
    "NotificationError",
    "NotificationTemplateError",
    "SinkDeliveryError",
    "Sink",
    "LoggingSink",
    "SMTPSink",
    "WebhookSink",
    "build_sink",
    "SMTPClient",
    "TemplateRenderer",
]
