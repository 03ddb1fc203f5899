"""Outbound delivery sinks.

A sink is the side-effecting edge of the pipeline: it takes an already
rendered message and hands it to a transport. The dispatcher treats every
exception from a sink as a failed delivery.
"""

from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Optional

import requests

from ..config.environment import EnvironmentConfig
from ..config.models import DeliveryConfig, DeliveryMethod
from ..config.exceptions import ConfigurationError
from ..logging import get_logger
from .models import SinkDeliveryError
from .smtp_client import SMTPClient, build_sender_address

logger = get_logger(__name__, component="notification")


class Sink(ABC):
    """Delivery capability used by NotificationDispatcher."""

    #: Recorded as NotificationLog.delivery_method
    delivery_method = "email"

    @abstractmethod
    def deliver(
        self,
        recipient: str,
        subject: str,
        body: str,
        text_body: Optional[str] = None,
    ) -> None:
        """Deliver one message.

        Args:
            recipient: Validated recipient address
            subject: Single-line subject
            body: HTML body
            text_body: Optional plain-text alternative

        Raises:
            SinkDeliveryError: If the transport fails
        """


class LoggingSink(Sink):
    """Demo transport: writes the message envelope to the log."""

    delivery_method = "log"

    def deliver(self, recipient, subject, body, text_body=None):
        logger.info(
            f"Notification for {recipient}: {subject}",
            extra={
                "event": "sink.log.delivered",
                "recipient": recipient,
                "subject": subject,
                "body_length": len(body),
            },
        )


class SMTPSink(Sink):
    """Sends multipart (plain text + HTML) email over SMTP."""

    delivery_method = "email"

    def __init__(
        self,
        env_config: EnvironmentConfig,
        use_tls: bool = True,
        smtp_client: Optional[SMTPClient] = None,
    ):
        if not env_config.smtp_configured:
            raise ConfigurationError(
                "SMTP delivery requires SMTP_HOST and SMTP_PORT",
                suggestions=["Set SMTP_HOST and SMTP_PORT in .env"],
            )
        self.env_config = env_config
        self.use_tls = use_tls
        self.smtp_client = smtp_client or SMTPClient()

    def deliver(self, recipient, subject, body, text_body=None):
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = build_sender_address(self.env_config)
        message["To"] = recipient
        message.set_content(text_body or subject)
        message.add_alternative(body, subtype="html")

        self.smtp_client.send(message, self.env_config, self.use_tls)


class WebhookSink(Sink):
    """POSTs the message as a JSON document to an HTTP endpoint."""

    delivery_method = "webhook"

    def __init__(self, url: str, timeout: int = 10, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": "job-board-notifier"})

    def deliver(self, recipient, subject, body, text_body=None):
        document = {
            "recipient": recipient,
            "subject": subject,
            "body": body,
            "text_body": text_body,
        }
        try:
            response = self._session.post(self.url, json=document, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise SinkDeliveryError(
                f"Webhook {self.url} timed out after {self.timeout} seconds"
            ) from e
        except requests.exceptions.RequestException as e:
            raise SinkDeliveryError(f"Webhook request to {self.url} failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise SinkDeliveryError(
                f"Webhook {self.url} returned HTTP {response.status_code}: {response.reason}"
            )


def build_sink(delivery: DeliveryConfig, env_config: EnvironmentConfig) -> Sink:
    """Construct the sink selected by ``delivery.method``."""
    method = DeliveryMethod(delivery.method)
    if method == DeliveryMethod.SMTP:
        return SMTPSink(env_config, use_tls=delivery.use_tls)
    if method == DeliveryMethod.WEBHOOK:
        return WebhookSink(delivery.webhook_url, timeout=delivery.webhook_timeout)
    return LoggingSink()
