"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.cron import CronTrigger
from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class DeliveryMethod(str, Enum):
    """Outbound notification transports."""

    LOG = "log"
    SMTP = "smtp"
    WEBHOOK = "webhook"


def _duration_seconds(value: str, min_seconds: int, max_seconds: int, label: str) -> int:
    try:
        seconds = parse_duration(value)
        validate_duration_range(seconds, min_seconds, max_seconds, label=label)
    except DurationParseError as e:
        raise ValueError(str(e)) from e
    return seconds


class QueueConfig(BaseModel):
    """Work queue and queue processor settings."""

    poll_interval: str = Field("30s", description="How often the processor drains the queue")
    batch_size: int = Field(10, ge=1, le=500, description="Items claimed per processor tick")
    max_attempts: int = Field(3, ge=1, le=20, description="Attempts before an item fails terminally")
    retry_initial_delay: int = Field(
        30, ge=0, le=86400, description="Backoff before the first retry (seconds, 0 = immediate)"
    )
    retry_backoff_multiplier: float = Field(
        2.0, ge=1.0, le=10.0, description="Exponential backoff multiplier between retries"
    )
    retry_max_delay: int = Field(3600, ge=0, le=604800, description="Backoff ceiling (seconds)")
    retention_days: int = Field(7, ge=1, description="Days to keep completed/failed items")
    stale_processing_timeout: str = Field(
        "15m", description="Age after which a processing claim is considered abandoned"
    )
    new_job_priority: int = Field(1, description="Priority for new_job_posting items")
    application_priority: int = Field(1, description="Priority for job_application items")

    # Computed fields
    poll_interval_seconds: Optional[int] = None
    stale_processing_timeout_seconds: Optional[int] = None

    @field_validator("poll_interval")
    @classmethod
    def validate_poll_interval(cls, v: str) -> str:
        _duration_seconds(v, 1, 3600, "Poll interval")
        return v

    @field_validator("stale_processing_timeout")
    @classmethod
    def validate_stale_timeout(cls, v: str) -> str:
        _duration_seconds(v, 60, 86400, "Stale processing timeout")
        return v

    @model_validator(mode="after")
    def compute_durations(self):
        """Compute second-valued durations and cross-check retry bounds."""
        if self.retry_max_delay < self.retry_initial_delay:
            raise ValueError("retry_max_delay must be greater than or equal to retry_initial_delay")
        self.poll_interval_seconds = parse_duration(self.poll_interval)
        self.stale_processing_timeout_seconds = parse_duration(self.stale_processing_timeout)
        return self


class SchedulerConfig(BaseModel):
    """Cron cadence and timezone for the periodic sweeps."""

    timezone: str = Field("Europe/Istanbul", description="IANA timezone for cron expressions")
    job_alerts_cron: str = Field("*/30 * * * *", description="Alert sweep cadence")
    related_jobs_cron: str = Field("0 9 * * *", description="Related-jobs sweep cadence")
    cleanup_cron: str = Field("0 2 * * 0", description="Log and history cleanup cadence")
    job_alerts_enabled: bool = True
    related_jobs_enabled: bool = True
    cleanup_enabled: bool = True

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: '{v}'") from e
        return v

    @field_validator("job_alerts_cron", "related_jobs_cron", "cleanup_cron")
    @classmethod
    def validate_cron(cls, v: str) -> str:
        v = v.strip()
        try:
            CronTrigger.from_crontab(v, timezone="UTC")
        except ValueError as e:
            raise ValueError(f"Invalid cron expression '{v}': {e}") from e
        return v


class SweepConfig(BaseModel):
    """Windows and caps for the alert and related-jobs sweeps."""

    alert_match_limit: int = Field(10, ge=1, le=100)
    related_jobs_limit: int = Field(5, ge=1, le=100)
    search_window_days: int = Field(7, ge=1, le=365)
    related_job_window_days: int = Field(3, ge=1, le=365)
    notification_retention_days: int = Field(90, ge=1)
    search_history_retention_days: int = Field(180, ge=1)


class DeliveryConfig(BaseModel):
    """Outbound notification transport settings."""

    method: DeliveryMethod = Field(DeliveryMethod.LOG, description="log, smtp or webhook")
    use_tls: bool = Field(True, description="Use STARTTLS (or implicit TLS on port 465)")
    frontend_url: str = Field(
        "http://localhost:3000", description="Base URL used for links in notifications"
    )
    webhook_url: Optional[str] = Field(None, description="Target URL for the webhook transport")
    webhook_timeout: int = Field(10, ge=1, le=120, description="Webhook request timeout (seconds)")

    model_config = {"use_enum_values": True, "validate_default": True}

    @field_validator("frontend_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        stripped = v.strip().rstrip("/")
        if not stripped:
            raise ValueError("frontend_url cannot be empty")
        return stripped

    @model_validator(mode="after")
    def validate_webhook(self):
        if self.method == DeliveryMethod.WEBHOOK.value and not self.webhook_url:
            raise ValueError("webhook_url is required when delivery method is 'webhook'")
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True, "validate_default": True}


class AppConfig(BaseModel):
    """Root configuration object for the job board notifier.

    Every section is optional; an empty document yields the defaults.
    """

    queue: QueueConfig = Field(default_factory=QueueConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    sweeps: SweepConfig = Field(default_factory=SweepConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    shutdown_grace_seconds: int = Field(
        10, ge=0, le=300, description="Grace period for in-flight work at shutdown"
    )
