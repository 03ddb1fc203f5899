"""Database schema definition and ORM models.

This module defines SQLAlchemy ORM models for the job board tables used by the
notification pipeline and provides conversion to the domain models. Timestamps
are stored as UTC ISO-8601 strings so that range filters and ordering compare
lexicographically.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    inspect,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from ..domain.models import (
    Job,
    JobAlert,
    NotificationLog,
    NotificationStatus,
    NotificationType,
    QueueItem,
    QueueStatus,
    SearchHistoryEntry,
    SearchQuery,
    User,
)
from ..logging import get_logger
from ..utils.timestamps import format_timestamp, parse_iso_datetime

logger = get_logger(__name__, component="database")

Base = declarative_base()


class UserModel(Base):
    """ORM model for users table (only the columns the pipeline reads)."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(320), nullable=False, unique=True)
    role = Column(String(32), nullable=False, default="user")
    created_at = Column(String(50), nullable=False)

    def to_domain(self) -> User:
        return User(id=self.id, name=self.name, email=self.email, role=self.role)


class JobModel(Base):
    """ORM model for jobs table."""

    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    company = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False)
    country = Column(String(100), nullable=False)
    preference = Column(String(50), nullable=False)
    description = Column(Text, nullable=False, default="")
    applications = Column(Integer, nullable=False, default=0)
    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=True)

    __table_args__ = (
        Index("idx_jobs_created_at", "created_at"),
        Index("idx_jobs_city", "city"),
        Index("idx_jobs_preference", "preference"),
    )

    def to_domain(self) -> Job:
        return Job(
            id=self.id,
            title=self.title,
            company=self.company,
            city=self.city,
            country=self.country,
            preference=self.preference,
            description=self.description or "",
            applications=self.applications or 0,
            created_at=_parse_datetime(self.created_at),
            updated_at=_parse_datetime(self.updated_at),
        )


class JobAlertModel(Base):
    """ORM model for job_alerts table."""

    __tablename__ = "job_alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    alert_name = Column(String(255), nullable=False)
    keywords = Column(Text, nullable=True)
    city = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)
    preference = Column(String(50), nullable=True)
    company = Column(String(255), nullable=True)
    min_salary = Column(Integer, nullable=True)
    max_salary = Column(Integer, nullable=True)
    frequency = Column(String(20), nullable=False, default="daily")
    is_active = Column(Boolean, nullable=False, default=True)
    last_notification_sent = Column(String(50), nullable=True)
    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_job_alerts_user", "user_id"),
        Index("idx_job_alerts_active", "is_active"),
    )

    def to_domain(self) -> JobAlert:
        return JobAlert(
            id=self.id,
            user_id=self.user_id,
            alert_name=self.alert_name,
            keywords=self.keywords,
            city=self.city,
            country=self.country,
            preference=self.preference,
            company=self.company,
            min_salary=self.min_salary,
            max_salary=self.max_salary,
            frequency=self.frequency,
            is_active=bool(self.is_active),
            last_notification_sent=_parse_datetime(self.last_notification_sent),
            created_at=_parse_datetime(self.created_at),
            updated_at=_parse_datetime(self.updated_at),
        )


class NotificationLogModel(Base):
    """ORM model for notification_logs table (append-only audit trail)."""

    __tablename__ = "notification_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    job_alert_id = Column(
        Integer, ForeignKey("job_alerts.id", ondelete="SET NULL"), nullable=True
    )
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="SET NULL"), nullable=True)
    type = Column(String(20), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=NotificationStatus.PENDING.value)
    delivery_method = Column(String(20), nullable=False, default="email")
    error_message = Column(Text, nullable=True)
    sent_at = Column(String(50), nullable=True)
    created_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_notification_logs_user", "user_id"),
        Index("idx_notification_logs_created_at", "created_at"),
    )

    def to_domain(self) -> NotificationLog:
        return NotificationLog(
            id=self.id,
            user_id=self.user_id,
            job_alert_id=self.job_alert_id,
            job_id=self.job_id,
            type=NotificationType(self.type),
            title=self.title,
            message=self.message,
            status=NotificationStatus(self.status),
            delivery_method=self.delivery_method,
            error_message=self.error_message,
            sent_at=_parse_datetime(self.sent_at),
            created_at=_parse_datetime(self.created_at),
        )

    @classmethod
    def from_domain(cls, log: NotificationLog) -> "NotificationLogModel":
        return cls(
            user_id=log.user_id,
            job_alert_id=log.job_alert_id,
            job_id=log.job_id,
            type=log.type.value,
            title=log.title,
            message=log.message,
            status=log.status.value,
            delivery_method=log.delivery_method,
            error_message=log.error_message,
            sent_at=_format_datetime(log.sent_at),
            created_at=_format_datetime(log.created_at),
        )


class QueueItemModel(Base):
    """ORM model for job_queue table.

    ``job_id`` is deliberately not a foreign key: a queue item may outlive the
    job it refers to, in which case processing fails instead of the delete.
    """

    __tablename__ = "job_queue"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Integer, nullable=True)
    queue_type = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default=QueueStatus.PENDING.value)
    priority = Column(Integer, nullable=False, default=1)
    payload = Column(JSON, nullable=False, default=dict)
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    error_message = Column(Text, nullable=True)
    created_at = Column(String(50), nullable=False)
    available_at = Column(String(50), nullable=True)
    claimed_at = Column(String(50), nullable=True)
    processed_at = Column(String(50), nullable=True)

    __table_args__ = (
        Index("idx_job_queue_claim", "status", "priority", "created_at"),
        Index("idx_job_queue_type", "queue_type"),
    )

    def to_domain(self) -> QueueItem:
        return QueueItem(
            id=self.id,
            job_id=self.job_id,
            queue_type=self.queue_type,
            status=QueueStatus(self.status),
            priority=self.priority,
            payload=self.payload or {},
            attempts=self.attempts,
            max_attempts=self.max_attempts,
            error_message=self.error_message,
            created_at=_parse_datetime(self.created_at),
            available_at=_parse_datetime(self.available_at),
            claimed_at=_parse_datetime(self.claimed_at),
            processed_at=_parse_datetime(self.processed_at),
        )


class SearchHistoryModel(Base):
    """ORM model for job_searches table, the search-history document store.

    Query, results, and metadata are kept as JSON documents.
    """

    __tablename__ = "job_searches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    query = Column(JSON, nullable=False, default=dict)
    results_count = Column(Integer, nullable=False, default=0)
    results = Column(JSON, nullable=False, default=list)
    search_metadata = Column("metadata", JSON, nullable=False, default=dict)
    searched_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_job_searches_user_time", "user_id", "searched_at"),
        Index("idx_job_searches_searched_at", "searched_at"),
    )

    def to_domain(self) -> SearchHistoryEntry:
        return SearchHistoryEntry(
            id=self.id,
            user_id=self.user_id,
            query=SearchQuery.model_validate(self.query or {}),
            results_count=self.results_count,
            results=self.results or [],
            metadata=self.search_metadata or {},
            searched_at=_parse_datetime(self.searched_at),
        )


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime as ISO 8601 string for database storage.

    Naive datetimes are treated as UTC. Fixed-width microseconds keep
    lexicographic order equal to chronological order.
    """
    if dt is None:
        return None
    return format_timestamp(dt, include_microseconds=True)


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO 8601 string to a timezone-aware UTC datetime."""
    if not dt_str:
        return None
    return parse_iso_datetime(dt_str)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    try:
        Base.metadata.create_all(engine, checkfirst=True)
    except Exception as e:
        logger.error(
            f"Failed to create database schema: {e}",
            exc_info=True,
            extra={"event": "database.schema.failed"},
        )
        raise

    tables = inspect(engine).get_table_names()
    logger.info(
        "Database schema ready",
        extra={"event": "database.schema.ready", "tables": sorted(tables)},
    )
