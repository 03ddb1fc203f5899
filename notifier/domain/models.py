"""Core domain models for jobs, alerts, queue items, and notification records.

This module defines the data structures used throughout the notification pipeline:
- Job: a posting on the job board (read-mostly here)
- User: the owner of alerts and recipient of notifications
- JobAlert: a user's saved filter over job postings
- QueueItem: one unit of deferred work in the durable queue
- NotificationLog: immutable audit record of a dispatch attempt
- SearchQuery / SearchHistoryEntry: free-text search history records
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class WorkPreference(str, Enum):
    """Work-mode vocabulary shared by jobs, alerts, and searches."""

    REMOTE = "Uzaktan"
    OFFICE = "Ofis"
    HYBRID = "Hibrit"
    PART_TIME = "Yarı Zamanlı"
    FULL_TIME = "Tam Zamanlı"


class QueueType(str, Enum):
    """Kinds of deferred work carried by the queue."""

    NEW_JOB_POSTING = "new_job_posting"
    JOB_APPLICATION = "job_application"
    GENERIC_NOTIFICATION = "generic_notification"


class QueueStatus(str, Enum):
    """Queue item lifecycle: pending -> processing -> completed | failed."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (QueueStatus.COMPLETED, QueueStatus.FAILED)


class NotificationType(str, Enum):
    JOB_ALERT = "job_alert"
    RELATED_JOB = "related_job"
    SYSTEM = "system"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


PREFERENCE_VALUES = frozenset(p.value for p in WorkPreference)


def _as_utc(v: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if v is None:
        return None
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


class User(BaseModel):
    """Minimal view of a board user, as needed for addressing notifications."""

    id: int = Field(..., description="User identifier")
    name: str = Field(..., description="Display name used in greetings")
    email: str = Field(..., description="Delivery address")
    role: str = Field("user", description="Account role")


class Job(BaseModel):
    """A job posting on the board.

    The notification core only reads jobs; they are created by the HTTP layer
    (or by JobPostingService in this package).
    """

    id: int = Field(..., description="Job identifier")
    title: str = Field(..., description="Job title")
    company: str = Field(..., description="Company name")
    city: str = Field(..., description="City of the position")
    country: str = Field(..., description="Country from the fixed country vocabulary")
    preference: str = Field(..., description="Work mode (see WorkPreference)")
    description: str = Field("", description="Free-text description")
    applications: int = Field(0, ge=0, description="Application counter")
    created_at: datetime = Field(..., description="When the job was posted (UTC)")
    updated_at: Optional[datetime] = Field(None, description="Last update (UTC)")

    @field_validator("created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Ensure datetime is timezone-aware and in UTC."""
        return _as_utc(v)

    model_config = {"json_schema_extra": {"example": {
        "id": 42,
        "title": "React Developer",
        "company": "Example Teknoloji",
        "city": "Istanbul",
        "country": "Türkiye",
        "preference": "Uzaktan",
        "description": "We are looking for a frontend engineer...",
        "applications": 0,
        "created_at": "2025-06-22T12:00:00Z",
    }}}


class JobAlert(BaseModel):
    """A user-owned saved filter over job postings.

    Every filter is optional; an alert with no filters matches every job.
    ``last_notification_sent`` only moves forward and only after a successful
    sweep dispatch for the alert.
    """

    id: int = Field(..., description="Alert identifier")
    user_id: int = Field(..., description="Owning user")
    alert_name: str = Field(..., min_length=1, description="Display name")
    keywords: Optional[str] = Field(
        None, description="Comma-separated terms, OR-matched against title + description"
    )
    city: Optional[str] = Field(None, description="City filter (case-insensitive exact)")
    country: Optional[str] = Field(None, description="Country filter (exact)")
    preference: Optional[str] = Field(None, description="Work-mode filter (exact)")
    company: Optional[str] = Field(None, description="Company filter (substring)")
    min_salary: Optional[int] = Field(None, ge=0)
    max_salary: Optional[int] = Field(None, ge=0)
    frequency: str = Field("daily", description="Requested digest frequency")
    is_active: bool = Field(True, description="Inactive alerts are never matched")
    last_notification_sent: Optional[datetime] = Field(
        None, description="Last successful sweep dispatch (UTC)"
    )
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("keywords", "city", "country", "preference", "company")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty or whitespace-only filters as unset."""
        if v is None:
            return None
        stripped = v.strip()
        return stripped or None

    @field_validator("last_notification_sent", "created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


class AlertSubscription(BaseModel):
    """An active alert joined with its owner, as loaded by sweeps and fan-out."""

    alert: JobAlert
    user: User


class QueueItem(BaseModel):
    """One unit of deferred work.

    Status transitions are monotonic: once an item is completed or failed it is
    never returned to pending. Recovery from a terminal failure is a new item
    (see WorkQueue.requeue).
    """

    id: int
    job_id: Optional[int] = None
    queue_type: str = Field(..., description="QueueType value (unknown types fail on processing)")
    status: QueueStatus = QueueStatus.PENDING
    priority: int = Field(1, description="Higher drains first")
    payload: Dict[str, Any] = Field(default_factory=dict)
    attempts: int = Field(0, ge=0)
    max_attempts: int = Field(3, ge=1)
    error_message: Optional[str] = None
    created_at: datetime
    available_at: Optional[datetime] = Field(
        None, description="Earliest time the item may be claimed (retry backoff)"
    )
    claimed_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    @field_validator("created_at", "available_at", "claimed_at", "processed_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @property
    def attempts_exhausted(self) -> bool:
        return self.attempts >= self.max_attempts


class NotificationLog(BaseModel):
    """Audit record of one dispatch attempt for a (user, job) pair."""

    id: Optional[int] = None
    user_id: int
    job_alert_id: Optional[int] = None
    job_id: Optional[int] = None
    type: NotificationType
    title: str
    message: str
    status: NotificationStatus = NotificationStatus.PENDING
    delivery_method: str = "email"
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator("sent_at", "created_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


class SearchQuery(BaseModel):
    """Structured parameters of a single job search."""

    term: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    preference: Optional[str] = None
    company: Optional[str] = None
    min_salary: Optional[int] = None
    max_salary: Optional[int] = None


class SearchHistoryEntry(BaseModel):
    """A recorded search, as kept in the search-history document store."""

    id: Optional[int] = None
    user_id: Optional[int] = Field(None, description="None for anonymous searches")
    query: SearchQuery = Field(default_factory=SearchQuery)
    results_count: int = Field(0, ge=0)
    results: List[Dict[str, Any]] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    searched_at: datetime

    @field_validator("searched_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)
