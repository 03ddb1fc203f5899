"""Domain models for the job board notification pipeline."""

from .models import (
    PREFERENCE_VALUES,
    AlertSubscription,
    Job,
    JobAlert,
    NotificationLog,
    NotificationStatus,
    NotificationType,
    QueueItem,
    QueueStatus,
    QueueType,
    SearchHistoryEntry,
    SearchQuery,
    User,
    WorkPreference,
)

__all__ = [
    "Job",
    "User",
    "JobAlert",
    "AlertSubscription",
    "QueueItem",
    "NotificationLog",
    "SearchQuery",
    "SearchHistoryEntry",
    "WorkPreference",
    "QueueType",
    "QueueStatus",
    "NotificationType",
    "NotificationStatus",
    "PREFERENCE_VALUES",
]
