"""Periodic sweeps run by the scheduler."""

from .alerts import AlertSweep
from .cleanup import NotificationCleanup
from .models import AlertSweepResult, CleanupResult, RelatedJobsSweepResult
from .related import RelatedJobsSweep, RelatedProfile

__all__ = [
    "AlertSweep",
    "RelatedJobsSweep",
    "RelatedProfile",
    "NotificationCleanup",
    "AlertSweepResult",
    "RelatedJobsSweepResult",
    "CleanupResult",
]
