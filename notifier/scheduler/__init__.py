"""Cron scheduling of the periodic sweeps."""

from .service import (
    CLEANUP_TASK,
    JOB_ALERTS_TASK,
    RELATED_JOBS_TASK,
    ScheduledTask,
    SchedulerError,
    SchedulerService,
)

__all__ = [
    "SchedulerService",
    "ScheduledTask",
    "SchedulerError",
    "JOB_ALERTS_TASK",
    "RELATED_JOBS_TASK",
    "CLEANUP_TASK",
]
