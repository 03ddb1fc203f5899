"""Durable work queue and its processor."""

from .handlers import NewJobPostingHandler, handle_generic_notification, handle_job_application
from .models import ProcessorRunResult, QueueHandler, RetryPolicy
from .processor import QueueProcessor
from .queue import WorkQueue

__all__ = [
    "WorkQueue",
    "QueueProcessor",
    "NewJobPostingHandler",
    "handle_job_application",
    "handle_generic_notification",
    "ProcessorRunResult",
    "QueueHandler",
    "RetryPolicy",
]
