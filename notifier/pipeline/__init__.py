"""Service facade and job posting glue."""

from .postings import JobPostingService, JobValidationError, validate_job_fields
from .service import NotificationPipeline

__all__ = [
    "NotificationPipeline",
    "JobPostingService",
    "JobValidationError",
    "validate_job_fields",
]
