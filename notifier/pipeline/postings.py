"""Job posting glue: writes a job or an application, then enqueues its follow-up work."""

from typing import Callable, ContextManager, List, Optional

from sqlalchemy.orm import Session

from ..domain.models import PREFERENCE_VALUES, Job, QueueType
from ..logging import get_logger
from ..persistence.database import get_session
from ..persistence.repositories import JobRepository
from ..workqueue.queue import WorkQueue

logger = get_logger(__name__, component="postings")

REQUIRED_JOB_FIELDS = ("title", "company", "city", "country", "preference")


class JobValidationError(ValueError):
    """Raised when a job posting is missing required fields or has a bad work mode."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


def validate_job_fields(**fields) -> List[str]:
    """Return the validation errors for a job posting (empty if valid)."""
    errors = []
    for name in REQUIRED_JOB_FIELDS:
        value = fields.get(name)
        if value is None or not str(value).strip():
            errors.append(f"{name} is required")

    preference = fields.get("preference")
    if preference and preference.strip() and preference.strip() not in PREFERENCE_VALUES:
        allowed = ", ".join(sorted(PREFERENCE_VALUES))
        errors.append(f"preference must be one of: {allowed}")
    return errors


class JobPostingService:
    """
    Thin write path used by the HTTP layer.

    The job (or the application counter) is committed in its own transaction
    before the queue item is written, so an enqueue failure never rolls back
    the posting itself.
    """

    def __init__(
        self,
        work_queue: WorkQueue,
        new_job_priority: int = 1,
        application_priority: int = 1,
        session_factory: Callable[[], ContextManager[Session]] = get_session,
    ):
        self.work_queue = work_queue
        self.new_job_priority = new_job_priority
        self.application_priority = application_priority
        self.session_factory = session_factory

    def create_job(
        self,
        title: str,
        company: str,
        city: str,
        country: str,
        preference: str,
        description: Optional[str] = "",
    ) -> Job:
        """
        Create a job and enqueue its fan-out.

        Raises:
            JobValidationError: If required fields are missing or invalid
            PersistenceError: If the job or the queue item cannot be written
        """
        errors = validate_job_fields(
            title=title, company=company, city=city, country=country, preference=preference
        )
        if errors:
            raise JobValidationError(errors)

        with self.session_factory() as session:
            job = JobRepository(session).create(
                title=title.strip(),
                company=company.strip(),
                city=city.strip(),
                country=country.strip(),
                preference=preference.strip(),
                description=description or "",
            )

        logger.info(
            f"Job {job.id} created: {job.title}",
            extra={"event": "job.created", "job_id": job.id},
        )

        self.work_queue.enqueue(
            QueueType.NEW_JOB_POSTING,
            job_id=job.id,
            priority=self.new_job_priority,
            payload={"title": job.title, "company": job.company},
        )
        return job

    def apply_to_job(self, job_id: int, user_id: int) -> int:
        """
        Record an application and enqueue a ``job_application`` item.

        Returns:
            The job's new application count

        Raises:
            RecordNotFoundError: If the job doesn't exist
        """
        with self.session_factory() as session:
            applications = JobRepository(session).increment_applications(job_id)

        self.work_queue.enqueue(
            QueueType.JOB_APPLICATION,
            job_id=job_id,
            priority=self.application_priority,
            payload={"user_id": user_id},
        )
        return applications
