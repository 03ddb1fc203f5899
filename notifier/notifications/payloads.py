"""Template context builders for notification emails."""

from typing import Dict, List, Sequence

from ..domain.models import Job, JobAlert, User
from ..utils.text import truncate_text

DESCRIPTION_PREVIEW_LENGTH = 200


def build_job_context(job: Job, frontend_url: str) -> Dict:
    """Template fields for one job block.

    Returns:
        Dictionary with id, title, company, location ("city, country"),
        preference, description_preview and url ({frontend_url}/jobs/{id})
    """
    return {
        "id": job.id,
        "title": job.title,
        "company": job.company,
        "location": f"{job.city}, {job.country}",
        "preference": job.preference,
        "description_preview": truncate_text(
            job.description.strip(), max_length=DESCRIPTION_PREVIEW_LENGTH
        ),
        "url": f"{frontend_url}/jobs/{job.id}",
        "created_at": job.created_at.isoformat(),
    }


def _base_context(user: User, jobs: Sequence[Job], frontend_url: str) -> Dict:
    job_blocks: List[Dict] = [build_job_context(job, frontend_url) for job in jobs]
    return {
        "user_name": user.name,
        "jobs": job_blocks,
        "job_count": len(job_blocks),
        "manage_alerts_url": f"{frontend_url}/profile/alerts",
    }


def build_job_alert_context(
    alert: JobAlert, user: User, jobs: Sequence[Job], frontend_url: str
) -> Dict:
    """Context for the job_alert templates."""
    return {
        **_base_context(user, jobs, frontend_url),
        "alert_id": alert.id,
        "alert_name": alert.alert_name,
    }


def build_related_jobs_context(user: User, jobs: Sequence[Job], frontend_url: str) -> Dict:
    """Context for the related_jobs templates."""
    return _base_context(user, jobs, frontend_url)
