"""Alert matching engine for evaluating jobs against saved alerts.

Rules, all ANDed, each active only when set on the alert:
- keywords: any term is a substring of ``title + " " + description`` (case-insensitive)
- city: case-insensitive exact match
- country: case-sensitive exact match
- preference: exact match
- company: case-insensitive substring match

An alert with no filters matches every job.
"""

from typing import Iterable, List

from ..domain.models import AlertSubscription, Job, JobAlert
from ..logging import get_logger
from .models import AlertCriteria, MatchResult

logger = get_logger(__name__, component="matching")


def evaluate(job: Job, criteria: AlertCriteria) -> MatchResult:
    """Evaluate a job against parsed criteria, recording which filters failed."""
    failed: List[str] = []
    matched_keywords: List[str] = []

    if criteria.keywords:
        haystack = f"{job.title} {job.description}".lower()
        matched_keywords = [term for term in criteria.keywords if term in haystack]
        if not matched_keywords:
            failed.append("keywords")

    if criteria.city is not None and job.city.lower() != criteria.city:
        failed.append("city")

    if criteria.country is not None and job.country != criteria.country:
        failed.append("country")

    if criteria.preference is not None and job.preference != criteria.preference:
        failed.append("preference")

    if criteria.company is not None and criteria.company not in job.company.lower():
        failed.append("company")

    return MatchResult(
        is_match=not failed,
        matched_keywords=matched_keywords,
        failed_filters=failed,
    )


def matches(job: Job, alert: JobAlert) -> bool:
    """Return True if ``job`` satisfies every filter set on ``alert``."""
    return evaluate(job, AlertCriteria.from_alert(alert)).is_match


class AlertMatcher:
    """Fans a single job out over a set of alert subscriptions."""

    def matching_subscriptions(
        self, job: Job, subscriptions: Iterable[AlertSubscription]
    ) -> List[AlertSubscription]:
        """Return the subscriptions whose alert matches ``job``, in input order."""
        matched: List[AlertSubscription] = []
        evaluated = 0

        for subscription in subscriptions:
            evaluated += 1
            result = evaluate(job, AlertCriteria.from_alert(subscription.alert))
            if result.is_match:
                matched.append(subscription)
            else:
                logger.debug(
                    "Alert did not match job",
                    extra={
                        "event": "match.rejected",
                        "job_id": job.id,
                        "alert_id": subscription.alert.id,
                        "failed_filters": result.failed_filters,
                    },
                )

        logger.info(
            "Job evaluated against active alerts",
            extra={
                "event": "match.fanout.completed",
                "job_id": job.id,
                "alerts_evaluated": evaluated,
                "alerts_matched": len(matched),
            },
        )
        return matched
