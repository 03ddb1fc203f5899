"""Data models for the alert matcher.

AlertCriteria is the single parsed form of an alert's filters. The queue path
evaluates it in Python (see engine.py); the alert sweep translates the same
object into a SQL filter (see persistence.repositories), so keyword splitting
and case rules cannot drift between the two paths.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..domain.models import JobAlert
from ..utils.text import split_terms


@dataclass(frozen=True)
class AlertCriteria:
    """Normalized alert filters.

    Attributes:
        keywords: Lower-cased, trimmed, non-empty terms (OR semantics)
        city: Lower-cased city (case-insensitive exact match)
        country: Country as stored (case-sensitive exact match)
        preference: Work mode as stored (exact match)
        company: Lower-cased company fragment (case-insensitive substring)
    """

    keywords: Tuple[str, ...] = ()
    city: Optional[str] = None
    country: Optional[str] = None
    preference: Optional[str] = None
    company: Optional[str] = None

    @classmethod
    def from_alert(cls, alert: JobAlert) -> "AlertCriteria":
        return cls(
            keywords=tuple(split_terms(alert.keywords)),
            city=alert.city.lower() if alert.city else None,
            country=alert.country or None,
            preference=alert.preference or None,
            company=alert.company.lower() if alert.company else None,
        )

    @property
    def is_empty(self) -> bool:
        """True when no filter is active, i.e. every job matches."""
        return not (self.keywords or self.city or self.country or self.preference or self.company)


@dataclass
class MatchResult:
    """Outcome of evaluating one job against one alert.

    Attributes:
        is_match: True if every active filter passed
        matched_keywords: Keywords found in title + description
        failed_filters: Names of the filters that rejected the job
    """

    is_match: bool
    matched_keywords: List[str] = field(default_factory=list)
    failed_filters: List[str] = field(default_factory=list)
