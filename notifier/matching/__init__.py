"""Alert matching: decides whether a job satisfies an alert's filters."""

from .engine import AlertMatcher, evaluate, matches
from .models import AlertCriteria, MatchResult

__all__ = ["AlertCriteria", "AlertMatcher", "MatchResult", "evaluate", "matches"]
