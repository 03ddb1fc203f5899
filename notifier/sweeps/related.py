"""Related-jobs sweep: recommends new jobs that resemble a user's recent searches."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, ContextManager, FrozenSet, Iterable, List

from sqlalchemy.orm import Session

from ..domain.models import SearchQuery
from ..logging import get_logger
from ..logging.context import log_context
from ..notifications.dispatcher import NotificationDispatcher
from ..persistence.database import get_session
from ..persistence.repositories import JobRepository, SearchHistoryRepository, UserRepository
from ..utils.timestamps import days_ago, utc_now
from .models import RelatedJobsSweepResult

logger = get_logger(__name__, component="sweep")


@dataclass(frozen=True)
class RelatedProfile:
    """Union of the query shapes a user searched for recently.

    A job resembles the profile if its city, country, or work mode was
    searched for, or if its title or description contains a searched term.
    """

    cities: FrozenSet[str] = field(default_factory=frozenset)
    countries: FrozenSet[str] = field(default_factory=frozenset)
    preferences: FrozenSet[str] = field(default_factory=frozenset)
    terms: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_queries(cls, queries: Iterable[SearchQuery]) -> "RelatedProfile":
        cities, countries, preferences, terms = set(), set(), set(), set()
        for query in queries:
            if query.city and query.city.strip():
                cities.add(query.city.strip())
            if query.country and query.country.strip():
                countries.add(query.country.strip())
            if query.preference and query.preference.strip():
                preferences.add(query.preference.strip())
            if query.term and query.term.strip():
                terms.add(query.term.strip().lower())
        return cls(frozenset(cities), frozenset(countries), frozenset(preferences), frozenset(terms))

    @property
    def is_empty(self) -> bool:
        return not (self.cities or self.countries or self.preferences or self.terms)


class RelatedJobsSweep:
    """Runs the related-jobs sweep over users with recent search history."""

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        limit: int = 5,
        search_window_days: int = 7,
        job_window_days: int = 3,
        session_factory: Callable[[], ContextManager[Session]] = get_session,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.dispatcher = dispatcher
        self.limit = limit
        self.search_window_days = search_window_days
        self.job_window_days = job_window_days
        self.session_factory = session_factory
        self.clock = clock

    def run(self) -> RelatedJobsSweepResult:
        """Sweep users with searches in the search window.

        Raises:
            PersistenceError: If the search history cannot be aggregated
        """
        now = self.clock()
        result = RelatedJobsSweepResult()

        with self.session_factory() as session:
            searches_by_user = SearchHistoryRepository(session).recent_queries_by_user(
                days_ago(self.search_window_days, now)
            )

        logger.info(
            f"Related-jobs sweep started for {len(searches_by_user)} users",
            extra={"event": "sweep.related.started", "users": len(searches_by_user)},
        )

        jobs_since = days_ago(self.job_window_days, now)
        for user_id, queries in searches_by_user.items():
            result.users_considered += 1
            with log_context(user_id=user_id):
                try:
                    self._sweep_user(user_id, queries, jobs_since, result)
                except Exception as e:
                    result.users_failed += 1
                    logger.error(
                        f"Error processing related jobs for user {user_id}: {e}",
                        exc_info=True,
                        extra={"event": "sweep.related.user_failed", "error_type": type(e).__name__},
                    )

        logger.info(
            "Related-jobs sweep completed",
            extra={"event": "sweep.related.completed", **result.to_dict()},
        )
        return result

    def _sweep_user(
        self,
        user_id: int,
        queries: List[SearchQuery],
        jobs_since: datetime,
        result: RelatedJobsSweepResult,
    ) -> None:
        profile = RelatedProfile.from_queries(queries)

        with self.session_factory() as session:
            user = UserRepository(session).get_by_id(user_id)
            if user is None:
                result.users_skipped += 1
                logger.debug(
                    f"Skipping searches of unknown user {user_id}",
                    extra={"event": "sweep.related.user_missing"},
                )
                return
            jobs = JobRepository(session).find_related(
                cities=profile.cities,
                countries=profile.countries,
                preferences=profile.preferences,
                terms=profile.terms,
                since=jobs_since,
                limit=self.limit,
            )

        if not jobs:
            return

        dispatch = self.dispatcher.send_related_jobs(user, jobs)
        if dispatch.succeeded:
            result.users_notified += 1
        else:
            result.notifications_failed += 1
