"""Data access layer (repositories) for persistence operations.

Repository classes wrap a caller-owned SQLAlchemy session, return domain models
rather than ORM models, and translate SQLAlchemyError into PersistenceError
subclasses. Transactions are owned by the caller via ``get_session()``.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain.models import (
    AlertSubscription,
    Job,
    JobAlert,
    NotificationLog,
    QueueItem,
    QueueStatus,
    SearchHistoryEntry,
    SearchQuery,
    User,
)
from ..logging import get_logger
from ..matching.models import AlertCriteria
from ..utils.timestamps import utc_now
from .exceptions import DataIntegrityError, PersistenceError, QueueStateError, RecordNotFoundError
from .schema import (
    JobAlertModel,
    JobModel,
    NotificationLogModel,
    QueueItemModel,
    SearchHistoryModel,
    UserModel,
    _format_datetime,
)

logger = get_logger(__name__, component="database")

# Columns a user may change on their own alert
ALERT_MUTABLE_FIELDS = (
    "alert_name",
    "keywords",
    "city",
    "country",
    "preference",
    "company",
    "min_salary",
    "max_salary",
    "frequency",
    "is_active",
)


def _job_text():
    """SQL expression for the lower-cased ``title + " " + description`` haystack."""
    return func.lower(JobModel.title + " " + func.coalesce(JobModel.description, ""))


class UserRepository:
    """Repository for the (read-mostly) users table."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, user_id: int) -> Optional[User]:
        """Retrieve a user by id, or None if missing."""
        try:
            model = self.session.get(UserModel, user_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving user {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve user: {e}") from e

    def create(self, name: str, email: str, role: str = "user") -> User:
        """Insert a user.

        Raises:
            DataIntegrityError: If the email is already registered
        """
        try:
            model = UserModel(
                name=name,
                email=email,
                role=role,
                created_at=_format_datetime(utc_now()),
            )
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error creating user {email}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to create user due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating user {email}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create user: {e}") from e


class JobRepository:
    """Repository for job reads and the thin job-posting writes."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, job_id: int) -> Optional[Job]:
        """Retrieve a job by id, or None if missing."""
        try:
            model = self.session.get(JobModel, job_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve job: {e}") from e

    def create(
        self,
        title: str,
        company: str,
        city: str,
        country: str,
        preference: str,
        description: str = "",
        created_at: Optional[datetime] = None,
    ) -> Job:
        """Insert a job posting and return it with its assigned id."""
        created = created_at or utc_now()
        try:
            model = JobModel(
                title=title,
                company=company,
                city=city,
                country=country,
                preference=preference,
                description=description or "",
                applications=0,
                created_at=_format_datetime(created),
                updated_at=_format_datetime(created),
            )
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error creating job '{title}': {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to create job due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating job '{title}': {e}", exc_info=True)
            raise PersistenceError(f"Failed to create job: {e}") from e

    def increment_applications(self, job_id: int) -> int:
        """Increment the application counter and return the new value.

        Raises:
            RecordNotFoundError: If the job doesn't exist
        """
        try:
            result = self.session.execute(
                update(JobModel)
                .where(JobModel.id == job_id)
                .values(
                    applications=JobModel.applications + 1,
                    updated_at=_format_datetime(utc_now()),
                )
            )
            if result.rowcount == 0:
                raise RecordNotFoundError(f"Job with id {job_id} not found")
            return self.session.execute(
                select(JobModel.applications).where(JobModel.id == job_id)
            ).scalar_one()
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error incrementing applications for job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to record application: {e}") from e

    def find_for_alert(self, criteria: AlertCriteria, since: datetime, limit: int) -> List[Job]:
        """Jobs created strictly after ``since`` that satisfy ``criteria``, newest first.

        The SQL mirrors matching.engine.evaluate filter for filter.
        """
        conditions = [JobModel.created_at > _format_datetime(since)]

        if criteria.keywords:
            haystack = _job_text()
            conditions.append(
                or_(*(haystack.contains(term, autoescape=True) for term in criteria.keywords))
            )
        if criteria.city is not None:
            conditions.append(func.lower(JobModel.city) == criteria.city)
        if criteria.country is not None:
            conditions.append(JobModel.country == criteria.country)
        if criteria.preference is not None:
            conditions.append(JobModel.preference == criteria.preference)
        if criteria.company is not None:
            conditions.append(func.lower(JobModel.company).contains(criteria.company, autoescape=True))

        return self._select_recent(and_(*conditions), limit)

    def find_related(
        self,
        cities: Iterable[str],
        countries: Iterable[str],
        preferences: Iterable[str],
        terms: Iterable[str],
        since: datetime,
        limit: int,
    ) -> List[Job]:
        """Jobs created after ``since`` resembling any of the given search shapes.

        A job qualifies if its city, country, or preference is in the given sets,
        OR its title or description contains any term (case-insensitive).
        With no conditions at all, nothing qualifies.
        """
        cities, countries, preferences = sorted(set(cities)), sorted(set(countries)), sorted(set(preferences))
        terms = sorted({term.lower() for term in terms if term})

        alternatives = []
        if cities:
            alternatives.append(JobModel.city.in_(cities))
        if countries:
            alternatives.append(JobModel.country.in_(countries))
        if preferences:
            alternatives.append(JobModel.preference.in_(preferences))
        for term in terms:
            alternatives.append(
                or_(
                    func.lower(JobModel.title).contains(term, autoescape=True),
                    func.lower(JobModel.description).contains(term, autoescape=True),
                )
            )

        if not alternatives:
            return []

        return self._select_recent(
            and_(JobModel.created_at > _format_datetime(since), or_(*alternatives)), limit
        )

    def _select_recent(self, where_clause, limit: int) -> List[Job]:
        try:
            stmt = (
                select(JobModel)
                .where(where_clause)
                .order_by(JobModel.created_at.desc(), JobModel.id.desc())
                .limit(limit)
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error querying jobs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to query jobs: {e}") from e


class AlertRepository:
    """Repository for user-owned job alerts."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, alert_id: int) -> Optional[JobAlert]:
        try:
            model = self.session.get(JobAlertModel, alert_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving alert {alert_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve alert: {e}") from e

    def create(self, user_id: int, alert_name: str, **filters: Any) -> JobAlert:
        """Create an alert for ``user_id``.

        Args:
            user_id: Owning user
            alert_name: Display name
            **filters: Any of keywords, city, country, preference, company,
                min_salary, max_salary, frequency, is_active

        Raises:
            DataIntegrityError: If the user doesn't exist
        """
        unknown = set(filters) - set(ALERT_MUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown alert fields: {', '.join(sorted(unknown))}")

        # Run through the domain model so blank filters are stored as NULL
        now = utc_now()
        alert = JobAlert(id=0, user_id=user_id, alert_name=alert_name, **filters)
        values = alert.model_dump(include=set(ALERT_MUTABLE_FIELDS))

        try:
            model = JobAlertModel(
                user_id=user_id,
                created_at=_format_datetime(now),
                updated_at=_format_datetime(now),
                **values,
            )
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error creating alert for user {user_id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to create alert due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating alert for user {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create alert: {e}") from e

    def list_for_user(self, user_id: int) -> List[JobAlert]:
        """All alerts owned by ``user_id``, newest first."""
        try:
            stmt = (
                select(JobAlertModel)
                .where(JobAlertModel.user_id == user_id)
                .order_by(JobAlertModel.created_at.desc(), JobAlertModel.id.desc())
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing alerts for user {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list alerts: {e}") from e

    def update(self, alert_id: int, user_id: int, **changes: Any) -> JobAlert:
        """Update an alert owned by ``user_id``.

        Raises:
            RecordNotFoundError: If no such alert belongs to the user
        """
        unknown = set(changes) - set(ALERT_MUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown alert fields: {', '.join(sorted(unknown))}")

        try:
            model = self.session.execute(
                select(JobAlertModel).where(
                    JobAlertModel.id == alert_id, JobAlertModel.user_id == user_id
                )
            ).scalar_one_or_none()
            if model is None:
                raise RecordNotFoundError(f"Alert {alert_id} not found for user {user_id}")

            merged = model.to_domain().model_copy(update=changes)
            # Re-validate so blank filters collapse to None
            validated = JobAlert.model_validate(merged.model_dump())
            for name in changes:
                setattr(model, name, getattr(validated, name))
            model.updated_at = _format_datetime(utc_now())
            self.session.flush()
            return model.to_domain()
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating alert {alert_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update alert: {e}") from e

    def delete(self, alert_id: int, user_id: int) -> bool:
        """Delete an alert owned by ``user_id``; returns False if there was none."""
        try:
            result = self.session.execute(
                delete(JobAlertModel).where(
                    JobAlertModel.id == alert_id, JobAlertModel.user_id == user_id
                )
            )
            return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Error deleting alert {alert_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete alert: {e}") from e

    def list_active_with_users(self) -> List[AlertSubscription]:
        """All active alerts joined with their owners, oldest alert first."""
        try:
            stmt = (
                select(JobAlertModel, UserModel)
                .join(UserModel, UserModel.id == JobAlertModel.user_id)
                .where(JobAlertModel.is_active.is_(True))
                .order_by(JobAlertModel.id.asc())
            )
            return [
                AlertSubscription(alert=alert.to_domain(), user=user.to_domain())
                for alert, user in self.session.execute(stmt).all()
            ]
        except SQLAlchemyError as e:
            logger.error(f"Error listing active alerts: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list active alerts: {e}") from e

    def mark_notified(self, alert_id: int, at: datetime) -> bool:
        """Advance ``last_notification_sent`` to ``at``; never moves it backwards.

        Returns:
            True if the timestamp moved, False if it was already at or past ``at``
        """
        at_str = _format_datetime(at)
        try:
            result = self.session.execute(
                update(JobAlertModel)
                .where(
                    JobAlertModel.id == alert_id,
                    or_(
                        JobAlertModel.last_notification_sent.is_(None),
                        JobAlertModel.last_notification_sent < at_str,
                    ),
                )
                .values(last_notification_sent=at_str)
            )
            return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Error marking alert {alert_id} notified: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update alert notification time: {e}") from e


class NotificationLogRepository:
    """Repository for the append-only notification audit trail."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, log: NotificationLog) -> NotificationLog:
        try:
            model = NotificationLogModel.from_domain(log)
            if model.created_at is None:
                model.created_at = _format_datetime(utc_now())
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error writing notification log: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to write notification log: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error writing notification log: {e}", exc_info=True)
            raise PersistenceError(f"Failed to write notification log: {e}") from e

    def list_for_user(self, user_id: int, limit: int = 50) -> List[NotificationLog]:
        """Most recent logs for a user, newest first."""
        try:
            stmt = (
                select(NotificationLogModel)
                .where(NotificationLogModel.user_id == user_id)
                .order_by(NotificationLogModel.created_at.desc(), NotificationLogModel.id.desc())
                .limit(limit)
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing notification logs for user {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list notification logs: {e}") from e

    def list_all(self) -> List[NotificationLog]:
        try:
            stmt = select(NotificationLogModel).order_by(NotificationLogModel.id.asc())
            return [m.to_domain() for m in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing notification logs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list notification logs: {e}") from e

    def delete_older_than(self, cutoff: datetime) -> int:
        """Delete logs created before ``cutoff``; returns the number removed."""
        try:
            result = self.session.execute(
                delete(NotificationLogModel).where(
                    NotificationLogModel.created_at < _format_datetime(cutoff)
                )
            )
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error deleting old notification logs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete notification logs: {e}") from e


class SearchHistoryRepository:
    """Repository for the search-history document store."""

    def __init__(self, session: Session):
        self.session = session

    def record_search(
        self,
        query: SearchQuery,
        user_id: Optional[int] = None,
        results: Sequence[Dict[str, Any]] = (),
        results_count: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        searched_at: Optional[datetime] = None,
    ) -> SearchHistoryEntry:
        """Append a search record; ``user_id`` is None for anonymous searches."""
        try:
            model = SearchHistoryModel(
                user_id=user_id,
                query=query.model_dump(exclude_none=True),
                results_count=len(results) if results_count is None else results_count,
                results=list(results),
                search_metadata=dict(metadata or {}),
                searched_at=_format_datetime(searched_at or utc_now()),
            )
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except SQLAlchemyError as e:
            logger.error(f"Error recording search: {e}", exc_info=True)
            raise PersistenceError(f"Failed to record search: {e}") from e

    def history_for_user(self, user_id: int, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        """Paginated search history for a user, newest first.

        Returns:
            Dict with ``entries`` (List[SearchHistoryEntry]), ``page``, ``limit``,
            ``total`` and ``pages``
        """
        page = max(page, 1)
        limit = max(limit, 1)
        try:
            total = self.session.execute(
                select(func.count()).select_from(SearchHistoryModel).where(
                    SearchHistoryModel.user_id == user_id
                )
            ).scalar_one()
            stmt = (
                select(SearchHistoryModel)
                .where(SearchHistoryModel.user_id == user_id)
                .order_by(SearchHistoryModel.searched_at.desc(), SearchHistoryModel.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            entries = [m.to_domain() for m in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error reading search history for user {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read search history: {e}") from e

        return {
            "entries": entries,
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        }

    def recent_queries_by_user(self, since: datetime) -> Dict[int, List[SearchQuery]]:
        """Queries searched at or after ``since``, grouped by user.

        Anonymous searches are excluded. Users appear in ascending id order.
        """
        try:
            stmt = (
                select(SearchHistoryModel)
                .where(
                    SearchHistoryModel.searched_at >= _format_datetime(since),
                    SearchHistoryModel.user_id.is_not(None),
                )
                .order_by(SearchHistoryModel.user_id.asc(), SearchHistoryModel.searched_at.asc())
            )
            grouped: Dict[int, List[SearchQuery]] = {}
            for model in self.session.execute(stmt).scalars().all():
                grouped.setdefault(model.user_id, []).append(
                    SearchQuery.model_validate(model.query or {})
                )
            return grouped
        except SQLAlchemyError as e:
            logger.error(f"Error aggregating recent searches: {e}", exc_info=True)
            raise PersistenceError(f"Failed to aggregate recent searches: {e}") from e

    def delete_older_than(self, cutoff: datetime) -> int:
        """Delete entries searched before ``cutoff``; returns the number removed."""
        try:
            result = self.session.execute(
                delete(SearchHistoryModel).where(
                    SearchHistoryModel.searched_at < _format_datetime(cutoff)
                )
            )
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error deleting old search history: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete search history: {e}") from e


class QueueRepository:
    """Row-level operations on the job_queue table.

    Status rules live here: a claim is a compare-and-set from pending to
    processing, and finalization only applies to items in processing.
    """

    def __init__(self, session: Session):
        self.session = session

    def insert(
        self,
        queue_type: str,
        job_id: Optional[int],
        priority: int,
        payload: Dict[str, Any],
        max_attempts: int,
        created_at: datetime,
    ) -> int:
        try:
            model = QueueItemModel(
                job_id=job_id,
                queue_type=queue_type,
                status=QueueStatus.PENDING.value,
                priority=priority,
                payload=dict(payload or {}),
                attempts=0,
                max_attempts=max_attempts,
                created_at=_format_datetime(created_at),
                available_at=_format_datetime(created_at),
            )
            self.session.add(model)
            self.session.flush()
            return model.id
        except SQLAlchemyError as e:
            logger.error(f"Error enqueueing {queue_type} item: {e}", exc_info=True)
            raise PersistenceError(f"Failed to enqueue item: {e}") from e

    def get(self, item_id: int) -> Optional[QueueItem]:
        try:
            model = self.session.get(QueueItemModel, item_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving queue item {item_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve queue item: {e}") from e

    def claimable_ids(self, now: datetime, limit: int) -> List[int]:
        """Ids of claimable items in drain order: priority desc, oldest first."""
        now_str = _format_datetime(now)
        try:
            stmt = (
                select(QueueItemModel.id)
                .where(
                    QueueItemModel.status == QueueStatus.PENDING.value,
                    QueueItemModel.attempts < QueueItemModel.max_attempts,
                    or_(
                        QueueItemModel.available_at.is_(None),
                        QueueItemModel.available_at <= now_str,
                    ),
                )
                .order_by(
                    QueueItemModel.priority.desc(),
                    QueueItemModel.created_at.asc(),
                    QueueItemModel.id.asc(),
                )
                .limit(limit)
            )
            return list(self.session.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error selecting claimable queue items: {e}", exc_info=True)
            raise PersistenceError(f"Failed to select queue items: {e}") from e

    def try_claim(self, item_id: int, now: datetime) -> bool:
        """Atomically move one item from pending to processing and count the attempt.

        Returns:
            False if another worker claimed (or finalized) the item first
        """
        try:
            result = self.session.execute(
                update(QueueItemModel)
                .where(
                    QueueItemModel.id == item_id,
                    QueueItemModel.status == QueueStatus.PENDING.value,
                    QueueItemModel.attempts < QueueItemModel.max_attempts,
                )
                .values(
                    status=QueueStatus.PROCESSING.value,
                    attempts=QueueItemModel.attempts + 1,
                    claimed_at=_format_datetime(now),
                )
            )
            return result.rowcount == 1
        except SQLAlchemyError as e:
            logger.error(f"Error claiming queue item {item_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to claim queue item: {e}") from e

    def get_many(self, item_ids: Sequence[int]) -> List[QueueItem]:
        """Items by id, preserving the order of ``item_ids``."""
        if not item_ids:
            return []
        try:
            models = self.session.execute(
                select(QueueItemModel).where(QueueItemModel.id.in_(list(item_ids)))
            ).scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Error loading queue items: {e}", exc_info=True)
            raise PersistenceError(f"Failed to load queue items: {e}") from e
        by_id = {m.id: m.to_domain() for m in models}
        return [by_id[item_id] for item_id in item_ids if item_id in by_id]

    def finalize(
        self,
        item_id: int,
        status: QueueStatus,
        error_message: Optional[str],
        processed_at: Optional[datetime],
        available_at: Optional[datetime],
    ) -> None:
        """Write the outcome of a processing attempt.

        Raises:
            RecordNotFoundError: If the item doesn't exist
            QueueStateError: If the item is not currently processing
        """
        try:
            result = self.session.execute(
                update(QueueItemModel)
                .where(
                    QueueItemModel.id == item_id,
                    QueueItemModel.status == QueueStatus.PROCESSING.value,
                )
                .values(
                    status=status.value,
                    error_message=error_message,
                    processed_at=_format_datetime(processed_at),
                    available_at=_format_datetime(available_at),
                    claimed_at=None,
                )
            )
            if result.rowcount == 1:
                return

            current = self.session.get(QueueItemModel, item_id)
        except SQLAlchemyError as e:
            logger.error(f"Error finalizing queue item {item_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to finalize queue item: {e}") from e

        if current is None:
            raise RecordNotFoundError(f"Queue item {item_id} not found")
        raise QueueStateError(
            f"Queue item {item_id} is {current.status}, expected {QueueStatus.PROCESSING.value}"
        )

    def stale_processing(self, claimed_before: datetime) -> List[QueueItem]:
        """Items still processing whose claim is older than ``claimed_before``."""
        try:
            stmt = (
                select(QueueItemModel)
                .where(
                    QueueItemModel.status == QueueStatus.PROCESSING.value,
                    or_(
                        QueueItemModel.claimed_at.is_(None),
                        QueueItemModel.claimed_at < _format_datetime(claimed_before),
                    ),
                )
                .order_by(QueueItemModel.id.asc())
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error selecting stale queue items: {e}", exc_info=True)
            raise PersistenceError(f"Failed to select stale queue items: {e}") from e

    def counts(self) -> List[Dict[str, Any]]:
        """Item counts grouped by (status, queue_type)."""
        try:
            stmt = (
                select(QueueItemModel.status, QueueItemModel.queue_type, func.count())
                .group_by(QueueItemModel.status, QueueItemModel.queue_type)
                .order_by(QueueItemModel.status, QueueItemModel.queue_type)
            )
            return [
                {"status": status, "queue_type": queue_type, "count": count}
                for status, queue_type, count in self.session.execute(stmt).all()
            ]
        except SQLAlchemyError as e:
            logger.error(f"Error computing queue stats: {e}", exc_info=True)
            raise PersistenceError(f"Failed to compute queue stats: {e}") from e

    def delete_finished_before(self, cutoff: datetime) -> int:
        """Delete completed/failed items created before ``cutoff``."""
        try:
            result = self.session.execute(
                delete(QueueItemModel).where(
                    QueueItemModel.status.in_(
                        [QueueStatus.COMPLETED.value, QueueStatus.FAILED.value]
                    ),
                    QueueItemModel.created_at < _format_datetime(cutoff),
                )
            )
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error cleaning up queue: {e}", exc_info=True)
            raise PersistenceError(f"Failed to clean up queue: {e}") from e
