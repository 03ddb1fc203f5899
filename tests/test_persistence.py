"""Unit tests for persistence layer."""

from datetime import timedelta

import pytest
from sqlalchemy import inspect, text

from notifier.domain.models import NotificationLog, NotificationStatus, NotificationType, SearchQuery
from notifier.matching import AlertCriteria, matches
from notifier.persistence import (
    AlertRepository,
    DatabaseConnectionError,
    DataIntegrityError,
    JobRepository,
    NotificationLogRepository,
    RecordNotFoundError,
    SearchHistoryRepository,
    UserRepository,
    close_database,
    get_engine,
    get_session,
    init_database,
)
from notifier.utils.timestamps import EPOCH, utc_now
from tests.helpers import create_alert, create_job, create_user, make_alert, record_search


class TestDatabaseInitialization:
    """Tests for database initialization."""

    def test_init_database_creates_file_and_parents(self, tmp_path):
        db_file = tmp_path / "nested" / "dir" / "test.db"

        init_database(f"sqlite:///{db_file}")
        try:
            assert db_file.exists()
            with get_session() as session:
                assert session.execute(text("SELECT 1")).scalar() == 1
        finally:
            close_database()

    def test_schema_tables_created(self, db):
        tables = set(inspect(get_engine()).get_table_names())
        assert {
            "users",
            "jobs",
            "job_alerts",
            "notification_logs",
            "job_queue",
            "job_searches",
        } <= tables

    def test_foreign_keys_enforced(self, db):
        with pytest.raises(DataIntegrityError):
            create_alert(user_id=999, alert_name="Orphan")

    def test_invalid_url_raises(self):
        with pytest.raises(DatabaseConnectionError):
            init_database("")
        with pytest.raises(DatabaseConnectionError):
            init_database(None)

    def test_get_session_requires_init(self):
        close_database()
        with pytest.raises(DatabaseConnectionError):
            with get_session():
                pass

    def test_close_database_is_idempotent(self, db):
        close_database()
        close_database()

    def test_session_rolls_back_on_error(self, db):
        with pytest.raises(RuntimeError):
            with get_session() as session:
                UserRepository(session).create("Mehmet", "mehmet@example.com")
                raise RuntimeError("boom")

        with get_session() as session:
            assert session.execute(text("SELECT COUNT(*) FROM users")).scalar() == 0


class TestUserAndJobRepository:
    def test_duplicate_email_rejected(self, db):
        create_user(email="dup@example.com")
        with pytest.raises(DataIntegrityError):
            create_user(email="dup@example.com")

    def test_create_and_get_job(self, db):
        job = create_job(title="Backend Engineer", description="")

        with get_session() as session:
            loaded = JobRepository(session).get_by_id(job.id)

        assert loaded.title == "Backend Engineer"
        assert loaded.applications == 0
        assert loaded.created_at.tzinfo is not None

    def test_increment_applications(self, db):
        job = create_job()

        with get_session() as session:
            repo = JobRepository(session)
            assert repo.increment_applications(job.id) == 1
            assert repo.increment_applications(job.id) == 2

    def test_increment_applications_missing_job(self, db):
        with pytest.raises(RecordNotFoundError):
            with get_session() as session:
                JobRepository(session).increment_applications(12345)


class TestFindForAlert:
    def _find(self, since=EPOCH, limit=10, **filters):
        criteria = AlertCriteria.from_alert(make_alert(**filters))
        with get_session() as session:
            return JobRepository(session).find_for_alert(criteria, since, limit)

    def test_keywords_any_term_case_insensitive(self, db):
        react = create_job(title="React Developer", description="")
        node = create_job(title="Backend", description="Node.js services")
        create_job(title="Designer", description="Figma")

        found = self._find(keywords="REACT, node")

        assert {job.id for job in found} == {react.id, node.id}

    def test_city_case_insensitive_and_preference_exact(self, db):
        match = create_job(city="Istanbul", preference="Uzaktan")
        create_job(city="Ankara", preference="Uzaktan")
        create_job(city="Istanbul", preference="Ofis")

        found = self._find(city="istanbul", preference="Uzaktan")

        assert [job.id for job in found] == [match.id]

    def test_company_substring(self, db):
        match = create_job(company="Acme Yazılım A.Ş.")
        create_job(company="Other Co")

        assert [job.id for job in self._find(company="acme")] == [match.id]

    def test_only_jobs_after_since(self, db):
        now = utc_now()
        create_job(created_at=now - timedelta(hours=2))
        recent = create_job(created_at=now)

        found = self._find(since=now - timedelta(hours=1))

        assert [job.id for job in found] == [recent.id]

    def test_newest_first_and_capped(self, db):
        now = utc_now()
        jobs = [create_job(created_at=now - timedelta(minutes=i)) for i in range(5)]

        found = self._find(limit=3)

        assert [job.id for job in found] == [jobs[0].id, jobs[1].id, jobs[2].id]

    def test_like_wildcards_are_literal(self, db):
        create_job(title="Developer", description="")
        match = create_job(title="100% remote developer", description="")

        assert [job.id for job in self._find(keywords="100%")] == [match.id]

    @pytest.mark.parametrize(
        "filters,job_fields",
        [
            ({"city": "İzmir"}, {"city": "İzmir"}),
            ({"city": "çanakkale"}, {"city": "Çanakkale"}),
            ({"company": "şirket"}, {"company": "Örnek Şirket"}),
            ({"keywords": "Güvenlik"}, {"title": "GÜVENLIK UZMANI", "description": ""}),
        ],
    )
    def test_non_ascii_case_folding_agrees_with_matcher(self, db, filters, job_fields):
        job = create_job(**job_fields)

        found = self._find(**filters)

        assert matches(job, make_alert(**filters)) is True
        assert [j.id for j in found] == [job.id]

    def test_non_ascii_mismatch_still_rejected(self, db):
        create_job(city="Çorum")

        assert self._find(city="İzmir") == []


class TestFindRelated:
    def test_union_of_conditions(self, db):
        by_city = create_job(city="Izmir", country="Türkiye", preference="Ofis", title="Accountant", description="")
        by_term = create_job(city="Berlin", country="Germany", preference="Ofis", title="Python Engineer", description="")
        create_job(city="Berlin", country="Germany", preference="Ofis", title="Designer", description="")

        with get_session() as session:
            found = JobRepository(session).find_related(
                cities={"Izmir"}, countries=set(), preferences=set(), terms={"python"},
                since=EPOCH, limit=5,
            )

        assert {job.id for job in found} == {by_city.id, by_term.id}

    def test_empty_profile_returns_nothing(self, db):
        create_job()

        with get_session() as session:
            found = JobRepository(session).find_related((), (), (), (), since=EPOCH, limit=5)

        assert found == []


class TestAlertRepository:
    def test_create_normalizes_blank_filters(self, db):
        user = create_user()
        alert = create_alert(user.id, "Remote", city="  ", keywords="react")

        assert alert.city is None
        assert alert.keywords == "react"
        assert alert.is_active is True
        assert alert.last_notification_sent is None

    def test_unknown_field_rejected(self, db):
        user = create_user()
        with pytest.raises(ValueError):
            create_alert(user.id, "Bad", salary_band="high")

    def test_list_for_user_newest_first(self, db):
        user = create_user()
        first = create_alert(user.id, "First")
        second = create_alert(user.id, "Second")

        with get_session() as session:
            alerts = AlertRepository(session).list_for_user(user.id)

        assert [a.id for a in alerts] == [second.id, first.id]

    def test_update_and_delete_scoped_to_owner(self, db):
        owner = create_user()
        other = create_user()
        alert = create_alert(owner.id, "Mine", city="Istanbul")

        with pytest.raises(RecordNotFoundError):
            with get_session() as session:
                AlertRepository(session).update(alert.id, other.id, city="Ankara")

        with get_session() as session:
            repo = AlertRepository(session)
            updated = repo.update(alert.id, owner.id, city="Ankara", keywords="")
            assert updated.city == "Ankara"
            assert updated.keywords is None
            assert repo.delete(alert.id, other.id) is False
            assert repo.delete(alert.id, owner.id) is True
            assert repo.get_by_id(alert.id) is None

    def test_list_active_with_users(self, db):
        user = create_user(name="Zeynep")
        active = create_alert(user.id, "Active")
        create_alert(user.id, "Paused", is_active=False)

        with get_session() as session:
            subscriptions = AlertRepository(session).list_active_with_users()

        assert [s.alert.id for s in subscriptions] == [active.id]
        assert subscriptions[0].user.name == "Zeynep"

    def test_mark_notified_only_moves_forward(self, db):
        user = create_user()
        alert = create_alert(user.id, "Alert")
        now = utc_now()

        with get_session() as session:
            repo = AlertRepository(session)
            assert repo.mark_notified(alert.id, now) is True
            assert repo.mark_notified(alert.id, now - timedelta(hours=1)) is False
            assert repo.get_by_id(alert.id).last_notification_sent == now

    def test_deleting_user_cascades_to_alerts(self, db):
        user = create_user()
        alert = create_alert(user.id, "Alert")

        with get_session() as session:
            session.execute(text("DELETE FROM users WHERE id = :id"), {"id": user.id})

        with get_session() as session:
            assert AlertRepository(session).get_by_id(alert.id) is None


class TestNotificationLogRepository:
    def _log(self, user_id, job_id=None, created_at=None):
        return NotificationLog(
            user_id=user_id,
            job_id=job_id,
            type=NotificationType.JOB_ALERT,
            title="1 new job",
            message="Job alert notification for React Developer",
            status=NotificationStatus.SENT,
            created_at=created_at,
        )

    def test_add_and_list(self, db):
        user = create_user()
        job = create_job()

        with get_session() as session:
            repo = NotificationLogRepository(session)
            saved = repo.add(self._log(user.id, job.id))
            logs = repo.list_for_user(user.id)

        assert saved.id is not None
        assert [log.id for log in logs] == [saved.id]
        assert logs[0].status == NotificationStatus.SENT

    def test_delete_older_than(self, db):
        user = create_user()
        now = utc_now()

        with get_session() as session:
            repo = NotificationLogRepository(session)
            repo.add(self._log(user.id, created_at=now - timedelta(days=100)))
            repo.add(self._log(user.id, created_at=now))
            assert repo.delete_older_than(now - timedelta(days=90)) == 1
            assert len(repo.list_all()) == 1


class TestSearchHistoryRepository:
    def test_history_for_user_paginates(self, db):
        user = create_user()
        now = utc_now()
        for i in range(5):
            record_search(user.id, searched_at=now - timedelta(minutes=i), term=f"term{i}")

        with get_session() as session:
            page = SearchHistoryRepository(session).history_for_user(user.id, page=2, limit=2)

        assert page["total"] == 5
        assert page["pages"] == 3
        assert [e.query.term for e in page["entries"]] == ["term2", "term3"]

    def test_recent_queries_exclude_anonymous_and_old(self, db):
        user = create_user()
        now = utc_now()
        record_search(user.id, term="react", city="Istanbul")
        record_search(user.id, searched_at=now - timedelta(days=10), term="old")
        record_search(None, term="anonymous")

        with get_session() as session:
            grouped = SearchHistoryRepository(session).recent_queries_by_user(now - timedelta(days=7))

        assert list(grouped) == [user.id]
        assert grouped[user.id] == [SearchQuery(term="react", city="Istanbul")]

    def test_metadata_round_trip(self, db):
        with get_session() as session:
            entry = SearchHistoryRepository(session).record_search(
                SearchQuery(term="go"), metadata={"source": "web"}, results=[{"id": 1}]
            )

        assert entry.metadata == {"source": "web"}
        assert entry.results_count == 1
