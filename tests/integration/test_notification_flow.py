"""Integration tests for the notification pipeline.

Tests end-to-end flow:
- Job posting -> queue -> alert fan-out -> email
- Alert sweep watermarking across multiple runs
- Related-jobs recommendations from search history
- Real SQLite database (file-backed, so sessions don't share state)
- SMTP mocked at the smtplib factory
"""

import smtplib
from email.message import EmailMessage
from unittest.mock import MagicMock, Mock

import pytest

from notifier.config.environment import EnvironmentConfig
from notifier.config.loader import parse_app_config
from notifier.domain.models import NotificationStatus, NotificationType, QueueStatus
from notifier.notifications import SMTPClient, SMTPSink
from notifier.persistence import NotificationLogRepository, close_database, get_session, init_database
from notifier.pipeline import NotificationPipeline
from tests.helpers import create_alert, create_user, record_search


@pytest.fixture
def integration_database(tmp_path):
    init_database(f"sqlite:///{tmp_path / 'integration.db'}")
    yield
    close_database()


@pytest.fixture
def smtp():
    """A fake SMTP connection; every sent EmailMessage lands in ``smtp.sent``."""
    connection = MagicMock()
    connection.sent = []
    connection.send_message.side_effect = connection.sent.append
    return connection


@pytest.fixture
def pipeline(integration_database, smtp):
    env_config = EnvironmentConfig(
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="notifier@example.com",
        smtp_pass="secret",
    )
    app_config = parse_app_config(
        {
            "queue": {"retry_initial_delay": 0},
            "delivery": {"method": "smtp", "frontend_url": "https://jobs.example.com"},
        }
    )
    sink = SMTPSink(env_config, smtp_client=SMTPClient(smtp_factory=Mock(return_value=smtp)))
    return NotificationPipeline(app_config, env_config, sink=sink)


def post(pipeline, **overrides):
    fields = {
        "title": "React Developer",
        "company": "Example Teknoloji",
        "city": "Istanbul",
        "country": "Türkiye",
        "preference": "Uzaktan",
        "description": "Frontend work with React and TypeScript",
    }
    fields.update(overrides)
    return pipeline.postings.create_job(**fields)


def logs():
    with get_session() as session:
        return NotificationLogRepository(session).list_all()


def test_posting_reaches_matching_subscribers_by_email(pipeline, smtp):
    ayse = create_user(name="Ayşe", email="ayse@example.com")
    can = create_user(name="Can", email="can@example.com")
    create_alert(ayse.id, "Istanbul remote", city="Istanbul", preference="Uzaktan")
    create_alert(can.id, "Go backend", keywords="golang")

    job = post(pipeline)
    result = pipeline.process_queue_now()

    assert result.completed == 1
    [message] = smtp.sent
    assert isinstance(message, EmailMessage)
    assert message["To"] == "ayse@example.com"
    assert message["Subject"] == '1 new job matching "Istanbul remote"'
    assert message["From"] == "Job Board <notifier@example.com>"
    html = message.get_body(preferencelist=("html",)).get_content()
    assert f"https://jobs.example.com/jobs/{job.id}" in html
    smtp.starttls.assert_called()
    smtp.login.assert_called_with("notifier@example.com", "secret")

    [log] = logs()
    assert (log.user_id, log.status, log.delivery_method) == (ayse.id, NotificationStatus.SENT, "email")
    assert pipeline.work_queue.stats() == [
        {"status": "completed", "queue_type": "new_job_posting", "count": 1}
    ]


def test_alert_sweep_sends_each_job_once(pipeline, smtp):
    user = create_user(email="zeynep@example.com")
    create_alert(user.id, "Remote", preference="Uzaktan")
    post(pipeline, title="React Developer")
    post(pipeline, title="Node Developer")
    post(pipeline, title="Office Manager", preference="Ofis")

    first = pipeline.trigger_job_alerts()
    second = pipeline.trigger_job_alerts()

    assert first.notifications_sent == 1
    assert second.alerts_matched == 0
    assert len(smtp.sent) == 1
    assert smtp.sent[0]["Subject"] == '2 new jobs matching "Remote"'

    post(pipeline, title="Vue Developer")
    third = pipeline.trigger_job_alerts()

    assert third.notifications_sent == 1
    assert smtp.sent[-1]["Subject"] == '1 new job matching "Remote"'


def test_smtp_outage_is_retried_by_next_sweep(pipeline, smtp):
    user = create_user(email="deniz@example.com")
    create_alert(user.id, "Istanbul", city="Istanbul")
    post(pipeline)

    smtp.send_message.side_effect = smtplib.SMTPServerDisconnected("Connection unexpectedly closed")
    failed = pipeline.trigger_job_alerts()

    assert failed.notifications_failed == 1
    assert [log.status for log in logs()] == [NotificationStatus.FAILED]

    smtp.send_message.side_effect = smtp.sent.append
    recovered = pipeline.trigger_job_alerts()

    assert recovered.notifications_sent == 1
    assert len(smtp.sent) == 1


def test_related_jobs_from_search_history(pipeline, smtp):
    user = create_user(email="ece@example.com")
    record_search(user.id, term="typescript", city="Ankara")
    post(pipeline, title="Frontend Engineer", city="Izmir", preference="Ofis")
    post(pipeline, title="Accountant", city="Bursa", preference="Ofis", description="Ledgers")

    result = pipeline.trigger_related_jobs()

    assert result.users_notified == 1
    [message] = smtp.sent
    assert message["Subject"] == "Jobs you might be interested in"
    [log] = logs()
    assert log.type == NotificationType.RELATED_JOB


def test_application_is_counted_and_processed(pipeline):
    user = create_user()
    job = post(pipeline)
    pipeline.process_queue_now()

    assert pipeline.postings.apply_to_job(job.id, user.id) == 1
    result = pipeline.process_queue_now()

    assert result.completed == 1
    stats = {(row["status"], row["queue_type"]): row["count"] for row in pipeline.get_queue_stats()}
    assert stats[("completed", "job_application")] == 1
    assert all(row["status"] == QueueStatus.COMPLETED.value for row in pipeline.get_queue_stats())
