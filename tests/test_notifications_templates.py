"""Tests for notification templates and their context builders."""

import pytest

from notifier.notifications.models import NotificationTemplateError
from notifier.notifications.payloads import (
    build_job_alert_context,
    build_job_context,
    build_related_jobs_context,
)
from notifier.notifications.templates import JOB_ALERT, RELATED_JOBS, TemplateRenderer
from tests.helpers import make_alert, make_job, make_user

FRONTEND = "https://jobs.example.com"


class TestPayloads:
    def test_job_context(self):
        job = make_job(id=42, city="Istanbul", country="Türkiye", description="x" * 500)

        context = build_job_context(job, FRONTEND)

        assert context["url"] == "https://jobs.example.com/jobs/42"
        assert context["location"] == "Istanbul, Türkiye"
        assert len(context["description_preview"]) <= 200
        assert context["description_preview"].endswith("...")

    def test_short_description_kept(self):
        context = build_job_context(make_job(description="  Short.  "), FRONTEND)
        assert context["description_preview"] == "Short."

    def test_job_alert_context(self):
        alert = make_alert(alert_name="Remote React")
        context = build_job_alert_context(alert, make_user(name="Ayşe"), [make_job(), make_job()], FRONTEND)

        assert context["job_count"] == 2
        assert context["alert_name"] == "Remote React"
        assert context["user_name"] == "Ayşe"
        assert context["manage_alerts_url"] == "https://jobs.example.com/profile/alerts"

    def test_related_context_has_no_alert(self):
        context = build_related_jobs_context(make_user(), [make_job()], FRONTEND)
        assert "alert_name" not in context
        assert context["job_count"] == 1


class TestTemplateRenderer:
    def test_job_alert_single_job_subject(self):
        context = build_job_alert_context(
            make_alert(alert_name="Istanbul remote"), make_user(), [make_job()], FRONTEND
        )

        rendered = TemplateRenderer().render(JOB_ALERT, context)

        assert rendered["subject"] == '1 new job matching "Istanbul remote"'
        assert "\n" not in rendered["subject"]

    def test_job_alert_plural_and_bodies(self):
        jobs = [make_job(id=1, title="React Developer"), make_job(id=2, title="Node Developer")]
        context = build_job_alert_context(make_alert(alert_name="JS"), make_user(name="Can"), jobs, FRONTEND)

        rendered = TemplateRenderer().render(JOB_ALERT, context)

        assert rendered["subject"].startswith("2 new jobs")
        for body in (rendered["html_body"], rendered["text_body"]):
            assert "Can" in body
            assert "React Developer" in body
            assert "Node Developer" in body
            assert "https://jobs.example.com/jobs/2" in body
            assert "https://jobs.example.com/profile/alerts" in body

    def test_html_is_escaped_text_is_not(self):
        job = make_job(title="C++ & <Rust> Engineer")
        context = build_job_alert_context(make_alert(), make_user(), [job], FRONTEND)

        rendered = TemplateRenderer().render(JOB_ALERT, context)

        assert "&lt;Rust&gt;" in rendered["html_body"]
        assert "C++ & <Rust> Engineer" in rendered["text_body"]

    def test_related_jobs_render(self):
        context = build_related_jobs_context(make_user(), [make_job(title="Data Analyst")], FRONTEND)

        rendered = TemplateRenderer().render(RELATED_JOBS, context)

        assert rendered["subject"] == "Jobs you might be interested in"
        assert "Data Analyst" in rendered["text_body"]

    def test_missing_variable_raises(self):
        with pytest.raises(NotificationTemplateError):
            TemplateRenderer().render(JOB_ALERT, {"jobs": []})

    def test_unknown_kind_raises(self):
        with pytest.raises(NotificationTemplateError):
            TemplateRenderer().render("weekly_digest", {})
