"""Shared pytest fixtures."""

import pytest

from notifier.logging.context import clear_log_context
from notifier.persistence import close_database, init_database


@pytest.fixture
def db():
    """Fresh in-memory database for one test."""
    init_database("sqlite:///:memory:")
    yield
    close_database()


@pytest.fixture(autouse=True)
def clean_log_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Environment with SMTP configured and no stray overrides."""
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_PORT", "587")
    monkeypatch.setenv("SMTP_USER", "notifier@example.com")
    monkeypatch.setenv("SMTP_PASS", "secret")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("FRONTEND_URL", raising=False)
    monkeypatch.delenv("SMTP_SENDER_NAME", raising=False)


@pytest.fixture
def bare_env(monkeypatch):
    """Environment with nothing notifier-related set."""
    for name in (
        "DATABASE_URL",
        "SMTP_HOST",
        "SMTP_PORT",
        "SMTP_USER",
        "SMTP_PASS",
        "SMTP_SENDER_NAME",
        "LOG_LEVEL",
        "FRONTEND_URL",
    ):
        monkeypatch.delenv(name, raising=False)
