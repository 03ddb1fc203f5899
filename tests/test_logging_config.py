"""Tests for logging configuration and formatters."""

import io
import json
import logging
import sys

import pytest

from notifier.domain.models import QueueStatus
from notifier.logging import ComponentLoggerAdapter, get_logger
from notifier.logging.config import (
    ContextualFilter,
    JSONFormatter,
    KeyValueFormatter,
    configure_logging,
)
from notifier.logging.context import log_context


@pytest.fixture
def logger():
    """Create a test logger with handler for capturing output."""
    test_logger = logging.getLogger("test_logger")
    test_logger.setLevel(logging.DEBUG)
    test_logger.handlers.clear()

    yield test_logger

    test_logger.handlers.clear()


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way pytest configured it."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(logger, message="Test message", extra=None):
    return logger.makeRecord("test", logging.INFO, "test.py", 1, message, (), None, extra=extra)


def test_json_formatter_basic(logger):
    """Test JSONFormatter produces valid JSON with mandatory fields."""
    log_obj = json.loads(JSONFormatter().format(make_record(logger)))

    assert log_obj["level"] == "INFO"
    assert log_obj["message"] == "Test message"
    assert log_obj["logger"] == "test"
    assert "timestamp" in log_obj


def test_json_formatter_with_extra_fields(logger):
    record = make_record(
        logger, extra={"event": "queue.item.completed", "queue_item_id": 42, "skipped": False}
    )

    log_obj = json.loads(JSONFormatter().format(record))

    assert log_obj["event"] == "queue.item.completed"
    assert log_obj["queue_item_id"] == 42
    assert log_obj["skipped"] is False


def test_json_formatter_plain_values(logger):
    """Enums are emitted by value, unknown objects as strings."""
    record = make_record(logger, extra={"status": QueueStatus.FAILED, "obj": object()})

    log_obj = json.loads(JSONFormatter().format(record))

    assert log_obj["status"] == "failed"
    assert log_obj["obj"].startswith("<object object")


def test_json_formatter_keeps_non_ascii(logger):
    output = JSONFormatter().format(make_record(logger, message="Bildirim gönderildi: Ayşe"))
    assert "Ayşe" in output


def test_timestamp_format_in_json(logger):
    timestamp = json.loads(JSONFormatter().format(make_record(logger)))["timestamp"]

    assert timestamp.endswith("Z")
    assert "T" in timestamp
    assert len(timestamp) == 24  # 2025-11-04T10:30:00.123Z


def test_json_formatter_no_duplicate_fields(logger):
    log_obj = json.loads(JSONFormatter().format(make_record(logger, extra={"event": "x"})))

    assert "name" not in log_obj
    assert "msg" not in log_obj
    assert "event" in log_obj


def test_json_formatter_includes_exception(logger):
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logger.makeRecord(
            "test", logging.ERROR, "test.py", 1, "Failed", (), sys.exc_info()
        )

    log_obj = json.loads(JSONFormatter().format(record))

    assert "RuntimeError: boom" in log_obj["exc_info"]


def test_contextual_filter_adds_static_fields(logger):
    record = make_record(logger)

    ContextualFilter(service="test-service", environment="test").filter(record)

    assert record.service == "test-service"
    assert record.environment == "test"


def test_contextual_filter_adds_context_fields(logger):
    with log_context(run_id="abc123", alert_id=7):
        record = make_record(logger)
        ContextualFilter().filter(record)

    assert record.run_id == "abc123"
    assert record.alert_id == 7


def test_explicit_extra_wins_over_context(logger):
    with log_context(user_id=1):
        record = make_record(logger, extra={"user_id": 2})
        ContextualFilter().filter(record)

    assert record.user_id == 2


def test_key_value_formatter_with_extras(logger):
    formatter = KeyValueFormatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    record = make_record(
        logger, extra={"event": "sweep.alerts.completed", "count": 42, "ok": True, "note": "a b", "none": None}
    )

    output = formatter.format(record)

    assert "[INFO]" in output
    assert "Test message" in output
    assert "event=sweep.alerts.completed" in output
    assert "count=42" in output
    assert "ok=true" in output
    assert 'note="a b"' in output
    assert "none=null" in output


def test_key_value_formatter_skips_service_fields(logger):
    record = make_record(logger)
    ContextualFilter(service="svc", environment="env").filter(record)

    output = KeyValueFormatter("%(message)s").format(record)

    assert output == "Test message"


def test_component_adapter_merges_extra(caplog):
    caplog.set_level(logging.INFO, logger="notifier.tests")
    adapter = get_logger("notifier.tests", component="queue")

    adapter.info("hello", extra={"event": "x.y"})
    get_logger("notifier.tests", component="queue").info("override", extra={"component": "other"})

    assert isinstance(adapter, ComponentLoggerAdapter)
    assert caplog.records[0].component == "queue"
    assert caplog.records[0].event == "x.y"
    assert caplog.records[1].component == "other"


def test_get_logger_without_component_is_plain_logger():
    assert isinstance(get_logger("notifier.tests"), logging.Logger)


def test_configure_logging_invalid_level():
    with pytest.raises(ValueError, match="Invalid log level"):
        configure_logging(level="INVALID")


def test_configure_logging_invalid_format():
    with pytest.raises(ValueError, match="Invalid log format"):
        configure_logging(format_type="invalid")


def test_configure_logging_json_end_to_end(restore_root_logger):
    stream = io.StringIO()
    configure_logging(level="DEBUG", format_type="json", environment="test", stream=stream)

    with log_context(task="job-alerts"):
        logging.getLogger("notifier.tests").info("Ran", extra={"event": "scheduler.task.completed"})

    lines = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert lines[0]["event"] == "logging.configured"
    assert lines[-1]["event"] == "scheduler.task.completed"
    assert lines[-1]["task"] == "job-alerts"
    assert lines[-1]["service"] == "job-board-notifier"
    assert lines[-1]["environment"] == "test"


def test_configure_logging_key_value_format(restore_root_logger):
    configure_logging(level="INFO", format_type="key-value", stream=io.StringIO())

    root_logger = logging.getLogger()
    assert len(root_logger.handlers) == 1
    assert isinstance(root_logger.handlers[0].formatter, KeyValueFormatter)
    assert root_logger.level == logging.INFO


def test_configure_logging_quiets_apscheduler(restore_root_logger):
    configure_logging(level="DEBUG", stream=io.StringIO())
    assert logging.getLogger("apscheduler").level == logging.WARNING
