"""Unit tests for the queue processor and its handlers."""

import threading
import time
from unittest.mock import Mock

import pytest

from notifier.domain.models import NotificationStatus, QueueStatus, QueueType
from notifier.notifications import NotificationDispatcher
from notifier.persistence import AlertRepository, NotificationLogRepository, RecordNotFoundError, get_session
from notifier.workqueue import NewJobPostingHandler, QueueProcessor, RetryPolicy, WorkQueue
from tests.helpers import FailingSink, RecordingSink, create_alert, create_job, create_user


@pytest.fixture
def queue(db):
    return WorkQueue(max_attempts=2, retry_policy=RetryPolicy(initial_delay=0))


class TestProcessOnce:
    def test_default_handlers_complete_items(self, queue):
        application = queue.enqueue(QueueType.JOB_APPLICATION, job_id=1, payload={"user_id": 2})
        generic = queue.enqueue(QueueType.GENERIC_NOTIFICATION, payload={"kind": "digest"})

        result = QueueProcessor(queue).process_once()

        assert (result.claimed, result.completed, result.retried, result.failed) == (2, 2, 0, 0)
        assert queue.get(application).status == QueueStatus.COMPLETED
        assert queue.get(generic).status == QueueStatus.COMPLETED

    def test_unknown_type_fails_item(self, queue):
        item_id = queue.enqueue("mystery_task")
        processor = QueueProcessor(queue)

        processor.process_once()
        assert queue.get(item_id).status == QueueStatus.PENDING
        processor.process_once()

        item = queue.get(item_id)
        assert item.status == QueueStatus.FAILED
        assert item.error_message == "Unknown queue type: mystery_task"

    def test_handler_exception_is_recorded_and_isolated(self, queue):
        failing = Mock(side_effect=RuntimeError("storage hiccup"))
        bad = queue.enqueue(QueueType.NEW_JOB_POSTING, job_id=1, priority=2)
        good = queue.enqueue(QueueType.JOB_APPLICATION, job_id=1)

        result = QueueProcessor(
            queue, handlers={QueueType.NEW_JOB_POSTING: failing}
        ).process_once()

        assert result.retried == 1
        assert result.completed == 1
        assert queue.get(bad).error_message == "RuntimeError: storage hiccup"
        assert queue.get(good).status == QueueStatus.COMPLETED
        failing.assert_called_once()
        assert failing.call_args.args[0].id == bad

    def test_register_handler_replaces_default(self, queue):
        handler = Mock()
        processor = QueueProcessor(queue)
        processor.register_handler("job_application", handler)
        queue.enqueue(QueueType.JOB_APPLICATION)

        processor.process_once()

        handler.assert_called_once()
        assert "job_application" in processor.handled_types

    def test_batch_size_limits_claims(self, queue):
        for _ in range(5):
            queue.enqueue(QueueType.GENERIC_NOTIFICATION)

        processor = QueueProcessor(queue, batch_size=2)

        assert processor.process_once().claimed == 2
        assert processor.last_result.completed == 2

    def test_concurrent_tick_is_skipped(self, queue):
        started = threading.Event()
        release = threading.Event()

        def slow_handler(item):
            started.set()
            release.wait(timeout=5)

        queue.enqueue(QueueType.GENERIC_NOTIFICATION)
        processor = QueueProcessor(queue, handlers={"generic_notification": slow_handler})

        worker = threading.Thread(target=processor.process_once)
        worker.start()
        assert started.wait(timeout=5)

        skipped = processor.process_once()
        assert skipped.skipped is True
        assert skipped.claimed == 0
        assert processor.wait_idle(timeout=0.05) is False

        release.set()
        worker.join(timeout=5)
        assert processor.wait_idle(timeout=1) is True


class TestProcessorLifecycle:
    def test_start_and_stop(self, queue):
        queue.enqueue(QueueType.GENERIC_NOTIFICATION)
        processor = QueueProcessor(queue, poll_interval_seconds=300)

        processor.start()
        try:
            assert processor.is_running()
            processor.start()  # idempotent
            deadline = time.time() + 5
            while processor.last_result is None and time.time() < deadline:
                time.sleep(0.05)
        finally:
            processor.stop(wait=True)

        assert not processor.is_running()
        assert processor.get_next_run_time() is None
        assert processor.last_result is not None
        assert processor.last_result.completed == 1

    def test_start_recovers_stale_claims(self, queue):
        queue.recover_stale = Mock(return_value=0)
        processor = QueueProcessor(queue, poll_interval_seconds=300, stale_timeout_seconds=900)

        processor.start()
        processor.stop(wait=True)

        queue.recover_stale.assert_called_once_with(900)


class TestNewJobPostingHandler:
    def test_fans_out_to_matching_alerts_only(self, queue):
        ayse = create_user(name="Ayşe", email="ayse@example.com")
        can = create_user(name="Can", email="can@example.com")
        create_alert(ayse.id, "Istanbul remote", city="Istanbul", preference="Uzaktan")
        create_alert(can.id, "Ankara", city="Ankara")
        job = create_job(city="Istanbul", preference="Uzaktan")
        sink = RecordingSink()

        NewJobPostingHandler(NotificationDispatcher(sink=sink))(
            queue.get(queue.enqueue(QueueType.NEW_JOB_POSTING, job_id=job.id))
        )

        assert sink.recipients == ["ayse@example.com"]

    def test_job_id_from_payload(self, queue):
        user = create_user()
        create_alert(user.id, "All jobs")
        job = create_job()
        sink = RecordingSink()

        item = queue.get(queue.enqueue(QueueType.NEW_JOB_POSTING, payload={"job_id": job.id}))
        NewJobPostingHandler(NotificationDispatcher(sink=sink))(item)

        assert len(sink.deliveries) == 1

    def test_missing_job_raises(self, queue):
        item = queue.get(queue.enqueue(QueueType.NEW_JOB_POSTING, job_id=404))
        with pytest.raises(RecordNotFoundError):
            NewJobPostingHandler(NotificationDispatcher(sink=RecordingSink()))(item)

    def test_missing_job_id_raises(self, queue):
        item = queue.get(queue.enqueue(QueueType.NEW_JOB_POSTING))
        with pytest.raises(ValueError):
            NewJobPostingHandler(NotificationDispatcher(sink=RecordingSink()))(item)

    def test_sink_failure_for_one_alert_does_not_block_others(self, queue):
        bad = create_user(email="bad@example.com")
        good = create_user(email="good@example.com")
        create_alert(bad.id, "Bad")
        create_alert(good.id, "Good")
        job = create_job()
        sink = FailingSink(only_for={"bad@example.com"})

        item = queue.get(queue.enqueue(QueueType.NEW_JOB_POSTING, job_id=job.id))
        NewJobPostingHandler(NotificationDispatcher(sink=sink))(item)

        assert sink.delivered == ["good@example.com"]
        with get_session() as session:
            statuses = {
                log.user_id: log.status for log in NotificationLogRepository(session).list_all()
            }
        assert statuses == {bad.id: NotificationStatus.FAILED, good.id: NotificationStatus.SENT}

    def test_does_not_touch_last_notification_sent(self, queue):
        user = create_user()
        alert = create_alert(user.id, "Anything")
        job = create_job()

        item = queue.get(queue.enqueue(QueueType.NEW_JOB_POSTING, job_id=job.id))
        NewJobPostingHandler(NotificationDispatcher(sink=RecordingSink()))(item)

        with get_session() as session:
            assert AlertRepository(session).get_by_id(alert.id).last_notification_sent is None
