"""Data models for the work queue and queue processor."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..domain.models import QueueItem

#: A queue handler returns normally on success and raises on failure.
QueueHandler = Callable[[QueueItem], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff for failed, non-terminal queue items.

    Attributes:
        initial_delay: Delay before the first retry, in seconds (0 = retry on next tick)
        multiplier: Growth factor between consecutive retries
        max_delay: Upper bound for any single delay, in seconds
    """

    initial_delay: float = 30.0
    multiplier: float = 2.0
    max_delay: float = 3600.0

    def delay_for(self, attempts: int) -> timedelta:
        """Backoff after the ``attempts``-th failed attempt.

        Example:
            >>> RetryPolicy(30, 2.0, 3600).delay_for(3)
            datetime.timedelta(seconds=120)
        """
        if self.initial_delay <= 0:
            return timedelta(0)
        seconds = self.initial_delay * (self.multiplier ** max(attempts - 1, 0))
        return timedelta(seconds=min(seconds, self.max_delay))

    def next_available_at(self, attempts: int, now: datetime) -> datetime:
        return now + self.delay_for(attempts)


@dataclass
class ProcessorRunResult:
    """
    Counts from one queue processor tick.

    Attributes:
        run_started_at: UTC timestamp when the tick began
        run_finished_at: UTC timestamp when the tick completed
        claimed: Items claimed from the queue
        completed: Items finalized as completed
        retried: Items returned to pending for another attempt
        failed: Items that failed terminally
        skipped: Whether the tick was dropped because another was in flight
    """

    run_started_at: datetime
    run_finished_at: Optional[datetime] = None
    claimed: int = 0
    completed: int = 0
    retried: int = 0
    failed: int = 0
    skipped: bool = False

    @property
    def duration_seconds(self) -> float:
        if self.run_finished_at is None:
            return 0.0
        return (self.run_finished_at - self.run_started_at).total_seconds()

    def to_dict(self) -> dict:
        return {
            "claimed": self.claimed,
            "completed": self.completed,
            "retried": self.retried,
            "failed": self.failed,
            "skipped": self.skipped,
            "duration_seconds": round(self.duration_seconds, 3),
        }
