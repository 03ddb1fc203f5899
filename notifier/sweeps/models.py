"""Result types for the periodic sweeps."""

from dataclasses import asdict, dataclass


@dataclass
class AlertSweepResult:
    """
    Counts from one alert sweep.

    Attributes:
        alerts_checked: Active alerts examined
        alerts_matched: Alerts with at least one new matching job
        notifications_sent: Successful dispatches (one per matched alert)
        notifications_failed: Dispatches that produced failed logs
        alerts_failed: Alerts whose processing raised (storage errors etc.)
        unfiltered_alerts: Alerts with no filters, which match every job
    """

    alerts_checked: int = 0
    alerts_matched: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    alerts_failed: int = 0
    unfiltered_alerts: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RelatedJobsSweepResult:
    """
    Counts from one related-jobs sweep.

    Attributes:
        users_considered: Users with recent searches
        users_notified: Users who received a successful dispatch
        users_skipped: Users that no longer exist
        notifications_failed: Dispatches that produced failed logs
        users_failed: Users whose processing raised
    """

    users_considered: int = 0
    users_notified: int = 0
    users_skipped: int = 0
    notifications_failed: int = 0
    users_failed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CleanupResult:
    notifications_deleted: int = 0
    searches_deleted: int = 0
    queue_items_deleted: int = 0

    def to_dict(self) -> dict:
        return asdict(self)
