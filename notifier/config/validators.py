"""Additional validation utilities for configuration."""

import warnings
from typing import Any, Dict, List

from .duration import DurationParseError, parse_duration


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for potential issues and return warnings.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    queue = config_dict.get("queue") or {}
    if isinstance(queue, dict):
        poll_interval = queue.get("poll_interval")
        if isinstance(poll_interval, str):
            try:
                if parse_duration(poll_interval) < 5:
                    warning_messages.append(
                        f"Short queue.poll_interval ({poll_interval}) will poll the database constantly"
                    )
            except DurationParseError:
                pass  # reported by model validation

        if queue.get("retry_initial_delay") == 0:
            warning_messages.append(
                "queue.retry_initial_delay is 0: failed items are retried on the very next tick"
            )

        batch_size = queue.get("batch_size")
        if isinstance(batch_size, int) and batch_size > 100:
            warning_messages.append(
                f"Large queue.batch_size ({batch_size}) may make a single tick run for a long time"
            )

    scheduler = config_dict.get("scheduler") or {}
    if isinstance(scheduler, dict):
        for task in ("job_alerts", "related_jobs", "cleanup"):
            if scheduler.get(f"{task}_enabled") is False:
                warning_messages.append(f"Scheduled task '{task}' is disabled and will not run")

    delivery = config_dict.get("delivery") or {}
    if isinstance(delivery, dict) and delivery.get("method", "log") == "log":
        warning_messages.append(
            "delivery.method is 'log': notifications are only written to the log"
        )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """
    Emit warning messages using Python's warnings module.

    Args:
        warning_messages: List of warning messages to emit
    """
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
