"""Test helpers: record factories and fake delivery sinks."""

from .factories import create_alert, create_job, create_user, make_alert, make_job, make_user, record_search
from .sinks import FailingSink, RecordingSink

__all__ = [
    "create_alert",
    "create_job",
    "create_user",
    "make_alert",
    "make_job",
    "make_user",
    "record_search",
    "RecordingSink",
    "FailingSink",
]
