"""Utility functions for time handling and text formatting."""

from .text import split_terms, truncate_text
from .timestamps import (
    EPOCH,
    days_ago,
    ensure_utc,
    format_timestamp,
    parse_iso_datetime,
    utc_now,
)

__all__ = [
    # Timestamps
    "EPOCH",
    "utc_now",
    "ensure_utc",
    "days_ago",
    "parse_iso_datetime",
    "format_timestamp",
    # Text
    "truncate_text",
    "split_terms",
]
