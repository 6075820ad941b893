"""Utility helpers for tasknotify services."""

from .datetime_utils import (
    format_db_timestamp,
    normalize_rfc3339,
    parse_db_timestamp,
    parse_rfc3339_datetime,
)

__all__ = [
    "format_db_timestamp",
    "normalize_rfc3339",
    "parse_db_timestamp",
    "parse_rfc3339_datetime",
]
