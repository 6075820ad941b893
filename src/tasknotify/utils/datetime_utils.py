"""Datetime parsing and UTC normalization utilities.

Every timestamp that crosses the store boundary goes through these helpers so
that stored values sort lexicographically in time order and every datetime
handed to the evaluators is timezone-aware UTC.
"""

from __future__ import annotations

import datetime
from typing import Any, Optional

from dateutil import parser as _dateutil_parser


def ensure_utc(value: datetime.datetime) -> datetime.datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""

    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def parse_rfc3339_datetime(value: Optional[str]) -> Optional[datetime.datetime]:
    """Best-effort conversion of an RFC3339 string to an aware datetime in UTC.

    Args:
        value: RFC3339 or ISO 8601 datetime string

    Returns:
        Timezone-aware datetime in UTC, or None if parsing fails
    """
    if not value:
        return None

    try:
        parsed = _dateutil_parser.isoparse(value)
    except (ValueError, OverflowError):
        return None

    return ensure_utc(parsed)


def coerce_datetime(value: Any) -> Optional[datetime.datetime]:
    """Accept a datetime or an ISO string and return aware UTC, else None."""

    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        return parse_rfc3339_datetime(value)
    return None


def normalize_rfc3339(dt_value: datetime.datetime) -> str:
    """Return an RFC3339 string in canonical UTC form with 'Z' suffix.

    Args:
        dt_value: Datetime to normalize

    Returns:
        RFC3339 string in UTC ending with 'Z' (e.g., '2025-11-17T13:42:00Z')
    """
    normalized = ensure_utc(dt_value).isoformat()
    if normalized.endswith("+00:00"):
        normalized = normalized[:-6] + "Z"
    return normalized


def format_db_timestamp(value: datetime.datetime | None) -> str | None:
    """Render a datetime in the fixed-width UTC form used for stored columns.

    Fixed microsecond precision keeps string comparison consistent with
    chronological order, which the due-date range queries rely on.
    """
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds")


def parse_db_timestamp(value: str | None) -> datetime.datetime | None:
    """Parse a timestamp stored in SQLite and normalize to UTC.

    Args:
        value: SQLite timestamp string

    Returns:
        Timezone-aware datetime in UTC, or None if parsing fails
    """
    if value is None:
        return None
    try:
        parsed = datetime.datetime.fromisoformat(value)
    except ValueError:
        return None
    return ensure_utc(parsed)


__all__ = [
    "coerce_datetime",
    "ensure_utc",
    "format_db_timestamp",
    "normalize_rfc3339",
    "parse_db_timestamp",
    "parse_rfc3339_datetime",
    "utc_now",
]
