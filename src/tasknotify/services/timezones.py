"""Free-text timezone detection and wall-clock/UTC conversion."""

from __future__ import annotations

import datetime as _dt
import logging
import re
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as _dateutil_parser

from ..models import GuessConfidence, LocalTime, TimezoneGuess, TimezoneProfile
from ..utils.datetime_utils import ensure_utc, normalize_rfc3339, utc_now

logger = logging.getLogger(__name__)

# UTC offset (hours) -> (IANA zone, display, abbreviation)
OFFSET_ZONES: dict[int, tuple[str, str, str]] = {
    -5: ("America/New_York", "Eastern Time", "ET"),
    -6: ("America/Chicago", "Central Time", "CT"),
    -7: ("America/Denver", "Mountain Time", "MT"),
    -8: ("America/Los_Angeles", "Pacific Time", "PT"),
    -9: ("America/Anchorage", "Alaska Time", "AKT"),
    -10: ("Pacific/Honolulu", "Hawaii Time", "HT"),
    0: ("UTC", "UTC", "UTC"),
    1: ("Europe/London", "GMT/BST", "GMT"),
}

_EASTERN = ("America/New_York", "Eastern Time", "ET", -5)
_CENTRAL = ("America/Chicago", "Central Time", "CT", -6)
_MOUNTAIN = ("America/Denver", "Mountain Time", "MT", -7)
_PACIFIC = ("America/Los_Angeles", "Pacific Time", "PT", -8)
_ALASKA = ("America/Anchorage", "Alaska Time", "AKT", -9)
_HAWAII = ("Pacific/Honolulu", "Hawaii Time", "HT", -10)
_UTC = ("UTC", "UTC", "UTC", 0)

# abbreviation -> (IANA zone, display, abbreviation, standard offset)
ABBREVIATIONS: dict[str, tuple[str, str, str, int]] = {
    "est": _EASTERN,
    "edt": _EASTERN,
    "et": _EASTERN,
    "cst": _CENTRAL,
    "cdt": _CENTRAL,
    "ct": _CENTRAL,
    "mst": _MOUNTAIN,
    "mdt": _MOUNTAIN,
    "mt": _MOUNTAIN,
    "pst": _PACIFIC,
    "pdt": _PACIFIC,
    "pt": _PACIFIC,
    "akst": _ALASKA,
    "akdt": _ALASKA,
    "hst": _HAWAII,
    "utc": _UTC,
    "gmt": _UTC,
}

_FILLER_PATTERNS = (
    re.compile(r"it'?s?\s+"),
    re.compile(r"my\s+time\s+is\s+"),
    re.compile(r"currently\s+"),
)

_TIME_PATTERNS = (
    re.compile(r"(\d{1,2}):(\d{2})\s*(am|pm)"),
    re.compile(r"(\d{1,2})\s*(am|pm)"),
    re.compile(r"(\d{1,2}):(\d{2})"),
)


def _strip_filler(text: str) -> str:
    cleaned = text.lower().strip()
    for pattern in _FILLER_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    return cleaned.strip()


def parse_local_time(text: Optional[str]) -> Optional[LocalTime]:
    """Parse loose clock expressions like "it's 3pm" or "15:30".

    Returns None when no pattern yields a valid 24-hour time.
    """
    if not text:
        return None

    cleaned = _strip_filler(text)
    for pattern in _TIME_PATTERNS:
        match = pattern.search(cleaned)
        if not match:
            continue

        groups = match.groups()
        hours = int(groups[0])
        if len(groups) == 3:
            minutes, meridiem = int(groups[1]), groups[2]
        elif pattern is _TIME_PATTERNS[1]:
            minutes, meridiem = 0, groups[1]
        else:
            minutes, meridiem = int(groups[1]), None

        if meridiem == "pm" and hours != 12:
            hours += 12
        elif meridiem == "am" and hours == 12:
            hours = 0

        if 0 <= hours <= 23 and 0 <= minutes <= 59:
            return LocalTime(hours=hours, minutes=minutes)

    return None


def _format_offset_display(offset: int) -> str:
    sign = "+" if offset >= 0 else ""
    return f"UTC{sign}{offset}"


def detect_timezone(
    text: Optional[str], now: Optional[_dt.datetime] = None
) -> Optional[TimezoneGuess]:
    """Guess a timezone from an abbreviation or the user's current clock time."""
    if not text:
        return None

    key = text.lower().strip()
    known = ABBREVIATIONS.get(key)
    if known is not None:
        zone, display, abbreviation, offset = known
        logger.info(f"Timezone detected from abbreviation '{text}': {zone}")
        return TimezoneGuess(
            timezone=zone,
            offset=offset,
            display=display,
            abbreviation=abbreviation,
            confidence=GuessConfidence.EXACT,
        )

    parsed = parse_local_time(text)
    if parsed is None:
        return None

    current = ensure_utc(now) if now is not None else utc_now()
    offset = parsed.hours - current.hour
    if offset > 12:
        offset -= 24
    if offset < -12:
        offset += 24

    entry = OFFSET_ZONES.get(offset)
    if entry is None:
        logger.warning(f"No named timezone for offset {offset} (input '{text}')")
        return TimezoneGuess(
            timezone=None,
            offset=offset,
            display=_format_offset_display(offset),
        )

    zone, display, abbreviation = entry
    logger.info(
        f"Timezone detected: user {parsed.hours}:{parsed.minutes:02d}, "
        f"UTC {current.hour}:{current.minute:02d} -> {zone} ({offset:+d})"
    )
    return TimezoneGuess(
        timezone=zone,
        offset=offset,
        display=display,
        abbreviation=abbreviation,
    )


def convert_to_utc(local_iso: Optional[str], zone_name: Optional[str]) -> Optional[str]:
    """Interpret ``local_iso`` as wall-clock time in ``zone_name`` and return UTC.

    An explicit offset in the input wins over the zone. On any fault the
    input is returned unchanged.
    """
    if not local_iso or not zone_name:
        return local_iso

    try:
        zone = ZoneInfo(zone_name)
        parsed = _dateutil_parser.isoparse(local_iso)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=zone)
        converted = normalize_rfc3339(parsed)
    except (ZoneInfoNotFoundError, ValueError, OverflowError) as exc:
        logger.error(
            f"Timezone conversion failed for '{local_iso}' in '{zone_name}': {exc}"
        )
        return local_iso

    logger.debug(f"Converted {local_iso} ({zone_name}) -> {converted}")
    return converted


def convert_to_local(utc_iso: Optional[str], zone_name: Optional[str]) -> Optional[str]:
    """Express a UTC instant as an ISO string carrying ``zone_name``'s offset."""
    if not utc_iso or not zone_name:
        return utc_iso

    try:
        zone = ZoneInfo(zone_name)
        parsed = ensure_utc(_dateutil_parser.isoparse(utc_iso))
    except (ZoneInfoNotFoundError, ValueError, OverflowError) as exc:
        logger.error(
            f"Local conversion failed for '{utc_iso}' in '{zone_name}': {exc}"
        )
        return utc_iso

    return parsed.astimezone(zone).isoformat()


def resolve_profile_tz(profile: Optional[TimezoneProfile]) -> Optional[_dt.tzinfo]:
    """Return the tzinfo for a profile: its IANA zone, else its fixed offset."""
    if profile is None:
        return None

    if profile.timezone:
        try:
            return ZoneInfo(profile.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone '{profile.timezone}' in profile")

    if profile.offset is not None:
        return _dt.timezone(_dt.timedelta(hours=profile.offset))
    return None


def format_local(
    value: _dt.datetime, profile: Optional[TimezoneProfile] = None
) -> str:
    """Human-readable rendering of ``value`` in the profile's local time."""
    tz = resolve_profile_tz(profile) or _dt.timezone.utc
    local = ensure_utc(value).astimezone(tz)
    label = local.tzname() or (profile.display if profile else None) or "UTC"
    return f"{local.strftime('%a %b %d, %Y %I:%M %p')} {label}"


__all__ = [
    "ABBREVIATIONS",
    "OFFSET_ZONES",
    "convert_to_local",
    "convert_to_utc",
    "detect_timezone",
    "format_local",
    "parse_local_time",
    "resolve_profile_tz",
]
