"""Helpers for parsing the simple logging settings file.

Each line is ``key = level``; keys name a group of package loggers (see
``LOGGER_NAMES``) and ``off`` silences that group entirely.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

_LEVEL_MAP: dict[str, int | None] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": None,
}

_DEFAULT_LEVEL = logging.INFO
_SILENT = logging.CRITICAL + 1

# settings key -> logger it tunes
LOGGER_NAMES = {
    "terminal": "tasknotify",
    "evaluators": "tasknotify.services",
    "delivery": "tasknotify.services.delivery",
}


@dataclass(frozen=True)
class LoggingSettings:
    levels: dict[str, int | None] = field(
        default_factory=lambda: dict.fromkeys(LOGGER_NAMES, _DEFAULT_LEVEL)
    )

    def level_for(self, key: str) -> int | None:
        return self.levels.get(key, _DEFAULT_LEVEL)

    @property
    def terminal_level(self) -> int | None:
        return self.level_for("terminal")

    @property
    def evaluators_level(self) -> int | None:
        return self.level_for("evaluators")

    @property
    def delivery_level(self) -> int | None:
        return self.level_for("delivery")


def _entries(text: str) -> Iterator[tuple[str, str]]:
    """Yield ``(key, value)`` pairs, skipping comments and malformed lines."""
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        yield key.strip().lower(), value.strip().lower()


def parse_logging_settings(path: Path) -> LoggingSettings:
    """Parse the human-readable logging settings file."""

    levels = dict.fromkeys(LOGGER_NAMES, _DEFAULT_LEVEL)
    if path.exists():
        for key, value in _entries(path.read_text(encoding="utf-8")):
            if key in LOGGER_NAMES:
                levels[key] = _LEVEL_MAP.get(value, _DEFAULT_LEVEL)
    return LoggingSettings(levels=levels)


def apply_logging_settings(settings: LoggingSettings) -> None:
    """Set package logger levels; ``off`` silences a logger and its children."""

    for key, logger_name in LOGGER_NAMES.items():
        level = settings.level_for(key)
        logging.getLogger(logger_name).setLevel(_SILENT if level is None else level)


__all__ = [
    "LOGGER_NAMES",
    "LoggingSettings",
    "apply_logging_settings",
    "parse_logging_settings",
]
