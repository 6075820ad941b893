from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from tasknotify.config import Settings, get_settings


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for name in (
        "DATABASE_PATH",
        "DELIVERY_WEBHOOK_URL",
        "DUE_SOON_OFFSETS",
        "DIGEST_HOUR",
        "SCHEDULER_ENABLED",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.database_path == Path("data/tasks.db")
    assert settings.delivery_webhook_url is None
    assert settings.due_soon_offsets == [105, 30, 15, 5]
    assert settings.overdue_offsets == [15, 30, 60]
    assert settings.window_minutes == 5
    assert settings.completion_recency_seconds == 60
    assert settings.completion_min_interval_seconds == 10
    assert settings.overdue_min_interval_seconds == 600
    assert settings.digest_hour == 17
    assert settings.watcher_request_ttl_hours == 72
    assert settings.completion_check_interval_seconds == 30
    assert settings.window_check_interval_seconds == 300
    assert settings.scheduler_enabled is True


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_PATH", "/tmp/custom.db")
    monkeypatch.setenv("DELIVERY_WEBHOOK_URL", "https://relay.example/notify")
    monkeypatch.setenv("DUE_SOON_OFFSETS", "[60, 10]")
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")

    settings = Settings(_env_file=None)

    assert settings.database_path == Path("/tmp/custom.db")
    assert str(settings.delivery_webhook_url) == "https://relay.example/notify"
    assert settings.due_soon_offsets == [60, 10]
    assert settings.scheduler_enabled is False


def test_invalid_digest_hour_rejected(monkeypatch):
    monkeypatch.setenv("DIGEST_HOUR", "24")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_get_settings_is_cached():
    assert get_settings() is get_settings()
