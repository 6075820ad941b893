"""Pydantic schemas for stored documents."""

from .user_settings import PendingWatcherRequest, UserSettingsDocument

__all__ = ["PendingWatcherRequest", "UserSettingsDocument"]
