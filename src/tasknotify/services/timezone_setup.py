"""Conversation state for establishing an account's timezone."""

from __future__ import annotations

import datetime
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..models import TimezoneGuess, TimezoneProfile
from ..schemas.user_settings import parse_settings, timezone_profile_fields
from ..store.base import TaskStore
from .expiring import ExpiringMap
from .timezones import detect_timezone

logger = logging.getLogger(__name__)

SETUP_TTL_SECONDS = 600


class SetupStage(str, Enum):
    AWAITING_TIME = "awaiting_time"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMPLETED = "completed"
    UNSUPPORTED = "unsupported"
    INACTIVE = "inactive"


@dataclass(frozen=True, slots=True)
class SetupState:
    stage: SetupStage
    guess: Optional[TimezoneGuess] = None


@dataclass(frozen=True, slots=True)
class SetupResult:
    """Outcome of one step, with the prompt a front end should show next."""

    stage: SetupStage
    prompt: str
    guess: Optional[TimezoneGuess] = None
    profile: Optional[TimezoneProfile] = None


_ASK_TIME = (
    "What time is it for you right now? "
    "You can also reply with a timezone abbreviation such as EST or PT."
)


class TimezoneSetupService:
    """Drive the ask-time / confirm exchange; abandoned flows expire."""

    def __init__(
        self,
        store: TaskStore,
        *,
        ttl_seconds: float = SETUP_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self._states: ExpiringMap[str, SetupState] = ExpiringMap(
            ttl_seconds, clock=clock
        )

    def state(self, account_id: str) -> Optional[SetupState]:
        return self._states.get(account_id)

    def begin(self, account_id: str) -> SetupResult:
        self._states.purge()
        self._states.set(account_id, SetupState(SetupStage.AWAITING_TIME))
        logger.debug(f"Timezone setup started for {account_id}")
        return SetupResult(SetupStage.AWAITING_TIME, _ASK_TIME)

    def submit(
        self,
        account_id: str,
        text: str,
        now: Optional[datetime.datetime] = None,
    ) -> SetupResult:
        state = self._states.get(account_id)
        if state is None or state.stage is not SetupStage.AWAITING_TIME:
            return SetupResult(
                SetupStage.INACTIVE, "No timezone setup is waiting for a time."
            )

        guess = detect_timezone(text, now)
        if guess is None:
            self._states.set(account_id, state)
            return SetupResult(
                SetupStage.AWAITING_TIME,
                "I couldn't understand that time. Try a format like "
                "\"3:45pm\", \"15:45\" or an abbreviation like EST.",
            )

        if guess.timezone is None:
            self._states.pop(account_id)
            logger.info(
                f"Timezone setup for {account_id} ended on uncommon offset "
                f"{guess.display}"
            )
            return SetupResult(
                SetupStage.UNSUPPORTED,
                f"Your timezone appears to be {guess.display}, which is not "
                "supported yet.",
                guess=guess,
            )

        self._states.set(
            account_id, SetupState(SetupStage.AWAITING_CONFIRMATION, guess)
        )
        return SetupResult(
            SetupStage.AWAITING_CONFIRMATION,
            f"It looks like you're in {guess.display} ({guess.timezone}). "
            "Is that right?",
            guess=guess,
        )

    async def confirm(self, account_id: str, accepted: bool) -> SetupResult:
        state = self._states.get(account_id)
        if (
            state is None
            or state.stage is not SetupStage.AWAITING_CONFIRMATION
            or state.guess is None
        ):
            return SetupResult(
                SetupStage.INACTIVE, "No timezone is waiting for confirmation."
            )

        if not accepted:
            self._states.set(account_id, SetupState(SetupStage.AWAITING_TIME))
            return SetupResult(SetupStage.AWAITING_TIME, _ASK_TIME)

        profile = TimezoneProfile.from_guess(state.guess)
        await self._store.set_user_settings(
            account_id, timezone_profile_fields(profile), merge=True
        )
        self._states.pop(account_id)
        logger.info(f"Saved timezone {profile.timezone} for {account_id}")
        return SetupResult(
            SetupStage.COMPLETED,
            f"Timezone set to {profile.display}.",
            guess=state.guess,
            profile=profile,
        )

    async def get_profile(self, account_id: str) -> Optional[TimezoneProfile]:
        settings = parse_settings(
            account_id, await self._store.get_user_settings(account_id)
        )
        if settings is None:
            return None
        return settings.timezone_profile()


__all__ = [
    "SETUP_TTL_SECONDS",
    "SetupResult",
    "SetupStage",
    "SetupState",
    "TimezoneSetupService",
]
