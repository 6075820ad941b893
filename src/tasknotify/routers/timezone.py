"""REST endpoints for the timezone setup conversation."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..models import TimezoneGuess, TimezoneProfile
from ..services.engine import NotificationEngine
from ..services.timezone_setup import SetupResult, TimezoneSetupService
from .checks import get_engine

router = APIRouter(prefix="/api/timezone", tags=["timezone"])


class ReplyBody(BaseModel):
    """The user's answer to "what time is it for you?"."""

    text: str = Field(..., min_length=1)


class ConfirmBody(BaseModel):
    accepted: bool


class ProfileResponse(BaseModel):
    timezone: Optional[str] = None
    offset: Optional[int] = None
    display: Optional[str] = None
    abbreviation: Optional[str] = None


class GuessResponse(BaseModel):
    timezone: Optional[str] = None
    offset: int
    display: str
    abbreviation: Optional[str] = None
    confidence: str


class SetupResponse(BaseModel):
    stage: str
    prompt: str
    guess: Optional[GuessResponse] = None
    profile: Optional[ProfileResponse] = None


def get_setup_service(
    engine: NotificationEngine = Depends(get_engine),
) -> TimezoneSetupService:
    return engine.timezone_setup


def _profile_dict(profile: TimezoneProfile) -> dict[str, Any]:
    return {
        "timezone": profile.timezone,
        "offset": profile.offset,
        "display": profile.display,
        "abbreviation": profile.abbreviation,
    }


def _guess_dict(guess: TimezoneGuess) -> dict[str, Any]:
    return {
        "timezone": guess.timezone,
        "offset": guess.offset,
        "display": guess.display,
        "abbreviation": guess.abbreviation,
        "confidence": guess.confidence.value,
    }


def _result(result: SetupResult) -> dict[str, Any]:
    return {
        "stage": result.stage.value,
        "prompt": result.prompt,
        "guess": _guess_dict(result.guess) if result.guess else None,
        "profile": _profile_dict(result.profile) if result.profile else None,
    }


@router.post("/{account_id}/setup", response_model=SetupResponse)
async def begin_setup(
    account_id: str,
    service: TimezoneSetupService = Depends(get_setup_service),
) -> dict[str, Any]:
    """Start (or restart) the timezone setup flow."""
    return _result(service.begin(account_id))


@router.post("/{account_id}/reply", response_model=SetupResponse)
async def submit_reply(
    account_id: str,
    body: ReplyBody,
    service: TimezoneSetupService = Depends(get_setup_service),
) -> dict[str, Any]:
    return _result(service.submit(account_id, body.text))


@router.post("/{account_id}/confirm", response_model=SetupResponse)
async def confirm_guess(
    account_id: str,
    body: ConfirmBody,
    service: TimezoneSetupService = Depends(get_setup_service),
) -> dict[str, Any]:
    return _result(await service.confirm(account_id, body.accepted))


@router.get("/{account_id}", response_model=ProfileResponse)
async def get_profile(
    account_id: str,
    service: TimezoneSetupService = Depends(get_setup_service),
) -> dict[str, Any]:
    """Return the saved timezone profile."""
    profile = await service.get_profile(account_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Timezone not set")
    return _profile_dict(profile)


__all__ = ["get_setup_service", "router"]
