"""REST endpoints for the watcher consent protocol."""

from __future__ import annotations

from typing import Any, NoReturn

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..models import ConsentRequest
from ..services.engine import NotificationEngine
from ..services.watchers import (
    AlreadyWatchingError,
    ConsentDeliveryError,
    MalformedSettingsError,
    NoPendingRequestError,
    NotWatchingError,
    RequestAlreadyPendingError,
    SelfWatchError,
    UnknownTargetError,
    WatcherError,
)
from ..utils.datetime_utils import normalize_rfc3339
from .checks import get_engine

router = APIRouter(prefix="/api/watchers", tags=["watchers"])

_STATUS_BY_ERROR: dict[type[WatcherError], int] = {
    SelfWatchError: 400,
    UnknownTargetError: 404,
    NoPendingRequestError: 404,
    NotWatchingError: 404,
    AlreadyWatchingError: 409,
    RequestAlreadyPendingError: 409,
    MalformedSettingsError: 409,
    ConsentDeliveryError: 502,
}


class WatcherRequestBody(BaseModel):
    """Request body for asking an account to watch the owner's tasks."""

    target_id: str = Field(..., min_length=1)


class ResolveRequestBody(BaseModel):
    accepted: bool


class ConsentRequestResponse(BaseModel):
    target_id: str
    requester_id: str
    requested_at: str


class WatchersResponse(BaseModel):
    owner_id: str
    watchers: list[str]
    pending_requests: list[ConsentRequestResponse]


def _raise_http(exc: WatcherError) -> NoReturn:
    status = _STATUS_BY_ERROR.get(type(exc), 400)
    raise HTTPException(
        status_code=status, detail={"reason": exc.reason, "message": str(exc)}
    ) from exc


def _request_dict(request: ConsentRequest) -> dict[str, Any]:
    return {
        "target_id": request.target_id,
        "requester_id": request.requester_id,
        "requested_at": normalize_rfc3339(request.requested_at),
    }


@router.get("/{owner_id}", response_model=WatchersResponse)
async def list_watchers(
    owner_id: str, engine: NotificationEngine = Depends(get_engine)
) -> dict[str, Any]:
    """List an account's watchers and the requests waiting on it."""
    watchers = await engine.list_watchers(owner_id)
    pending = await engine.list_pending_requests(owner_id)
    return {
        "owner_id": owner_id,
        "watchers": watchers,
        "pending_requests": [_request_dict(item) for item in pending],
    }


@router.post("/{owner_id}/requests", response_model=ConsentRequestResponse)
async def issue_request(
    owner_id: str,
    body: WatcherRequestBody,
    engine: NotificationEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Ask ``target_id`` for consent to watch ``owner_id``'s tasks."""
    try:
        consent = await engine.issue_watcher_request(owner_id, body.target_id)
    except WatcherError as exc:
        _raise_http(exc)
    return _request_dict(consent)


@router.post("/{owner_id}/requests/{target_id}/resolve")
async def resolve_request(
    owner_id: str,
    target_id: str,
    body: ResolveRequestBody,
    engine: NotificationEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Record the target's decision on a pending request."""
    try:
        outcome = await engine.resolve_watcher_request(
            owner_id, target_id, body.accepted
        )
    except WatcherError as exc:
        _raise_http(exc)
    return {"owner_id": owner_id, "target_id": target_id, "outcome": outcome.value}


@router.delete("/{owner_id}/{target_id}")
async def remove_watcher(
    owner_id: str,
    target_id: str,
    engine: NotificationEngine = Depends(get_engine),
) -> dict[str, Any]:
    try:
        await engine.remove_watcher(owner_id, target_id)
    except WatcherError as exc:
        _raise_http(exc)
    return {"success": True, "owner_id": owner_id, "target_id": target_id}


__all__ = ["router"]
