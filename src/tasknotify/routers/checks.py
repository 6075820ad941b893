"""REST endpoints that trigger notification checks on demand."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from ..models import SweepReport
from ..services.engine import NotificationEngine

router = APIRouter(prefix="/api", tags=["checks"])


class SweepReportResponse(BaseModel):
    """Outcome of one evaluator run."""

    kind: str
    notified_tasks: list[str]
    skipped_tasks: list[str]
    notified_accounts: list[str]
    deliveries_ok: int
    deliveries_failed: int
    errors: int


def get_engine(request: Request) -> NotificationEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Notification engine not available")
    return engine


def _report(report: SweepReport) -> dict[str, Any]:
    return {
        "kind": report.kind,
        "notified_tasks": report.notified_tasks,
        "skipped_tasks": report.skipped_tasks,
        "notified_accounts": report.notified_accounts,
        "deliveries_ok": report.deliveries_ok,
        "deliveries_failed": report.deliveries_failed,
        "errors": report.errors,
    }


@router.post("/checks/due-soon", response_model=SweepReportResponse)
async def run_due_soon_check(
    engine: NotificationEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Run the due-soon sweep now."""
    return _report(await engine.run_due_soon_check())


@router.post("/checks/overdue", response_model=SweepReportResponse)
async def run_overdue_check(
    engine: NotificationEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Run the overdue sweep now."""
    return _report(await engine.run_overdue_check())


@router.post("/checks/completion", response_model=SweepReportResponse)
async def run_completion_check(
    engine: NotificationEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Sweep recently completed tasks."""
    return _report(await engine.run_completion_check())


@router.post("/checks/daily-summary", response_model=SweepReportResponse)
async def run_daily_summary_check(
    engine: NotificationEngine = Depends(get_engine),
) -> dict[str, Any]:
    return _report(await engine.run_daily_summary_check())


@router.post("/tasks/{task_id}/completion-check", response_model=SweepReportResponse)
async def run_task_completion_check(
    task_id: str, engine: NotificationEngine = Depends(get_engine)
) -> dict[str, Any]:
    """Notify for one task right after it was marked complete."""
    return _report(await engine.run_completion_check(task_id=task_id))


__all__ = ["get_engine", "router"]
