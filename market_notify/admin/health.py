"""Liveness plus the state of the bid finalization schedule."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Request

from ..timestamps import isoformat

router = APIRouter(prefix="/admin", tags=["admin"])


def _scheduler_state(request: Request) -> str:
    task = getattr(request.app.state, "scheduler_task", None)
    if task is None:
        return "disabled"
    return "stopped" if task.done() else "running"


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    state = request.app.state
    start_time = getattr(state, "start_time", None)
    uptime = int((datetime.now(timezone.utc) - start_time).total_seconds()) if start_time else 0
    history = getattr(state, "sweep_history", None)
    last = history.last() if history is not None else None
    return {
        "status": "healthy",
        "uptime_seconds": uptime,
        "version": request.app.version,
        "scheduler": _scheduler_state(request),
        "last_sweep": None
        if last is None
        else {"run_at": isoformat(last.run_at), "completed": last.completed, "error": last.error},
    }
