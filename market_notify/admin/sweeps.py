"""Recent bid finalization runs."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from ..bids import SweepHistory

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_history(request: Request) -> SweepHistory:
    return request.app.state.sweep_history


@router.get("/sweeps")
async def sweeps(history: SweepHistory = Depends(_get_history)) -> list[dict[str, Any]]:
    return [summary.to_dict() for summary in history.recent()]
