"""Sweep history and the optional in-process schedule loop."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Deque

from .models import SweepSummary
from .sweep import BidFinalizationSweep, SweepSelectionError

logger = logging.getLogger(__name__)


class SweepHistory:
    """Keeps the most recent sweep summaries for the admin endpoint."""

    def __init__(self, size: int = 20) -> None:
        self._summaries: Deque[SweepSummary] = deque(maxlen=size)

    def record(self, summary: SweepSummary) -> None:
        self._summaries.append(summary)

    def recent(self) -> list[SweepSummary]:
        return list(reversed(self._summaries))

    def last(self) -> SweepSummary | None:
        return self._summaries[-1] if self._summaries else None

    async def run(self, sweep: BidFinalizationSweep) -> SweepSummary:
        """Run one sweep and record its summary, including failed selections.

        Overlapping runs are allowed; the conditional finalize write decides
        which run handles each auction.
        """
        try:
            summary = await sweep.run()
        except SweepSelectionError as exc:
            self.record(exc.summary)
            raise
        self.record(summary)
        return summary


async def run_on_interval(
    sweep: BidFinalizationSweep,
    history: SweepHistory,
    interval_seconds: float,
    *,
    initial_delay: float = 0.0,
) -> None:
    """Run the sweep every ``interval_seconds`` until cancelled."""
    if initial_delay:
        await asyncio.sleep(initial_delay)
    while True:
        try:
            await history.run(sweep)
        except SweepSelectionError as exc:
            logger.error("[Scheduler] Bid finalization run failed: %s", exc)
        except Exception as exc:
            logger.error("[Scheduler] Unexpected sweep error: %s", exc, exc_info=True)
        await asyncio.sleep(interval_seconds)
