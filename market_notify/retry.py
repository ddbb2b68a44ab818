"""Async retry with exponential backoff for individual store mutations."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    func: Callable[[], Awaitable[T]],
    *,
    retries: int,
    initial_delay: float = 0.5,
    backoff_factor: float = 2.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    give_up_on: tuple[type[BaseException], ...] = (),
    label: str = "operation",
) -> T:
    """Await ``func()`` up to ``retries + 1`` times.

    Exceptions in ``give_up_on`` are raised immediately; the last failure is
    re-raised once the attempts are exhausted.
    """
    attempts = retries + 1
    delay = initial_delay
    for attempt in range(1, attempts + 1):
        try:
            return await func()
        except give_up_on:
            raise
        except retry_on as exc:
            if attempt == attempts:
                logger.error("%s failed after %d attempts: %s", label, attempts, exc)
                raise
            logger.warning(
                "%s attempt %d/%d failed: %s; retrying in %.2fs",
                label,
                attempt,
                attempts,
                exc,
                delay,
            )
            await asyncio.sleep(delay)
            delay *= backoff_factor
    raise RuntimeError("unreachable")  # pragma: no cover
