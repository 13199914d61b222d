"""Bounded delay-then-probe polling."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


async def poll_until(
    probe: Callable[[], Awaitable[T]],
    delays: Sequence[float],
    sleep: Optional[Sleep] = None,
    label: str = "probe",
) -> T:
    """Await ``probe`` once per entry in ``delays``, sleeping that long first.

    Stops at the first truthy result and returns it; otherwise returns the
    last (falsy) result. Zero delays skip the sleep.
    """
    if not delays:
        raise ValueError("poll_until needs at least one delay")
    sleep = sleep or asyncio.sleep
    result = None
    for attempt, delay in enumerate(delays, start=1):
        if delay > 0:
            await sleep(delay)
        result = await probe()
        if result:
            return result
        if attempt < len(delays):
            logger.warning(f"{label} not satisfied on attempt {attempt}, retrying")
    return result
