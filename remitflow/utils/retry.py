from __future__ import annotations

import asyncio
import random


def compute_backoff(attempt: int, base: float = 1.5, jitter: float = 0.5) -> float:
    """Compute exponential backoff with jitter."""
    delay = base ** attempt
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int, interval: float = 1.0, cap: float = 10.0) -> None:
    """Sleep ``interval`` scaled by the backoff for ``attempt``, at most ``cap`` seconds."""
    delay = min(interval * compute_backoff(attempt, jitter=0.0), cap)
    await asyncio.sleep(delay)
