from __future__ import annotations

import asyncio
import random


def compute_backoff(
    attempt: int,
    base: float = 1.5,
    jitter: float = 0.5,
    strategy: str = "exponential",
) -> float:
    """Compute the delay before retry number ``attempt``.

    ``linear`` grows as ``base * attempt``, ``exponential`` as
    ``base ** attempt`` and ``none`` never waits. Jitter is added on top.
    """
    if strategy == "none":
        return 0.0
    if strategy == "linear":
        delay = base * attempt
    elif strategy == "exponential":
        delay = base**attempt
    else:
        raise ValueError(f"Unknown backoff strategy: {strategy}")
    return delay + random.uniform(0, jitter) if jitter else delay


async def schedule_retry(delay: float) -> None:
    """Sleep for ``delay`` seconds before retrying."""
    if delay > 0:
        await asyncio.sleep(delay)
