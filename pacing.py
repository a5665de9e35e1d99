#!/usr/bin/env python3
"""
Human-like pacing helpers.

Bounded random pauses used for humanization, soft-block recovery,
retry backoff and inter-batch throttling.
"""

import asyncio
import random
from typing import Tuple


def jitter(delay_range: Tuple[float, float]) -> float:
    """Pick a random duration (seconds) within an inclusive range.

    Args:
        delay_range: (minimum, maximum) in seconds

    Returns:
        Duration in seconds
    """
    low, high = delay_range
    if high < low:
        low, high = high, low
    return random.uniform(low, high)


async def random_delay(delay_range: Tuple[float, float]) -> float:
    """Sleep for a random duration within the range and return it."""
    duration = jitter(delay_range)
    if duration > 0:
        await asyncio.sleep(duration)
    return duration
