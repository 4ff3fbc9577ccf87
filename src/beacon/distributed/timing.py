"""Tick scheduling shared by the background loops."""

from __future__ import annotations

import asyncio


async def wait_for_stop(stop: asyncio.Event, interval: float) -> bool:
    """Sleep for one tick interval unless ``stop`` fires first.

    Returns True when the loop should exit. A stop that is set by the time
    the wait ends wins over starting another tick.
    """
    if stop.is_set():
        return True
    try:
        await asyncio.wait_for(stop.wait(), timeout=interval)
    except asyncio.TimeoutError:
        pass
    return stop.is_set()
