"""
Clock Abstraction

All pacing goes through a Clock so tests can run with zero real delay.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


class Clock:
    """Production clock backed by asyncio.sleep and the system time."""

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            return
        logger.debug(f"Pausing {seconds:.1f}s")
        await asyncio.sleep(seconds)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock(Clock):
    """Clock that never waits and reports a fixed time.

    Records every requested pause so tests can assert on pacing.
    """

    def __init__(self, now: Optional[datetime] = None):
        self._now = now or datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)

    def now(self) -> datetime:
        return self._now

    @property
    def total_slept(self) -> float:
        return sum(self.sleeps)
