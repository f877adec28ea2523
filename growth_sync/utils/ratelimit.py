"""
Rate Limiting and Retry Policy

Fixed two-tier pacing: a short pause between pages/items and a longer pause
after a 429. No exponential backoff, no circuit breaker.
"""

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from growth_sync.errors import RateLimited
from growth_sync.utils.clock import Clock
from growth_sync.utils.config import RateLimitConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Retries a call on RateLimited only.

    Auth failures and every other error propagate on the first attempt.
    """

    def __init__(self, config: RateLimitConfig, clock: Optional[Clock] = None):
        self.config = config
        self.clock = clock or Clock()
        self.rate_limited_count = 0

    async def call(
        self,
        fn: Callable[[], Awaitable[T]],
        description: str = "request",
    ) -> T:
        """Run fn, re-attempting up to max_retries times after a 429.

        Raises:
            RateLimited: when every attempt was rate limited
        """
        last_error: Optional[RateLimited] = None

        for attempt in range(self.config.max_retries + 1):
            if attempt > 0:
                logger.warning(
                    f"Retry {attempt}/{self.config.max_retries} for {description} "
                    f"after {self.config.pause_after_429:.0f}s"
                )
                await self.clock.sleep(self.config.pause_after_429)

            try:
                return await fn()
            except RateLimited as e:
                self.rate_limited_count += 1
                last_error = e
                logger.warning(f"Rate limited (429) on {description}")

        if last_error is None:
            raise RuntimeError("Unreachable retry loop")
        last_error.attempts = self.config.max_retries + 1
        raise last_error
