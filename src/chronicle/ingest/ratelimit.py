"""Process-wide pacing of calls to the external source.

Every grant moves a shared "next allowed" watermark forward by the interval,
starting from ``max(now, watermark)``. Concurrent callers therefore queue up
strictly one interval apart and the aggregate call rate never exceeds
``1 / interval`` no matter how many workers share the limiter.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed-interval limiter for asyncio callers.

    Args:
        interval_ms: Minimum spacing between two grants, in milliseconds.
        clock: Monotonic clock in seconds (injectable for tests).
    """

    def __init__(
        self, interval_ms: float = 1000, clock: Callable[[], float] = time.monotonic
    ) -> None:
        if interval_ms < 0:
            raise ValueError(f"interval_ms must be >= 0, got {interval_ms}")
        self.interval = interval_ms / 1000.0
        self._clock = clock
        self._next = clock()
        self.grants = 0

    async def acquire(self) -> None:
        """Wait (without spinning) until this caller's slot comes up."""
        now = self._clock()
        # Reserve the slot before awaiting so concurrent callers line up behind it.
        slot = max(now, self._next)
        self._next = slot + self.interval
        self.grants += 1
        delay = slot - now
        if delay > 0:
            logger.debug("rate limit: waiting %.3fs", delay)
            await asyncio.sleep(delay)
