"""
Rate-limit policies for paced external calls.

The backfill loop calls ``await policy.wait()`` before every request after
the first; how long that takes is entirely up to the policy.

CHANGELOG:
- 2026-10-13: Initial creation (STORY-009)
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

logger = logging.getLogger(__name__)


class RateLimitPolicy(Protocol):
    async def wait(self) -> None: ...


class FixedDelay:
    """Sleep a fixed number of seconds between calls.

    Args:
        delay_s: Pause length in seconds.
        sleep: Awaitable sleep function (injectable for tests).
    """

    def __init__(
        self,
        delay_s: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.delay_s = delay_s
        self._sleep = sleep

    async def wait(self) -> None:
        if self.delay_s > 0:
            logger.debug("Rate limit: sleeping %.1fs", self.delay_s)
            await self._sleep(self.delay_s)


class NoDelay:
    """Policy that never waits."""

    async def wait(self) -> None:
        return None
