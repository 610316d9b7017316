"""Fixed-size batch throttle for per-file provider calls."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, List, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BatchThrottle:
    """Yield items in batches of ``batch_size``, pausing ``delay`` seconds between batches.

    The pause uses the injected ``sleep`` coroutine, so tests can substitute
    a recorder instead of waiting on the real clock.  No pause happens before
    the first batch or after the last one.
    """

    def __init__(
        self,
        batch_size: int = 5,
        delay: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.batch_size = batch_size
        self.delay = delay
        self._sleep = sleep
        self.total_waited = 0.0

    async def batches(self, items: Sequence[T]) -> AsyncIterator[List[T]]:
        for start in range(0, len(items), self.batch_size):
            if start and self.delay > 0:
                logger.debug("Throttle: pausing %.2fs before batch %d", self.delay, start // self.batch_size + 1)
                await self._sleep(self.delay)
                self.total_waited += self.delay
            yield list(items[start:start + self.batch_size])
