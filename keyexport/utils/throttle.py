"""One-at-a-time request slots per host."""

from __future__ import annotations

import asyncio
import contextlib
import os
import time
from collections import defaultdict
from collections.abc import AsyncIterator

REDEEM_RATE = float(os.environ.get("REDEEM_RATE", 2.0))


class HostThrottle:
    """Serializes requests to each host.

    A slot is held for the whole request, and the next slot for that host
    opens no sooner than ``1 / rate`` seconds after the previous request
    finished. Different hosts do not wait on each other.
    """

    def __init__(self, *, rate: float = REDEEM_RATE) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.interval = 1.0 / rate
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._opens_at: dict[str, float] = defaultdict(float)

    def busy(self, host: str) -> bool:
        return host in self._locks and self._locks[host].locked()

    @contextlib.asynccontextmanager
    async def slot(self, host: str) -> AsyncIterator[None]:
        async with self._locks[host]:
            delay = self._opens_at[host] - time.monotonic()
            if delay > 0:
                await asyncio.sleep(delay)
            try:
                yield
            finally:
                self._opens_at[host] = time.monotonic() + self.interval
