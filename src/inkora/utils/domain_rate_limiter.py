"""Per-host sliding window rate gate."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from inkora.config.config import DEFAULT_RATE_LIMIT_PERIOD, DEFAULT_RATE_LIMIT_PERMITS
from inkora.utils.clock import Clock, system_clock
from inkora.utils.logger import transport_logger as logger


class HostRateLimiter:
    """Admit at most ``permits`` requests per host in any ``period`` seconds.

    Waiters for one host queue on that host's lock, which asyncio wakes in
    FIFO order, so a burst is served first come first served. Each host
    keeps a deque of admission timestamps; entries older than ``period``
    are pruned before every decision.
    """

    def __init__(
        self,
        *,
        permits: int = DEFAULT_RATE_LIMIT_PERMITS,
        period: float = DEFAULT_RATE_LIMIT_PERIOD,
        clock: Clock = system_clock,
    ) -> None:
        self._permits = max(int(permits), 1)
        self._period = max(float(period), 0.0)
        self._clock = clock
        self._windows: dict[str, deque[float]] = defaultdict(deque)
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def permits(self) -> int:
        return self._permits

    @property
    def period(self) -> float:
        return self._period

    async def acquire(self, host: str, deadline: float | None = None) -> float:
        """Wait for a slot on ``host``; return the seconds spent waiting.

        With a ``deadline`` (clock time), raise ``TimeoutError`` without
        taking a slot once the wait would reach it.
        """

        host = (host or "").lower()
        waited = 0.0
        async with self._locks[host]:
            window = self._windows[host]
            while True:
                now = self._clock.monotonic()
                if deadline is not None and now >= deadline:
                    raise TimeoutError(f"Deadline reached waiting for {host}")
                while window and now - window[0] >= self._period:
                    window.popleft()
                if len(window) < self._permits:
                    window.append(now)
                    if waited:
                        logger.debug(f"[RATE] {host} admitted after {waited:.2f}s")
                    return waited
                delay = window[0] + self._period - now
                if deadline is not None and now + delay >= deadline:
                    logger.debug(f"[RATE] {host} slot in {delay:.2f}s is past the deadline")
                    raise TimeoutError(f"Deadline reached waiting for {host}")
                waited += delay
                await self._clock.sleep(delay)

    @asynccontextmanager
    async def limit(self, host: str) -> AsyncIterator[None]:
        await self.acquire(host)
        yield

    def recent(self, host: str) -> tuple[float, ...]:
        """Admission timestamps still inside the window for ``host``."""

        return tuple(self._windows.get(host.lower(), ()))

    def reset(self) -> None:
        self._windows.clear()


__all__ = ["HostRateLimiter"]
