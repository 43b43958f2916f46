from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from inkora.utils.domain_rate_limiter import HostRateLimiter
from inkora.utils.http_client import Transport
from inkora.utils.retry_policy import RetryPolicy

FIXTURES = Path(__file__).parent / "fixtures"


class FakeClock:
    """Synthetic time: ``sleep`` records the delay and advances ``monotonic``."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)

    def advance(self, seconds: float) -> None:
        self.now += seconds


def read_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


def make_transport(
    handler: Callable[[httpx.Request], httpx.Response],
    clock: FakeClock,
    *,
    attempts: int = 3,
    permits: int = 1000,
) -> Transport:
    return Transport(
        timeout_ms=5_000,
        retry_policy=RetryPolicy(max_attempts=attempts),
        rate_limiter=HostRateLimiter(permits=permits, period=1.0, clock=clock),
        clock=clock,
        http_transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def listing_html() -> str:
    return read_fixture("bato_listing.html")


@pytest.fixture
def series_html() -> str:
    return read_fixture("bato_series.html")


@pytest.fixture
def chapter_html() -> str:
    return read_fixture("bato_chapter.html")
