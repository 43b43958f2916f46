"""Resilient HTTP transport shared by every backend."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import urlparse

import httpx

from inkora.config.config import (
    CONNECT_TIMEOUT_SECONDS,
    DEFAULT_TIMEOUT_MS,
    get_default_headers,
)
from inkora.utils.anti_bot import is_challenge_response
from inkora.utils.clock import Clock, system_clock
from inkora.utils.domain_rate_limiter import HostRateLimiter
from inkora.utils.errors import BlockedError, NetworkError, ParseError, RequestTimeoutError
from inkora.utils.logger import transport_logger as logger
from inkora.utils.retry_policy import RetryAttempt, RetryPolicy

READ_TIMEOUT_SECONDS = 30.0
MAX_CONNECTIONS = 20


@dataclass(slots=True)
class RequestOptions:
    timeout_ms: int | None = None
    max_retries: int | None = None
    check_challenge: bool = True
    # Absolute clock time (``Clock.monotonic``) after which the call gives up.
    deadline: float | None = None


@dataclass(slots=True)
class TransportResponse:
    """Fully read response; text and JSON are decoded on first access."""

    status_code: int
    headers: dict[str, str]
    url: str
    content: bytes
    encoding: str = "utf-8"
    _text: str | None = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def text(self) -> str:
        if self._text is None:
            self._text = self.content.decode(self.encoding or "utf-8", errors="replace")
        return self._text

    def json(self) -> Any:
        if not self.content.strip():
            return None
        try:
            return json.loads(self.text())
        except ValueError as exc:
            raise ParseError(f"Invalid JSON from {self.url}: {exc}") from exc

    def raise_for_status(self) -> None:
        if not self.ok:
            raise NetworkError(
                f"HTTP {self.status_code} for {self.url}",
                status_code=self.status_code,
                url=self.url,
            )


def merge_headers(base: Mapping[str, str], overrides: Mapping[str, str] | None) -> dict[str, str]:
    """Merge ``overrides`` into ``base``; header names compare case-insensitively."""

    merged = dict(base)
    for key, value in (overrides or {}).items():
        for existing in [name for name in merged if name.lower() == key.lower()]:
            del merged[existing]
        merged[key] = value
    return merged


def _encode_body(body: Any, headers: dict[str, str]) -> bytes | None:
    if body is None:
        return None
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    if not any(name.lower() == "content-type" for name in headers):
        headers["Content-Type"] = "application/json"
    return json.dumps(body).encode("utf-8")


def _host_of(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


class Transport:
    """Send requests with per-host rate limiting, challenge detection and retries.

    Every attempt passes the host rate gate, then runs under a hard
    wall-clock timeout. Challenge pages back off on the challenge schedule;
    other failures back off on the ordinary schedule. ``last_attempts``
    keeps the attempt log of the most recent call.
    """

    def __init__(
        self,
        *,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        retry_policy: RetryPolicy | None = None,
        rate_limiter: HostRateLimiter | None = None,
        clock: Clock = system_clock,
        default_headers: Mapping[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout_ms = max(int(timeout_ms), 1)
        self._retry_policy = retry_policy or RetryPolicy()
        self._clock = clock
        self._rate_limiter = rate_limiter or HostRateLimiter(clock=clock)
        self._default_headers = dict(default_headers) if default_headers else get_default_headers()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            follow_redirects=True,
            limits=httpx.Limits(
                max_connections=MAX_CONNECTIONS,
                max_keepalive_connections=MAX_CONNECTIONS // 2,
                keepalive_expiry=30.0,
            ),
            timeout=httpx.Timeout(
                connect=CONNECT_TIMEOUT_SECONDS,
                read=READ_TIMEOUT_SECONDS,
                write=READ_TIMEOUT_SECONDS,
                pool=CONNECT_TIMEOUT_SECONDS,
            ),
            transport=http_transport,
        )
        self.last_attempts: list[RetryAttempt] = []

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def rate_limiter(self) -> HostRateLimiter:
        return self._rate_limiter

    async def __aenter__(self) -> Transport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        options: RequestOptions | None = None,
    ) -> TransportResponse:
        return await self.execute(url, "GET", headers=headers, options=options)

    async def post(
        self,
        url: str,
        body: Any = None,
        *,
        headers: Mapping[str, str] | None = None,
        options: RequestOptions | None = None,
    ) -> TransportResponse:
        return await self.execute(url, "POST", headers=headers, body=body, options=options)

    async def execute(
        self,
        url: str,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        body: Any = None,
        options: RequestOptions | None = None,
    ) -> TransportResponse:
        options = options or RequestOptions()
        policy = self._retry_policy.with_attempts(options.max_retries)
        request_headers = merge_headers(self._default_headers, headers)
        content = _encode_body(body, request_headers)
        host = _host_of(url)
        method = method.upper()

        attempts: list[RetryAttempt] = []
        self.last_attempts = attempts
        last_error: Exception | None = None
        delay_before = 0.0

        for attempt in range(policy.max_attempts):
            attempts.append(RetryAttempt(attempt + 1, int(delay_before * 1000)))
            try:
                await self._rate_limiter.acquire(host, options.deadline)
            except TimeoutError:
                self._mark_terminal(attempts, "deadline")
                raise RequestTimeoutError(f"Deadline reached for {url}", url=url) from None
            timeout_s, bounded_by_deadline = self._attempt_timeout(options, url, attempts)

            try:
                response = await asyncio.wait_for(
                    self._send(method, url, request_headers, content),
                    timeout=timeout_s,
                )
            except asyncio.TimeoutError:
                if bounded_by_deadline:
                    self._mark_terminal(attempts, "deadline")
                    raise RequestTimeoutError(f"Deadline reached for {url}", url=url) from None
                last_error = RequestTimeoutError(
                    f"Request to {url} timed out after {timeout_s:.1f}s", url=url
                )
                logger.warning(f"[HTTP] Timeout {method} {url} (attempt {attempt + 1}/{policy.max_attempts})")
            except httpx.InvalidURL as exc:
                self._mark_terminal(attempts, "invalid url")
                raise NetworkError(f"Invalid URL {url!r}: {exc}", url=url) from exc
            except httpx.TimeoutException as exc:
                last_error = RequestTimeoutError(f"Request to {url} timed out: {exc}", url=url)
                logger.warning(f"[HTTP] Timeout {method} {url}: {exc}")
            except httpx.RequestError as exc:
                last_error = NetworkError(f"Request to {url} failed: {exc}", url=url)
                logger.warning(f"[HTTP] {method} {url} failed (attempt {attempt + 1}/{policy.max_attempts}): {exc}")
            else:
                if options.check_challenge and is_challenge_response(
                    response.status_code, response.headers, response.text()
                ):
                    if policy.is_last(attempt):
                        self._mark_terminal(attempts, "blocked")
                        logger.error(f"[HTTP] Challenge still served by {host} after {policy.max_attempts} attempts")
                        raise BlockedError(
                            f"Anti-bot challenge from {url}",
                            status_code=response.status_code,
                            url=url,
                        )
                    delay_before = policy.delay_for(attempt, blocked=True)
                    logger.warning(f"[HTTP] Challenge detected on {host}, retrying in {delay_before:.0f}s")
                    await self._backoff(delay_before, options, url, attempts)
                    continue

                if response.ok:
                    return response

                status_error = NetworkError(
                    f"HTTP {response.status_code} for {url}",
                    status_code=response.status_code,
                    url=url,
                )
                if policy.is_terminal_status(response.status_code):
                    self._mark_terminal(attempts, f"status {response.status_code}")
                    raise status_error
                last_error = status_error
                logger.warning(f"[HTTP] {method} {url} -> {response.status_code} (attempt {attempt + 1}/{policy.max_attempts})")

            if policy.is_last(attempt):
                break
            delay_before = policy.delay_for(attempt, blocked=False)
            await self._backoff(delay_before, options, url, attempts)

        self._mark_terminal(attempts, "exhausted")
        raise last_error or NetworkError(f"No attempt made for {url}", url=url)

    async def _send(
        self, method: str, url: str, headers: dict[str, str], content: bytes | None
    ) -> TransportResponse:
        response = await self._client.request(method, url, headers=headers, content=content)
        return TransportResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            url=str(response.url),
            content=response.content,
            encoding=response.encoding or "utf-8",
        )

    def _attempt_timeout(
        self, options: RequestOptions, url: str, attempts: list[RetryAttempt]
    ) -> tuple[float, bool]:
        timeout_s = (options.timeout_ms or self._timeout_ms) / 1000.0
        if options.deadline is None:
            return timeout_s, False
        remaining = options.deadline - self._clock.monotonic()
        if remaining <= 0:
            self._mark_terminal(attempts, "deadline")
            raise RequestTimeoutError(f"Deadline reached for {url}", url=url)
        if remaining < timeout_s:
            return remaining, True
        return timeout_s, False

    async def _backoff(
        self, delay: float, options: RequestOptions, url: str, attempts: list[RetryAttempt]
    ) -> None:
        if options.deadline is not None and self._clock.monotonic() + delay >= options.deadline:
            self._mark_terminal(attempts, "deadline")
            raise RequestTimeoutError(f"Deadline reached for {url}", url=url)
        await self._clock.sleep(delay)

    @staticmethod
    def _mark_terminal(attempts: list[RetryAttempt], reason: str) -> None:
        if attempts:
            attempts[-1] = replace(attempts[-1], terminal_reason=reason)


__all__ = [
    "RequestOptions",
    "Transport",
    "TransportResponse",
    "merge_headers",
]
