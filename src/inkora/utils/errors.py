"""Error taxonomy surfaced by the acquisition core."""

from __future__ import annotations

import asyncio
import builtins
from enum import Enum

import httpx


class SourceError(Exception):
    """Base class for every failure raised to callers of the core."""


class NetworkError(SourceError):
    """Connection failure or a non-success HTTP status."""

    def __init__(self, message: str, *, status_code: int | None = None, url: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class BlockedError(NetworkError):
    """Anti-bot challenge still present after every retry."""


class RequestTimeoutError(SourceError, builtins.TimeoutError):
    """A request attempt or the caller deadline ran out of time."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class ParseError(SourceError):
    """A response body could not be decoded into the expected shape."""


class UnsupportedCapabilityError(SourceError):
    """The backend behind a source does not implement the requested capability."""

    def __init__(self, source_id: str, capability: str) -> None:
        super().__init__(f"Source {source_id!r} does not support {capability!r}")
        self.source_id = source_id
        self.capability = capability


class SourceNotFoundError(SourceError, LookupError):
    """No source is registered under the requested id."""

    def __init__(self, source_id: str) -> None:
        super().__init__(f"Source not found: {source_id}")
        self.source_id = source_id


class ErrorKind(str, Enum):
    """Coarse categories callers use to decide how to present a failure."""

    TIMEOUT = "timeout"
    BLOCKED = "blocked"
    NOT_FOUND = "not_found"
    RATE_LIMIT = "rate_limit"
    CONNECTION = "connection"
    SERVER = "server"
    PARSE = "parse"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"


_RETRYABLE_KINDS = {
    ErrorKind.TIMEOUT,
    ErrorKind.BLOCKED,
    ErrorKind.RATE_LIMIT,
    ErrorKind.CONNECTION,
    ErrorKind.SERVER,
}


def is_retryable(exc: BaseException | ErrorKind) -> bool:
    """Return ``True`` if a later retry of the same request might succeed."""

    kind = exc if isinstance(exc, ErrorKind) else classify_exception(exc)
    return kind in _RETRYABLE_KINDS


def classify_exception(exc: BaseException) -> ErrorKind:
    """Best-effort mapping from arbitrary exceptions to :class:`ErrorKind`."""

    if isinstance(exc, BlockedError):
        return ErrorKind.BLOCKED
    if isinstance(exc, UnsupportedCapabilityError):
        return ErrorKind.UNSUPPORTED
    if isinstance(exc, SourceNotFoundError):
        return ErrorKind.NOT_FOUND
    if isinstance(exc, ParseError):
        return ErrorKind.PARSE

    status = _extract_status_code(exc)
    if status is not None:
        if status == 404:
            return ErrorKind.NOT_FOUND
        if status in (401, 403):
            return ErrorKind.BLOCKED
        if status == 429:
            return ErrorKind.RATE_LIMIT
        if 500 <= status < 600:
            return ErrorKind.SERVER

    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return ErrorKind.TIMEOUT
    if isinstance(exc, (NetworkError, httpx.RequestError)):
        return ErrorKind.CONNECTION

    message = str(exc).lower()
    if any(keyword in message for keyword in ("captcha", "cloudflare")):
        return ErrorKind.BLOCKED
    if "too many requests" in message:
        return ErrorKind.RATE_LIMIT
    if "timeout" in message or "timed out" in message:
        return ErrorKind.TIMEOUT

    return ErrorKind.UNKNOWN


def _extract_status_code(exc: BaseException) -> int | None:
    if isinstance(exc, NetworkError):
        return exc.status_code
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    return None


__all__ = [
    "BlockedError",
    "ErrorKind",
    "NetworkError",
    "ParseError",
    "RequestTimeoutError",
    "SourceError",
    "SourceNotFoundError",
    "UnsupportedCapabilityError",
    "classify_exception",
    "is_retryable",
]
