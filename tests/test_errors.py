from __future__ import annotations

import asyncio

import httpx
import pytest

from inkora.utils.errors import (
    BlockedError,
    ErrorKind,
    NetworkError,
    ParseError,
    RequestTimeoutError,
    SourceError,
    SourceNotFoundError,
    UnsupportedCapabilityError,
    classify_exception,
    is_retryable,
)


@pytest.mark.parametrize(
    ("exc", "kind"),
    [
        (BlockedError("challenge", status_code=503), ErrorKind.BLOCKED),
        (NetworkError("gone", status_code=404), ErrorKind.NOT_FOUND),
        (NetworkError("slow down", status_code=429), ErrorKind.RATE_LIMIT),
        (NetworkError("boom", status_code=502), ErrorKind.SERVER),
        (NetworkError("forbidden", status_code=403), ErrorKind.BLOCKED),
        (NetworkError("refused"), ErrorKind.CONNECTION),
        (RequestTimeoutError("late"), ErrorKind.TIMEOUT),
        (asyncio.TimeoutError(), ErrorKind.TIMEOUT),
        (httpx.ConnectError("refused"), ErrorKind.CONNECTION),
        (ParseError("bad json"), ErrorKind.PARSE),
        (UnsupportedCapabilityError("xbato_com", "latest"), ErrorKind.UNSUPPORTED),
        (SourceNotFoundError("42"), ErrorKind.NOT_FOUND),
        (RuntimeError("Cloudflare says no"), ErrorKind.BLOCKED),
        (RuntimeError("connection timed out"), ErrorKind.TIMEOUT),
        (ValueError("something else"), ErrorKind.UNKNOWN),
    ],
)
def test_classify_exception(exc, kind):
    assert classify_exception(exc) is kind


def test_retryable_kinds():
    assert is_retryable(NetworkError("boom", status_code=500))
    assert is_retryable(ErrorKind.RATE_LIMIT)
    assert not is_retryable(NetworkError("gone", status_code=404))
    assert not is_retryable(ParseError("bad"))
    assert not is_retryable(ErrorKind.UNSUPPORTED)


def test_hierarchy():
    timeout = RequestTimeoutError("late", url="https://bato.to/")
    assert isinstance(timeout, SourceError)
    assert isinstance(timeout, TimeoutError)
    assert timeout.url == "https://bato.to/"

    blocked = BlockedError("challenge", status_code=403, url="https://bato.to/")
    assert isinstance(blocked, NetworkError)
    assert blocked.status_code == 403

    missing = SourceNotFoundError("42")
    assert isinstance(missing, LookupError)
    assert missing.source_id == "42"

    unsupported = UnsupportedCapabilityError("xbato_com", "latest")
    assert "latest" in str(unsupported)
