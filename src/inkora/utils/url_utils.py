"""URL helpers for mirror-relative links."""

from __future__ import annotations

import base64
import re
from urllib.parse import urljoin, urlparse

_SEGMENT_AFTER = "/{marker}/([^/?#\"']+)"


def absolutize(url: str | None, base_url: str | None) -> str | None:
    """Resolve ``url`` against the active mirror.

    Protocol-relative links get ``https:``; root and path relative links are
    joined to ``base_url``. Absolute links pass through untouched.
    """

    if not url:
        return None
    candidate = url.strip()
    if not candidate or candidate.startswith(("data:", "javascript:")):
        return None
    if candidate.startswith("//"):
        return f"https:{candidate}"
    if urlparse(candidate).scheme in ("http", "https"):
        return candidate
    if not base_url:
        return candidate
    base = base_url if base_url.endswith("/") else f"{base_url}/"
    return urljoin(base, candidate)


def segment_after(href: str | None, *markers: str) -> str | None:
    """Return the path segment following the first of ``markers`` found in ``href``."""

    if not href:
        return None
    for marker in markers:
        match = re.search(_SEGMENT_AFTER.format(marker=re.escape(marker)), href, re.IGNORECASE)
        if match:
            return match.group(1)
    return None


def host_of(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


def same_host(first: str, second: str) -> bool:
    left, right = host_of(first), host_of(second)
    if left.startswith("www."):
        left = left[4:]
    if right.startswith("www."):
        right = right[4:]
    return bool(left) and left == right


def encode_url_id(url: str) -> str:
    """Base64 id used by APIs that key content by its source URL."""

    return base64.b64encode(url.encode("utf-8")).decode("ascii")


def decode_url_id(identifier: str) -> str | None:
    padded = identifier + "=" * (-len(identifier) % 4)
    try:
        return base64.b64decode(padded, validate=False).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return None


__all__ = [
    "absolutize",
    "decode_url_id",
    "encode_url_id",
    "host_of",
    "same_host",
    "segment_after",
]
