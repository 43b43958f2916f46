"""Detection of anti-bot interstitials served instead of real content."""

from __future__ import annotations

import re
from collections.abc import Mapping

CHALLENGE_STATUS_CODES = frozenset({403, 503})

CHALLENGE_MARKERS: tuple[str, ...] = (
    "cf-browser-verification",
    "window._cf_chl_opt",
    "challenge-platform",
    "cf_clearance",
    "cloudflare",
)

_TURNSTILE_PATTERNS = (
    re.compile(r"turnstile\.render", re.IGNORECASE),
    re.compile(r"cf-challenge-running", re.IGNORECASE),
)


def _header(headers: Mapping[str, str], name: str) -> str:
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value or ""
    return ""


def is_cloudflare_server(headers: Mapping[str, str]) -> bool:
    return "cloudflare" in _header(headers, "server").lower()


def has_challenge_marker(text: str) -> bool:
    """Return ``True`` if ``text`` contains a known challenge page marker."""

    if not text:
        return False
    lower_text = text.lower()
    if any(marker in lower_text for marker in CHALLENGE_MARKERS):
        return True
    return any(pattern.search(text) for pattern in _TURNSTILE_PATTERNS)


def is_challenge_response(status_code: int, headers: Mapping[str, str], body: str) -> bool:
    """Return ``True`` when a response is a Cloudflare challenge, not content.

    All three signals must agree: a 403/503 status, a ``Server`` header naming
    Cloudflare and a challenge marker in the body. A plain 503 from an
    overloaded origin is an ordinary failure.
    """

    if status_code not in CHALLENGE_STATUS_CODES:
        return False
    if not is_cloudflare_server(headers):
        return False
    return has_challenge_marker(body)


__all__ = [
    "CHALLENGE_MARKERS",
    "has_challenge_marker",
    "is_challenge_response",
    "is_cloudflare_server",
]
