"""Retry bookkeeping for the transport layer."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from inkora.config.config import DEFAULT_RETRY_ATTEMPTS


def exponential_backoff(attempt: int) -> float:
    """``2 ** attempt`` seconds: 1, 2, 4 ... for ordinary failures."""

    return float(2**attempt)


def challenge_backoff(attempt: int) -> float:
    """``2 ** (attempt + 1)`` seconds: 2, 4, 8 ... while a challenge page is served."""

    return float(2 ** (attempt + 1))


@dataclass(slots=True, frozen=True)
class RetryAttempt:
    attempt_number: int
    delay_before_ms: int
    terminal_reason: str | None = None


@dataclass(slots=True)
class RetryPolicy:
    """How many attempts a request gets and how long to wait between them.

    ``attempt`` passed to the backoff functions is zero based, so the first
    retry after a challenge waits ``challenge_backoff(0) == 2`` seconds.
    """

    max_attempts: int = DEFAULT_RETRY_ATTEMPTS
    backoff: Callable[[int], float] = field(default=exponential_backoff)
    challenge_backoff: Callable[[int], float] = field(default=challenge_backoff)
    terminal_statuses: frozenset[int] = frozenset({404})

    def with_attempts(self, max_attempts: int | None) -> RetryPolicy:
        if max_attempts is None or max_attempts == self.max_attempts:
            return self
        return RetryPolicy(
            max_attempts=max(int(max_attempts), 1),
            backoff=self.backoff,
            challenge_backoff=self.challenge_backoff,
            terminal_statuses=self.terminal_statuses,
        )

    def is_last(self, attempt: int) -> bool:
        return attempt >= self.max_attempts - 1

    def delay_for(self, attempt: int, *, blocked: bool) -> float:
        fn = self.challenge_backoff if blocked else self.backoff
        return max(float(fn(attempt)), 0.0)

    def is_terminal_status(self, status_code: int) -> bool:
        return status_code in self.terminal_statuses


__all__ = [
    "RetryAttempt",
    "RetryPolicy",
    "challenge_backoff",
    "exponential_backoff",
]
