"""Bounded retry policy and response classification for Pocket calls."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import httpx

from ..config import SyncSettings

X_ERROR_CODE = "X-Error-Code"
RATE_LIMIT_HEADERS = (
    ("X-Limit-User-Remaining", "X-Limit-User-Reset"),
    ("X-Limit-Key-Remaining", "X-Limit-Key-Reset"),
)


class Outcome(str, Enum):
    """How a single API attempt ended."""

    SUCCESS = "success"
    TRANSIENT = "transient"
    REJECTED = "rejected"


@dataclass
class RetryContext:
    """State carried across the attempts of one call."""

    attempt: int = 1
    max_attempts: int = 1
    last_response: httpx.Response | None = None
    last_exception: Exception | None = None

    def record(self, response: httpx.Response | None, error: Exception | None) -> None:
        self.last_response = response
        self.last_exception = error


def _header_seconds(response: httpx.Response, name: str) -> float | None:
    value = response.headers.get(name)
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def rate_limit_exhausted(response: httpx.Response) -> bool:
    for remaining_header, _ in RATE_LIMIT_HEADERS:
        remaining = _header_seconds(response, remaining_header)
        if remaining is not None and remaining <= 0:
            return True
    return False


def retry_after(response: httpx.Response | None) -> float | None:
    """Server-requested wait before the next attempt, if any."""

    if response is None:
        return None
    delay = _header_seconds(response, "Retry-After")
    if delay is not None:
        return delay
    for remaining_header, reset_header in RATE_LIMIT_HEADERS:
        remaining = _header_seconds(response, remaining_header)
        if remaining is not None and remaining <= 0:
            return _header_seconds(response, reset_header)
    return None


def classify_response(response: httpx.Response | None, error: Exception | None = None) -> Outcome:
    if error is not None or response is None:
        return Outcome.TRANSIENT
    status = response.status_code
    if 200 <= status < 300 and X_ERROR_CODE not in response.headers:
        return Outcome.SUCCESS
    if status >= 500 or status == 429:
        return Outcome.TRANSIENT
    if status == 403 and rate_limit_exhausted(response):
        return Outcome.TRANSIENT
    return Outcome.REJECTED


def is_credentials_failure(response: httpx.Response) -> bool:
    return response.status_code in (401, 403) and not rate_limit_exhausted(response)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff over a fixed number of attempts."""

    max_attempts: int = 3
    backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            backoff_seconds=settings.backoff_seconds,
            max_backoff_seconds=settings.max_backoff_seconds,
        )

    def new_context(self) -> RetryContext:
        return RetryContext(attempt=1, max_attempts=self.max_attempts)

    def should_retry(self, context: RetryContext) -> bool:
        return context.attempt < context.max_attempts

    def delay(self, context: RetryContext) -> float:
        requested = retry_after(context.last_response)
        if requested is None:
            requested = self.backoff_seconds * (2 ** (context.attempt - 1))
        return min(requested, self.max_backoff_seconds)


__all__ = [
    "Outcome",
    "RetryContext",
    "RetryPolicy",
    "classify_response",
    "is_credentials_failure",
    "rate_limit_exhausted",
    "retry_after",
]
