"""Retry classification and exponential backoff policy."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

import httpx

if TYPE_CHECKING:
    from .config import Settings


class ErrorKind(str, Enum):
    """Classification of a failed attempt."""

    TIMEOUT = "timeout"
    CONNECTION_RESET = "connection_reset"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    MALFORMED_RESPONSE = "malformed_response"

    @property
    def is_transient(self) -> bool:
        return self in _TRANSIENT_KINDS


_TRANSIENT_KINDS = frozenset(
    {
        ErrorKind.TIMEOUT,
        ErrorKind.CONNECTION_RESET,
        ErrorKind.RATE_LIMITED,
        ErrorKind.SERVER_ERROR,
    }
)

# Failures that happen before the request left the client.
_PRE_SEND_EXCEPTIONS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


def classify_status(status_code: int) -> Optional[ErrorKind]:
    """Return the error kind for an HTTP status, or ``None`` when it succeeded."""

    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code >= 500:
        return ErrorKind.SERVER_ERROR
    if status_code >= 400:
        return ErrorKind.CLIENT_ERROR
    return None


def classify_exception(exc: BaseException) -> ErrorKind:
    """Map an ``httpx`` exception onto an :class:`ErrorKind`."""

    if isinstance(exc, httpx.TimeoutException):
        return ErrorKind.TIMEOUT
    if isinstance(exc, (httpx.NetworkError, httpx.RemoteProtocolError)):
        return ErrorKind.CONNECTION_RESET
    if isinstance(exc, (httpx.DecodingError, ValueError)):
        return ErrorKind.MALFORMED_RESPONSE
    return ErrorKind.CLIENT_ERROR


def is_safe_to_retry(exc: BaseException, *, idempotent: bool) -> bool:
    """Return whether replaying the request cannot duplicate upstream work.

    Connection failures happen before any bytes are sent and are always safe.
    Anything that may have reached the origin is only replayed when the
    request carries an idempotency guarantee.
    """

    if isinstance(exc, _PRE_SEND_EXCEPTIONS):
        return True
    return idempotent


def parse_retry_after(value: Optional[str], *, now: Optional[datetime] = None) -> Optional[float]:
    """Parse a ``Retry-After`` header given as seconds or an HTTP date."""

    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        moment = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    return max(0.0, (moment - current).total_seconds())


@dataclass(frozen=True)
class RetryDecision:
    retry: bool
    delay: float = 0.0


@dataclass
class RetryState:
    """Per-request bookkeeping between attempts."""

    attempt: int = 0
    last_error: Optional[ErrorKind] = None
    next_delay: float = 0.0

    def record(self, kind: ErrorKind, decision: RetryDecision) -> None:
        self.last_error = kind
        self.next_delay = decision.delay if decision.retry else 0.0


@dataclass(frozen=True)
class RetryPolicy:
    """Decide whether and how long to wait before retrying a failed attempt.

    ``attempt`` is the number of attempts already made, so the first retry is
    computed with exponent ``0``. Retrying stops once ``attempt`` reaches
    ``max_attempts``; with ``max_attempts=3`` a request is tried three times.
    """

    max_attempts: int = 3
    initial_delay: float = 0.5
    backoff_multiplier: float = 2.0
    max_delay: float = 8.0
    jitter: bool = True
    enabled: bool = True
    rng: random.Random = field(
        default_factory=random.Random, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be non-negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")

    @classmethod
    def from_settings(
        cls, settings: "Settings", *, rng: Optional[random.Random] = None
    ) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay,
            backoff_multiplier=settings.retry_backoff_multiplier,
            max_delay=settings.retry_max_delay,
            jitter=settings.retry_jitter,
            enabled=settings.retry_enabled,
            rng=rng or random.Random(),
        )

    def compute_delay(self, attempt: int, *, retry_after: Optional[float] = None) -> float:
        exponent = max(0, attempt - 1)
        delay = min(self.max_delay, self.initial_delay * (self.backoff_multiplier**exponent))
        if self.jitter:
            delay *= self.rng.uniform(0.5, 1.5)
        if retry_after is not None:
            delay = max(delay, retry_after)
        return min(delay, self.max_delay)

    def next_delay(
        self,
        attempt: int,
        kind: ErrorKind,
        *,
        retry_after: Optional[float] = None,
    ) -> RetryDecision:
        if not self.enabled or not kind.is_transient or attempt >= self.max_attempts:
            return RetryDecision(retry=False)
        return RetryDecision(
            retry=True, delay=self.compute_delay(attempt, retry_after=retry_after)
        )


__all__ = [
    "ErrorKind",
    "RetryDecision",
    "RetryPolicy",
    "RetryState",
    "classify_exception",
    "classify_status",
    "is_safe_to_retry",
    "parse_retry_after",
]
