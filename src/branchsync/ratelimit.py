"""Rate-limited execution of remote calls.

Every remote call goes through :meth:`RateLimitedExecutor.execute`, which
paces calls, waits out exhausted quotas and retries rate-limit and
transient failures with exponential backoff.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TypeVar

from .exceptions import RateLimitExceeded, TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SECONDARY_LIMIT_FLOOR = 60.0


@dataclass(frozen=True)
class RateLimitInfo:
    """Rate-limit metadata carried by one response."""

    remaining: int | None = None
    reset_at: float | None = None
    retry_after: float | None = None
    resource: str | None = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> RateLimitInfo | None:
        """Parse ``x-ratelimit-*`` and ``retry-after`` headers.

        Returns None when the response carries none of them.
        """
        remaining = _int_header(headers, "x-ratelimit-remaining")
        reset_at = _int_header(headers, "x-ratelimit-reset")
        retry_after = _int_header(headers, "retry-after")
        resource = headers.get("x-ratelimit-resource")
        if remaining is None and reset_at is None and retry_after is None:
            return None
        return cls(
            remaining=remaining,
            reset_at=float(reset_at) if reset_at is not None else None,
            retry_after=float(retry_after) if retry_after is not None else None,
            resource=resource,
        )


def _int_header(headers: Mapping[str, str], name: str) -> int | None:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


@dataclass
class EndpointQuota:
    remaining: int | None = None
    reset_at: float | None = None
    retry_after: float | None = None
    observed_at: float = 0.0

    @property
    def retry_until(self) -> float | None:
        if self.retry_after is None:
            return None
        return self.observed_at + self.retry_after


class RateLimitState:
    """Quota counters per remote endpoint.

    Process-local and thread-safe.  Pass one instance to several executors
    to share a budget between them.
    """

    def __init__(self):
        self._quotas: dict[str, EndpointQuota] = {}
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"RateLimitState(endpoints={sorted(self._quotas)!r})"

    def get(self, endpoint: str) -> EndpointQuota:
        """Return a copy of the counters for *endpoint*."""
        with self._lock:
            quota = self._quotas.get(endpoint)
            if quota is None:
                return EndpointQuota()
            return EndpointQuota(quota.remaining, quota.reset_at, quota.retry_after, quota.observed_at)

    def record(self, endpoint: str, info: RateLimitInfo, now: float) -> None:
        """Merge the metadata of one response into the counters."""
        with self._lock:
            quota = self._quotas.setdefault(endpoint, EndpointQuota())
            if info.remaining is not None:
                quota.remaining = info.remaining
            if info.reset_at is not None:
                quota.reset_at = info.reset_at
            quota.retry_after = info.retry_after
            quota.observed_at = now

    def clear(self, endpoint: str) -> None:
        with self._lock:
            self._quotas.pop(endpoint, None)


class RateLimitedExecutor:
    """Runs remote calls with pacing, quota awareness and bounded retries.

    Args:
        state: Shared :class:`RateLimitState`; a private one by default.
        min_interval: Minimum spacing in seconds between two calls.
        max_retries: Retries after the first attempt before giving up.
        base_delay: First backoff delay in seconds; doubles per attempt.
        max_delay: Cap on a single backoff delay.
        sleep: Sleep function (injectable for tests).
        clock: Wall clock returning epoch seconds (injectable for tests).
    """

    def __init__(
        self,
        state: RateLimitState | None = None,
        *,
        min_interval: float = 0.1,
        max_retries: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.state = state if state is not None else RateLimitState()
        self.min_interval = min_interval
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._clock = clock
        self._last_call: float | None = None
        self._pace_lock = threading.Lock()

    def backoff(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def execute(self, call: Callable[[], T], *, operation: str = "request", endpoint: str = "default") -> T:
        """Run *call*, retrying rate-limit and transient failures.

        Any other exception raised by *call* propagates immediately.  After
        ``max_retries`` retries the last error is raised.
        """
        attempt = 0
        while True:
            self._wait_for_quota(endpoint, operation)
            self._pace()
            try:
                result = call()
            except RateLimitExceeded as exc:
                if exc.info is not None:
                    self.state.record(endpoint, exc.info, self._clock())
                if attempt >= self.max_retries:
                    logger.error("%s: rate limit retries exhausted after %d attempts", operation, attempt + 1)
                    raise
                delay = self._rate_limit_delay(exc, attempt)
                kind = "secondary" if exc.secondary else "primary"
                logger.warning("%s: %s rate limit hit, retrying in %.1fs (attempt %d/%d)",
                               operation, kind, delay, attempt + 1, self.max_retries)
            except TransientError as exc:
                if exc.info is not None:
                    self.state.record(endpoint, exc.info, self._clock())
                if attempt >= self.max_retries:
                    logger.error("%s: giving up after %d attempts: %s", operation, attempt + 1, exc)
                    raise
                delay = self.backoff(attempt)
                logger.warning("%s: %s, retrying in %.1fs (attempt %d/%d)",
                               operation, exc, delay, attempt + 1, self.max_retries)
            else:
                headers = getattr(result, "headers", None)
                if headers is not None:
                    info = RateLimitInfo.from_headers(headers)
                    if info is not None:
                        self.state.record(endpoint, info, self._clock())
                return result
            self._sleep(delay)
            attempt += 1

    # ------------------------------------------------------------------

    def _rate_limit_delay(self, exc: RateLimitExceeded, attempt: int) -> float:
        info = exc.info or RateLimitInfo()
        if exc.secondary:
            return max(info.retry_after or 0.0, SECONDARY_LIMIT_FLOOR)
        backoff = self.backoff(attempt)
        if info.reset_at is None:
            return backoff
        return max(info.reset_at - self._clock(), backoff)

    def _wait_for_quota(self, endpoint: str, operation: str) -> None:
        quota = self.state.get(endpoint)
        now = self._clock()
        wait = 0.0
        if quota.remaining == 0 and quota.reset_at is not None and now < quota.reset_at:
            wait = quota.reset_at - now
        retry_until = quota.retry_until
        if retry_until is not None and now < retry_until:
            wait = max(wait, retry_until - now)
        if wait > 0:
            logger.info("%s: quota exhausted for %s, waiting %.1fs", operation, endpoint, wait)
            self._sleep(wait)
            self.state.clear(endpoint)

    def _pace(self) -> None:
        with self._pace_lock:
            now = self._clock()
            if self._last_call is not None and self.min_interval > 0:
                wait = self._last_call + self.min_interval - now
                if wait > 0:
                    self._sleep(wait)
                    now = self._clock()
            self._last_call = now
