"""
Token bucket rate limiter.

Matches the provider's published request quota (200 requests per minute by
default). Refill is lazy: tokens are topped up at the start of every access
from the time elapsed since the previous access, so no background timer
thread is needed and refill stays precise whatever the access cadence.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class RateLimitStatus:
    """Read-only snapshot of a rate limiter."""
    tokens: float
    max_tokens: float
    refill_rate: float


class TokenBucketRateLimiter:
    """
    Thread-safe token bucket.

    The bucket starts full. `try_acquire` never blocks: callers that cannot
    get a token decide for themselves whether to wait (see `wait_time`) or
    to go ahead anyway.

    Example:
        >>> limiter = TokenBucketRateLimiter.from_quota(200, 60.0)
        >>> if not limiter.try_acquire():
        ...     time.sleep(limiter.wait_time())
    """

    def __init__(
        self,
        max_tokens: float,
        refill_rate: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize rate limiter.

        Args:
            max_tokens: Bucket capacity (burst size)
            refill_rate: Tokens added per second
            clock: Monotonic time source in seconds
        """
        if max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        if refill_rate <= 0:
            raise ValueError("refill_rate must be positive")

        self._max_tokens = float(max_tokens)
        self._refill_rate = float(refill_rate)
        self._clock = clock
        self._tokens = float(max_tokens)
        self._last_refill = clock()
        self._lock = threading.Lock()

    @classmethod
    def from_quota(
        cls,
        requests: int,
        period: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> "TokenBucketRateLimiter":
        """Build a limiter allowing `requests` per `period` seconds."""
        return cls(max_tokens=requests, refill_rate=requests / period, clock=clock)

    @property
    def max_tokens(self) -> float:
        return self._max_tokens

    @property
    def refill_rate(self) -> float:
        return self._refill_rate

    def _refill(self) -> None:
        # Caller holds self._lock.
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self._max_tokens, self._tokens + elapsed * self._refill_rate)
        self._last_refill = now

    def try_acquire(self, cost: float = 1.0) -> bool:
        """
        Take `cost` tokens if available.

        Returns:
            True if the tokens were deducted, False (with no change) otherwise
        """
        with self._lock:
            self._refill()
            if self._tokens >= cost:
                self._tokens -= cost
                return True
            return False

    def wait_time(self, cost: float = 1.0) -> float:
        """
        Seconds until `cost` tokens will be available.

        Returns 0.0 when enough tokens exist already. Does not deduct.
        """
        with self._lock:
            self._refill()
            if self._tokens >= cost:
                return 0.0
            return (cost - self._tokens) / self._refill_rate

    def status(self) -> RateLimitStatus:
        """Snapshot of the bucket after a refill."""
        with self._lock:
            self._refill()
            return RateLimitStatus(
                tokens=self._tokens,
                max_tokens=self._max_tokens,
                refill_rate=self._refill_rate,
            )
