"""
Retry engine with exponential backoff, rate limiting and circuit breaking.

One engine wraps every logical call to the broker API:

    circuit breaker gate -> (rate limit gate -> operation -> classify ->
    backoff sleep)* -> circuit breaker update

The engine keeps no per-call state, so a single instance can be shared by
all worker threads. The rate limiter and circuit breaker it holds are the
only shared mutable state, and both are lock-guarded.
"""

import asyncio
import functools
import inspect
import random
import time
from dataclasses import dataclass
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ...domain.exceptions import (
    CircuitBreakerError,
    OperationCancelledError,
    RateLimitExceededError,
    TransportOwnershipError,
    classify_error,
)
from ..logging import TradewireLogger, logging_context
from .backoff import BackoffCalculator
from .cancellation import CancellationToken
from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerStatus
from .rate_limiter import RateLimitStatus, TokenBucketRateLimiter

T = TypeVar("T")

# Propagated as-is: neither retried nor counted against the circuit breaker.
_UNCOUNTED_ERRORS = (OperationCancelledError, TransportOwnershipError)

# Slice length for cancellable async sleeps.
_ASYNC_SLEEP_SLICE = 0.05


@dataclass(frozen=True)
class RetryConfig:
    """
    Configuration for retry behavior. Immutable per engine.

    Attributes:
        max_attempts: Total invocations allowed per execute call
        base_delay: Delay in seconds before the first retry
        max_delay: Cap on the exponential delay in seconds
        backoff_multiplier: Growth factor between retries
        jitter_fraction: Total jitter band (0.1 = +/-5%)
        circuit_enabled: Attach a circuit breaker to the engine
        circuit_failure_threshold: Consecutive failures that open the circuit
        circuit_recovery_timeout: Seconds before an open circuit is probed
        circuit_success_threshold: HALF_OPEN successes that close the circuit
        rate_limit_requests: Requests allowed per rate limit period
        rate_limit_period: Rate limit window in seconds
        rate_limit_max_wait: Longest rate limit wait worth sleeping for
    """
    max_attempts: int = 5
    base_delay: float = 0.1
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter_fraction: float = 0.1
    circuit_enabled: bool = True
    circuit_failure_threshold: int = 10
    circuit_recovery_timeout: float = 60.0
    circuit_success_threshold: int = 3
    rate_limit_requests: int = 200
    rate_limit_period: float = 60.0
    rate_limit_max_wait: float = 5.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.backoff_multiplier <= 1.0:
            raise ValueError("backoff_multiplier must be > 1.0")
        if not 0.0 <= self.jitter_fraction <= 1.0:
            raise ValueError("jitter_fraction must be between 0.0 and 1.0")
        if self.circuit_failure_threshold < 1:
            raise ValueError("circuit_failure_threshold must be >= 1")
        if self.circuit_recovery_timeout < 0:
            raise ValueError("circuit_recovery_timeout must be >= 0")
        if self.circuit_success_threshold < 1:
            raise ValueError("circuit_success_threshold must be >= 1")
        if self.rate_limit_requests < 1:
            raise ValueError("rate_limit_requests must be >= 1")
        if self.rate_limit_period <= 0:
            raise ValueError("rate_limit_period must be positive")
        if self.rate_limit_max_wait < 0:
            raise ValueError("rate_limit_max_wait must be >= 0")

    def circuit_breaker_config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            failure_threshold=self.circuit_failure_threshold,
            success_threshold=self.circuit_success_threshold,
            recovery_timeout=self.circuit_recovery_timeout,
        )


def _operation_name(operation: Callable) -> str:
    if isinstance(operation, functools.partial):
        operation = operation.func
    return getattr(operation, "__name__", type(operation).__name__)


class RetryEngine:
    """
    Runs operations with retries, rate limiting and circuit breaking.

    Operations are zero-argument callables that return a value or raise.
    Errors are classified with `classify_error`; only retryable ones are
    attempted again, and the caller always sees the original exception.

    Example:
        >>> engine = RetryEngine(RetryConfig(max_attempts=3))
        >>> account = engine.execute(lambda: transport.execute(get_account))
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        name: str = "broker_api",
        rate_limiter: Optional[TokenBucketRateLimiter] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        sleep: Callable[[float], None] = time.sleep,
        async_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        random_source: Callable[[], float] = random.random,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize retry engine.

        Args:
            config: Retry configuration (uses defaults if None)
            name: Name of the protected service (for logging)
            rate_limiter: Shared limiter; built from the config if None
            circuit_breaker: Shared breaker; built from the config if None
                and circuit_enabled. Ignored when circuit_enabled is False.
            sleep: Blocking sleep used by `execute`
            async_sleep: Coroutine sleep used by `execute_async`
            random_source: Uniform [0, 1) source for jitter
            clock: Monotonic time source for the limiter and breaker
        """
        self.config = config if config else RetryConfig()
        self.name = name

        self.rate_limiter = rate_limiter or TokenBucketRateLimiter.from_quota(
            self.config.rate_limit_requests,
            self.config.rate_limit_period,
            clock=clock,
        )

        self.circuit_breaker: Optional[CircuitBreaker] = None
        if self.config.circuit_enabled:
            self.circuit_breaker = circuit_breaker or CircuitBreaker(
                name=name,
                config=self.config.circuit_breaker_config(),
                clock=clock,
            )

        self.backoff = BackoffCalculator(self.config, random_source=random_source)
        self._sleep = sleep
        self._async_sleep = async_sleep

        self.logger = TradewireLogger.get_instance()

    # -- gates ---------------------------------------------------------------

    def _admit(self, name: str) -> None:
        if self.circuit_breaker is None or self.circuit_breaker.can_execute():
            return

        with logging_context(operation="circuit_breaker_blocked"):
            self.logger.warning(
                f"Failing fast, circuit open for {self.name}",
                extra={"function": name, "circuit_breaker": self.name}
            )
        raise CircuitBreakerError(
            f"Circuit breaker is OPEN for {self.name}. Not attempting {name}."
        )

    def _rate_limit_wait(self) -> float:
        """
        Take a token, or return how long to wait for one.

        Returns 0.0 when a token was taken or the wait is too long to be
        worth it (the call then proceeds without a token).
        """
        if self.rate_limiter.try_acquire(1.0):
            return 0.0

        wait = self.rate_limiter.wait_time(1.0)
        if 0.0 < wait < self.config.rate_limit_max_wait:
            self.logger.debug(
                f"Rate limited, waiting {wait:.3f}s for a token",
                extra={"wait_seconds": round(wait, 3)}
            )
            return wait

        if wait > 0.0:
            self.logger.warning(
                "Rate limit wait exceeds ceiling, proceeding without a token",
                extra={
                    "wait_seconds": round(wait, 3),
                    "max_wait_seconds": self.config.rate_limit_max_wait
                }
            )
        return 0.0

    # -- outcome handling ----------------------------------------------------

    def _retry_delay(self, error: BaseException, attempt: int) -> float:
        delay = self.backoff.delay(attempt)
        if isinstance(error, RateLimitExceededError) and error.retry_after:
            delay = max(delay, min(error.retry_after, self.config.max_delay))
        return delay

    def _on_success(self, attempt: int, name: str) -> None:
        if self.circuit_breaker is not None:
            self.circuit_breaker.record_success()

        if attempt > 1:
            with logging_context(operation="retry_success"):
                self.logger.info(
                    f"Retry successful for {name}",
                    extra={"function": name, "successful_attempt": attempt}
                )

    def _on_failure(self, error: Exception, attempt: int, name: str) -> Optional[float]:
        """
        Decide what to do after a failed attempt.

        Returns:
            Seconds to sleep before the next attempt, or None when the error
            must be raised (the circuit breaker has then been updated)
        """
        classified = classify_error(error)

        if not classified.retryable:
            if self.circuit_breaker is not None:
                self.circuit_breaker.record_failure(error)
            with logging_context(operation="retry_non_retryable"):
                self.logger.error(
                    f"Non-retryable exception in {name}",
                    exc_info=True,
                    extra={
                        "function": name,
                        "attempt": attempt,
                        "error_type": type(error).__name__,
                        "classified_as": type(classified).__name__
                    }
                )
            return None

        if attempt >= self.config.max_attempts:
            if self.circuit_breaker is not None:
                self.circuit_breaker.record_failure(error)
            with logging_context(operation="retry_exhausted"):
                self.logger.error(
                    f"All retry attempts exhausted for {name}",
                    exc_info=True,
                    extra={
                        "function": name,
                        "total_attempts": attempt,
                        "error_type": type(error).__name__,
                        "error_message": str(error)
                    }
                )
            return None

        delay = self._retry_delay(error, attempt)
        with logging_context(operation="retry_backoff"):
            self.logger.warning(
                f"Retrying {name} (attempt {attempt + 1}/{self.config.max_attempts})",
                extra={
                    "function": name,
                    "attempt": attempt + 1,
                    "max_attempts": self.config.max_attempts,
                    "delay_seconds": round(delay, 3),
                    "last_error": type(error).__name__
                }
            )
        return delay

    # -- execution -----------------------------------------------------------

    def _pause(self, seconds: float, cancel_token: Optional[CancellationToken]) -> None:
        if cancel_token is not None:
            cancel_token.sleep(seconds)
        else:
            self._sleep(seconds)

    async def _pause_async(self, seconds: float, cancel_token: Optional[CancellationToken]) -> None:
        if cancel_token is None:
            await self._async_sleep(seconds)
            return

        # Count down by the slices handed to the injected sleep, not wall time.
        remaining = seconds
        while remaining > 0:
            cancel_token.raise_if_cancelled()
            step = min(remaining, _ASYNC_SLEEP_SLICE)
            await self._async_sleep(step)
            remaining -= step
        cancel_token.raise_if_cancelled()

    def execute(
        self,
        operation: Callable[[], T],
        cancel_token: Optional[CancellationToken] = None,
    ) -> T:
        """
        Run `operation` with retries.

        Args:
            operation: Zero-argument callable; raises on failure
            cancel_token: Optional token checked before each attempt and
                during every sleep

        Returns:
            The operation's result

        Raises:
            CircuitBreakerError: Circuit open; operation not invoked
            OperationCancelledError: Token fired
            Exception: The operation's last error, unchanged
        """
        name = _operation_name(operation)
        self._admit(name)

        for attempt in range(1, self.config.max_attempts + 1):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            wait = self._rate_limit_wait()
            if wait:
                self._pause(wait, cancel_token)
                self.rate_limiter.try_acquire(1.0)

            try:
                result = operation()
            except _UNCOUNTED_ERRORS:
                raise
            except Exception as e:
                delay = self._on_failure(e, attempt, name)
                if delay is None:
                    raise
                self._pause(delay, cancel_token)
                continue

            self._on_success(attempt, name)
            return result

        raise RuntimeError("Unexpected retry state")

    async def execute_async(
        self,
        operation: Callable[[], Awaitable[T]],
        cancel_token: Optional[CancellationToken] = None,
    ) -> T:
        """
        Async variant of `execute` for coroutine functions.

        Sleeps with the configured async sleep, so waiting never blocks the
        event loop. Each call of `operation` must return a fresh awaitable.
        """
        name = _operation_name(operation)
        self._admit(name)

        for attempt in range(1, self.config.max_attempts + 1):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            wait = self._rate_limit_wait()
            if wait:
                await self._pause_async(wait, cancel_token)
                self.rate_limiter.try_acquire(1.0)

            try:
                result = await operation()
            except _UNCOUNTED_ERRORS:
                raise
            except Exception as e:
                delay = self._on_failure(e, attempt, name)
                if delay is None:
                    raise
                await self._pause_async(delay, cancel_token)
                continue

            self._on_success(attempt, name)
            return result

        raise RuntimeError("Unexpected retry state")

    def retrying(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """
        Decorator running every call of `func` through this engine.

        Works for both plain and coroutine functions.

        Example:
            >>> @engine.retrying
            ... def get_clock(transport):
            ...     return transport.execute(HttpRequest("GET", "/v2/clock"))
        """
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs) -> Any:
                return await self.execute_async(functools.partial(func, *args, **kwargs))

            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            return self.execute(functools.partial(func, *args, **kwargs))

        return wrapper

    # -- status --------------------------------------------------------------

    def get_rate_limit_status(self) -> RateLimitStatus:
        return self.rate_limiter.status()

    def get_circuit_breaker_status(self) -> Optional[CircuitBreakerStatus]:
        """Breaker snapshot, or None when the engine runs without one."""
        if self.circuit_breaker is None:
            return None
        return self.circuit_breaker.status()
