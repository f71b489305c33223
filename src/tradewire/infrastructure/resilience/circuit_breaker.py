"""
Circuit Breaker pattern implementation.

Stops calls to a failing broker API after a run of consecutive failures,
then lets probe calls through once the recovery timeout has passed.
State is evaluated lazily: there is no timer thread, the OPEN -> HALF_OPEN
transition happens inside `can_execute`.
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from functools import wraps
from typing import Any, Callable, Optional, Tuple, Type

from ...domain.exceptions import CircuitBreakerError
from ..logging import TradewireLogger, logging_context


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation, requests pass through
    OPEN = "open"            # Failure threshold reached, requests blocked
    HALF_OPEN = "half_open"  # Probing whether the service recovered


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """
    Configuration for circuit breaker behavior.

    Attributes:
        failure_threshold: Consecutive failures before opening circuit
        success_threshold: Consecutive HALF_OPEN successes to close circuit
        recovery_timeout: Seconds after the last failure before probing
        exclude_exceptions: Exceptions the decorators don't count as failures
    """
    failure_threshold: int = 10
    success_threshold: int = 3
    recovery_timeout: float = 60.0
    exclude_exceptions: Tuple[Type[BaseException], ...] = ()

    def __post_init__(self):
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.success_threshold < 1:
            raise ValueError("success_threshold must be >= 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout must be >= 0")


@dataclass(frozen=True)
class CircuitBreakerStatus:
    """Read-only snapshot of a circuit breaker."""
    state: CircuitBreakerState
    failure_count: int
    success_count: int
    can_execute: bool


class CircuitBreaker:
    """
    Circuit breaker for protecting against cascade failures.

    Thread-safe: every read and write of the state goes through one lock,
    held only for the state transition itself. Logging happens after the
    lock is released.

    Example:
        >>> breaker = CircuitBreaker(name="orders")
        >>>
        >>> @breaker.protect_sync
        ... def submit(order):
        ...     return transport.execute(order)
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize circuit breaker.

        Args:
            name: Name of the protected service (for logging)
            config: Circuit breaker configuration
            clock: Monotonic time source in seconds
        """
        self.name = name
        self.config = config if config else CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: Optional[float] = None
        self._lock = threading.Lock()

        self.logger = TradewireLogger.get_instance()

    @property
    def state(self) -> CircuitBreakerState:
        """Current state, without triggering the lazy recovery check."""
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def success_count(self) -> int:
        with self._lock:
            return self._success_count

    def _can_execute_locked(self) -> Tuple[bool, bool]:
        """Return (allowed, entered_half_open). Caller holds the lock."""
        if self._state == CircuitBreakerState.OPEN:
            if (self._last_failure_time is not None and
                    self._clock() - self._last_failure_time > self.config.recovery_timeout):
                self._state = CircuitBreakerState.HALF_OPEN
                self._success_count = 0
                return True, True
            return False, False
        return True, False

    def can_execute(self) -> bool:
        """
        Whether a call may proceed.

        In OPEN state this moves the breaker to HALF_OPEN once the recovery
        timeout has elapsed since the last failure.
        """
        with self._lock:
            allowed, entered_half_open = self._can_execute_locked()

        if entered_half_open:
            self._log_half_open()
        return allowed

    def record_success(self) -> None:
        """Record a successful call."""
        closed = False
        with self._lock:
            self._failure_count = 0

            if self._state == CircuitBreakerState.HALF_OPEN:
                self._success_count += 1

                if self._success_count >= self.config.success_threshold:
                    self._state = CircuitBreakerState.CLOSED
                    self._success_count = 0
                    closed = True

        if closed:
            with logging_context(operation="circuit_breaker_closed"):
                self.logger.info(
                    f"Circuit breaker closed (recovered): {self.name}",
                    extra={
                        "circuit_breaker": self.name,
                        "state": CircuitBreakerState.CLOSED.value,
                        "success_threshold": self.config.success_threshold
                    }
                )

    def record_failure(self, exception: Optional[BaseException] = None) -> None:
        """
        Record a failed call.

        Args:
            exception: The failure, used only for logging
        """
        reopened = opened = False
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitBreakerState.HALF_OPEN:
                self._state = CircuitBreakerState.OPEN
                self._success_count = 0
                reopened = True

            elif (self._state == CircuitBreakerState.CLOSED and
                  self._failure_count >= self.config.failure_threshold):
                self._state = CircuitBreakerState.OPEN
                opened = True

            failure_count = self._failure_count

        error_type = type(exception).__name__ if exception is not None else None

        if reopened:
            with logging_context(operation="circuit_breaker_reopened"):
                self.logger.warning(
                    f"Circuit breaker reopened (recovery failed): {self.name}",
                    extra={
                        "circuit_breaker": self.name,
                        "state": CircuitBreakerState.OPEN.value,
                        "error_type": error_type
                    }
                )
        elif opened:
            with logging_context(operation="circuit_breaker_opened"):
                self.logger.error(
                    f"Circuit breaker opened (failure threshold reached): {self.name}",
                    extra={
                        "circuit_breaker": self.name,
                        "state": CircuitBreakerState.OPEN.value,
                        "failure_count": failure_count,
                        "failure_threshold": self.config.failure_threshold,
                        "recovery_timeout_seconds": self.config.recovery_timeout,
                        "error_type": error_type
                    }
                )

    def status(self) -> CircuitBreakerStatus:
        """Snapshot of the breaker, including whether a call may proceed now."""
        with self._lock:
            allowed, entered_half_open = self._can_execute_locked()
            snapshot = CircuitBreakerStatus(
                state=self._state,
                failure_count=self._failure_count,
                success_count=self._success_count,
                can_execute=allowed,
            )

        if entered_half_open:
            self._log_half_open()
        return snapshot

    def _log_half_open(self) -> None:
        with logging_context(operation="circuit_breaker_half_open"):
            self.logger.info(
                f"Circuit breaker entering HALF_OPEN state: {self.name}",
                extra={
                    "circuit_breaker": self.name,
                    "state": CircuitBreakerState.HALF_OPEN.value,
                    "recovery_timeout_seconds": self.config.recovery_timeout
                }
            )

    def _refuse(self, func: Callable) -> CircuitBreakerError:
        with logging_context(operation="circuit_breaker_blocked"):
            self.logger.warning(
                f"Circuit breaker blocked call: {self.name}",
                extra={
                    "circuit_breaker": self.name,
                    "state": CircuitBreakerState.OPEN.value,
                    "function": func.__name__
                }
            )

        return CircuitBreakerError(
            f"Circuit breaker is OPEN for {self.name}. "
            f"Service unavailable. Will probe after {self.config.recovery_timeout}s."
        )

    def protect(self, func: Callable) -> Callable:
        """
        Decorator to protect an async function with circuit breaker.

        Raises:
            CircuitBreakerError: If circuit is open
        """
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            if not self.can_execute():
                raise self._refuse(func)

            try:
                result = await func(*args, **kwargs)
            except self.config.exclude_exceptions:
                raise
            except Exception as e:
                self.record_failure(e)
                raise

            self.record_success()
            return result

        return wrapper

    def protect_sync(self, func: Callable) -> Callable:
        """
        Decorator to protect a synchronous function with circuit breaker.

        Raises:
            CircuitBreakerError: If circuit is open
        """
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            if not self.can_execute():
                raise self._refuse(func)

            try:
                result = func(*args, **kwargs)
            except self.config.exclude_exceptions:
                raise
            except Exception as e:
                self.record_failure(e)
                raise

            self.record_success()
            return result

        return wrapper

    def reset(self) -> None:
        """Manually reset the circuit breaker to CLOSED state."""
        with self._lock:
            self._state = CircuitBreakerState.CLOSED
            self._failure_count = 0
            self._success_count = 0
            self._last_failure_time = None

        with logging_context(operation="circuit_breaker_reset"):
            self.logger.info(
                f"Circuit breaker manually reset: {self.name}",
                extra={
                    "circuit_breaker": self.name,
                    "state": CircuitBreakerState.CLOSED.value
                }
            )
