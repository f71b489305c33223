"""Resilience infrastructure for tradewire."""

from .backoff import BackoffCalculator, compute_backoff_delay, MIN_BACKOFF_DELAY
from .cancellation import CancellationToken
from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerState,
    CircuitBreakerStatus,
)
from .rate_limiter import RateLimitStatus, TokenBucketRateLimiter
from .retry import RetryConfig, RetryEngine
from ...domain.exceptions import CircuitBreakerError

__all__ = [
    "BackoffCalculator",
    "compute_backoff_delay",
    "MIN_BACKOFF_DELAY",
    "CancellationToken",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerState",
    "CircuitBreakerStatus",
    "CircuitBreakerError",
    "RateLimitStatus",
    "TokenBucketRateLimiter",
    "RetryConfig",
    "RetryEngine",
]
