"""
tradewire - Resilient transport core for broker REST APIs.

Retries with exponential backoff and jitter, a token bucket matching the
provider quota, a circuit breaker, and one exclusively owned transport per
worker.
"""

__version__ = "0.1.0"
