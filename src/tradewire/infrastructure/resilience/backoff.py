"""Retry delay calculation: capped exponential growth with symmetric jitter."""

import random
from typing import Callable, TYPE_CHECKING

if TYPE_CHECKING:
    from .retry import RetryConfig

# Smallest delay ever returned, in seconds. Guarantees forward progress.
MIN_BACKOFF_DELAY = 0.001


def compute_backoff_delay(attempt: int, config: "RetryConfig", sample: float) -> float:
    """
    Compute the delay before retry number `attempt`.

    The first retry waits about `base_delay`, each later one
    `backoff_multiplier` times longer, capped at `max_delay`. Jitter moves
    the result by up to +/- jitter_fraction / 2 of itself so that many
    clients failing together do not retry together.

    The exponent is `attempt - 1`, so with a 10 ms base the first two
    retries wait 10 ms and 20 ms. A `multiplier ** attempt` form would
    start at twice the base; keep the offset.

    Args:
        attempt: 1-indexed retry number
        config: Retry configuration
        sample: Uniform random value in [0, 1)

    Returns:
        Delay in seconds, never below MIN_BACKOFF_DELAY
    """
    if attempt < 1:
        raise ValueError("attempt is 1-indexed")

    delay = min(
        config.max_delay,
        config.base_delay * (config.backoff_multiplier ** (attempt - 1)),
    )
    delay += delay * config.jitter_fraction * (sample - 0.5)

    return max(MIN_BACKOFF_DELAY, delay)


class BackoffCalculator:
    """
    Backoff delays with an injectable random source.

    Tests pass a fixed `random_source` (e.g. `lambda: 0.5` for no jitter)
    instead of turning jitter off.
    """

    def __init__(
        self,
        config: "RetryConfig",
        random_source: Callable[[], float] = random.random,
    ):
        self.config = config
        self._random = random_source

    def delay(self, attempt: int) -> float:
        return compute_backoff_delay(attempt, self.config, self._random())

    def upper_bound(self) -> float:
        """Largest delay this calculator can return."""
        return max(MIN_BACKOFF_DELAY, self.config.max_delay * (1 + self.config.jitter_fraction / 2))
