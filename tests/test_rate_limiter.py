"""Tests for the token bucket rate limiter."""

import threading

import pytest

from tradewire.infrastructure.resilience import TokenBucketRateLimiter


class TestTokenBucketRateLimiter:
    """Test suite for TokenBucketRateLimiter."""

    def test_starts_full(self, clock):
        """Test that a new bucket holds max_tokens."""
        limiter = TokenBucketRateLimiter(max_tokens=5, refill_rate=1.0, clock=clock)

        status = limiter.status()
        assert status.tokens == 5.0
        assert status.max_tokens == 5.0
        assert status.refill_rate == 1.0

    def test_burst_then_refill(self, clock):
        """Five immediate acquires succeed, the sixth fails, one more after 200 ms."""
        limiter = TokenBucketRateLimiter(max_tokens=5, refill_rate=5.0, clock=clock)

        assert all(limiter.try_acquire() for _ in range(5))
        assert limiter.try_acquire() is False

        clock.advance(0.2)
        assert limiter.try_acquire() is True
        assert limiter.try_acquire() is False

    def test_failed_acquire_leaves_tokens_unchanged(self, clock):
        """Test that a refused acquire deducts nothing."""
        limiter = TokenBucketRateLimiter(max_tokens=2, refill_rate=1.0, clock=clock)
        limiter.try_acquire()
        limiter.try_acquire()

        clock.advance(0.5)
        assert limiter.try_acquire() is False
        assert limiter.status().tokens == pytest.approx(0.5)

    def test_refill_is_capped(self, clock):
        """Test that tokens never exceed max_tokens, however long the idle time."""
        limiter = TokenBucketRateLimiter(max_tokens=3, refill_rate=10.0, clock=clock)
        limiter.try_acquire(3.0)

        clock.advance(3600.0)
        assert limiter.status().tokens == 3.0

    def test_fractional_cost(self, clock):
        """Test that costs are not restricted to whole tokens."""
        limiter = TokenBucketRateLimiter(max_tokens=1, refill_rate=1.0, clock=clock)

        assert limiter.try_acquire(0.4) is True
        assert limiter.try_acquire(0.4) is True
        assert limiter.try_acquire(0.4) is False

    def test_wait_time(self, clock):
        """Test that wait_time reports the deficit divided by the refill rate."""
        limiter = TokenBucketRateLimiter(max_tokens=2, refill_rate=4.0, clock=clock)

        assert limiter.wait_time() == 0.0

        limiter.try_acquire(2.0)
        assert limiter.wait_time() == pytest.approx(0.25)
        assert limiter.wait_time(2.0) == pytest.approx(0.5)

        # wait_time never deducts
        assert limiter.status().tokens == 0.0

    def test_clock_going_backwards_adds_nothing(self, clock):
        """Test that a non-monotonic clock reading is treated as zero elapsed."""
        limiter = TokenBucketRateLimiter(max_tokens=1, refill_rate=1.0, clock=clock)
        limiter.try_acquire()

        clock.advance(-10.0)
        assert limiter.try_acquire() is False

    def test_from_quota(self, clock):
        """Test that 200 requests per minute means 200 tokens at 10/3 per second."""
        limiter = TokenBucketRateLimiter.from_quota(200, 60.0, clock=clock)

        assert limiter.max_tokens == 200.0
        assert limiter.refill_rate == pytest.approx(200 / 60)

    @pytest.mark.parametrize("max_tokens,refill_rate", [(0, 1.0), (-1, 1.0), (5, 0.0), (5, -2.0)])
    def test_invalid_parameters(self, max_tokens, refill_rate):
        """Test that non-positive capacity or rate is rejected."""
        with pytest.raises(ValueError):
            TokenBucketRateLimiter(max_tokens=max_tokens, refill_rate=refill_rate)

    def test_concurrent_acquires_never_overspend(self, clock):
        """Test that parallel callers get exactly max_tokens grants with a frozen clock."""
        limiter = TokenBucketRateLimiter(max_tokens=100, refill_rate=1.0, clock=clock)
        granted = []
        lock = threading.Lock()

        def worker():
            count = sum(1 for _ in range(50) if limiter.try_acquire())
            with lock:
                granted.append(count)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(granted) == 100
        assert limiter.status().tokens == 0.0
