"""Tests for CancellationToken."""

import threading
import time

import pytest

from tradewire.domain.exceptions import OperationCancelledError
from tradewire.infrastructure.resilience import CancellationToken


class TestCancellationToken:
    """Test suite for CancellationToken."""

    def test_not_cancelled_by_default(self):
        token = CancellationToken()

        assert not token.cancelled
        assert token.remaining() is None
        token.raise_if_cancelled()

    def test_cancel_with_reason(self):
        """Test that the reason ends up in the raised error."""
        token = CancellationToken()
        token.cancel("shutdown requested")

        assert token.cancelled
        with pytest.raises(OperationCancelledError, match="shutdown requested"):
            token.raise_if_cancelled()

    def test_deadline(self, clock):
        """Test that the token fires once the deadline passes."""
        token = CancellationToken(timeout=5.0, clock=clock)

        assert token.remaining() == 5.0
        clock.advance(4.0)
        assert not token.cancelled

        clock.advance(1.0)
        assert token.cancelled
        assert token.remaining() == 0.0
        with pytest.raises(OperationCancelledError, match="deadline exceeded"):
            token.raise_if_cancelled()

    def test_sleep_completes(self):
        """Test an uninterrupted sleep returns normally."""
        token = CancellationToken()
        start = time.monotonic()

        token.sleep(0.01)

        assert time.monotonic() - start >= 0.009

    def test_sleep_wakes_on_cancel(self):
        """Test that cancel() from another thread interrupts a long sleep."""
        token = CancellationToken()
        timer = threading.Timer(0.05, token.cancel, args=("stop",))
        timer.start()
        start = time.monotonic()

        with pytest.raises(OperationCancelledError, match="stop"):
            token.sleep(10.0)

        assert time.monotonic() - start < 5.0
        timer.join()

    def test_sleep_past_deadline(self):
        """Test that a sleep longer than the remaining time raises at the deadline."""
        token = CancellationToken(timeout=0.05)
        start = time.monotonic()

        with pytest.raises(OperationCancelledError, match="deadline exceeded"):
            token.sleep(10.0)

        assert time.monotonic() - start < 5.0
