"""Shared fixtures: a controllable clock and sleeps that advance it."""

import pytest

from tradewire.infrastructure.logging import LogContext


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Sleep replacement that records each delay and advances the clock."""

    def __init__(self, clock: FakeClock = None):
        self.clock = clock
        self.calls = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


class RecordingAsyncSleep(RecordingSleep):
    """Coroutine variant of RecordingSleep."""

    async def __call__(self, seconds: float) -> None:
        super().__call__(seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recorded_sleep(clock):
    return RecordingSleep(clock)


@pytest.fixture
def recorded_async_sleep(clock):
    return RecordingAsyncSleep(clock)


@pytest.fixture(autouse=True)
def clean_log_context():
    """Keep context fields from leaking between tests on the main thread."""
    LogContext.clear()
    yield
    LogContext.clear()
