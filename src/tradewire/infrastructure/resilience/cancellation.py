"""Cooperative cancellation for retry loops."""

import threading
import time
from typing import Callable, Optional

from ...domain.exceptions import OperationCancelledError


class CancellationToken:
    """
    Cancellation signal with an optional deadline.

    One token may be shared by many workers; `cancel()` wakes every sleeper
    immediately.

    Example:
        >>> token = CancellationToken(timeout=30.0)
        >>> engine.execute(fetch_positions, cancel_token=token)
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            timeout: Seconds from now after which the token counts as cancelled
            clock: Monotonic time source in seconds
        """
        self._event = threading.Event()
        self._clock = clock
        self._deadline = clock() + timeout if timeout is not None else None
        self._reason = "cancelled"

    def cancel(self, reason: str = "cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and self._clock() >= self._deadline:
            self._reason = "deadline exceeded"
            return True
        return False

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelledError(f"Operation {self._reason}")

    def sleep(self, seconds: float) -> None:
        """
        Sleep for `seconds`, waking early if the token fires.

        Raises:
            OperationCancelledError: If cancelled before or during the sleep
        """
        self.raise_if_cancelled()

        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            self._event.wait(remaining)
            self.raise_if_cancelled()
            # Deadline reached without an explicit cancel.
            self._reason = "deadline exceeded"
            raise OperationCancelledError(f"Operation {self._reason}")

        if self._event.wait(seconds):
            self.raise_if_cancelled()
