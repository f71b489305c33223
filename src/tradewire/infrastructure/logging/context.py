"""
Logging context management for tradewire.

Each worker thread carries its own correlation fields (worker id, transport
identity, current operation) that are merged into every log record emitted
from that thread. Because workers never share a thread, one worker's fields
can never leak into another worker's log lines.

Example:
    >>> with logging_context(worker_id="worker-3"):
    ...     logger.info("Lease acquired")   # includes worker_id
    ...     engine.execute(send_order)      # retry logs include worker_id
"""

import threading
from contextlib import contextmanager
from copy import deepcopy
from typing import Any, Dict


class LogContext:
    """
    Thread-local storage for logging context.

    Example:
        >>> LogContext.set("worker_id", "worker-1")
        >>> LogContext.get_context()
        {'worker_id': 'worker-1'}
    """

    _local = threading.local()

    @classmethod
    def _fields(cls) -> Dict[str, Any]:
        fields = getattr(cls._local, "fields", None)
        if fields is None:
            fields = {}
            cls._local.fields = fields
        return fields

    @classmethod
    def get_context(cls) -> Dict[str, Any]:
        """
        Get a copy of the current thread's logging context.

        Returns:
            Dictionary of context fields for current thread
        """
        return deepcopy(cls._fields())

    @classmethod
    def set(cls, key: str, value: Any) -> None:
        """Set a single context field."""
        cls._fields()[key] = value

    @classmethod
    def update(cls, fields: Dict[str, Any]) -> None:
        """Update multiple context fields at once."""
        cls._fields().update(fields)

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Get a specific context field.

        Args:
            key: Context field name
            default: Default value if field not found

        Returns:
            Field value or default
        """
        return cls._fields().get(key, default)

    @classmethod
    def clear(cls) -> None:
        """Clear all context fields for current thread."""
        cls._local.fields = {}

    @classmethod
    def remove(cls, *keys: str) -> None:
        """Remove specific context fields."""
        fields = cls._fields()
        for key in keys:
            fields.pop(key, None)

    @classmethod
    def snapshot(cls) -> Dict[str, Any]:
        """Return the raw field values (shallow copy) for later restore."""
        return dict(cls._fields())

    @classmethod
    def restore(cls, fields: Dict[str, Any]) -> None:
        """Replace the current thread's fields with a saved snapshot."""
        cls._local.fields = dict(fields)


@contextmanager
def logging_context(**fields):
    """
    Context manager for automatic logging context management.

    Sets fields on entry. On exit the previous context is restored, so a
    nested block that overrides a field (for example `operation`) hands the
    outer value back instead of deleting it.

    Nested contexts:
        >>> with logging_context(worker_id="worker-1"):
        ...     with logging_context(operation="retry_backoff"):
        ...         pass  # worker_id and operation both set
        ...     # only worker_id remains
    """
    saved = LogContext.snapshot()
    LogContext.update(fields)

    try:
        yield
    finally:
        LogContext.restore(saved)
