"""
tradewire Logging Infrastructure.

Provides centralized logging with:
- Console output: human-readable, tagged with the worker id when present
- Optional JSON file output with daily rotation
- Correlation fields from LogContext merged into every record
- Singleton access so the engine, breaker and pool share one configuration

Uses Python's standard logging module; handlers are thread-safe, which
matters because every worker thread logs through the same logger.
"""

import json
import logging
import logging.handlers
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .context import LogContext

_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs", "message",
    "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName", "asctime",
})


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs one JSON object per record.

    Includes the standard fields, every extra field (worker_id, attempt,
    delay_seconds, ...) and exception details if present.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": record.threadName,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Console formatter.

    Format: YYYY-MM-DD HH:MM:SS - LEVEL - [worker] message
    """

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        worker_id = getattr(record, "worker_id", None)
        if worker_id:
            prefix = f"{record.levelname} - "
            formatted = formatted.replace(prefix, f"{prefix}[{worker_id}] ", 1)
        return formatted


def _console_handler(level: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(getattr(logging, level.upper()))
    handler.setFormatter(HumanReadableFormatter())
    return handler


def _file_handler(log_file: Path, rotation: str, retention_days: int) -> logging.Handler:
    """JSON file handler; records every level regardless of the console level."""
    log_file.parent.mkdir(parents=True, exist_ok=True)

    if rotation == "daily":
        handler = logging.handlers.TimedRotatingFileHandler(
            filename=str(log_file),
            when="midnight",
            backupCount=retention_days,
            encoding="utf-8",
        )
    elif rotation == "none":
        handler = logging.FileHandler(str(log_file), encoding="utf-8")
    else:
        raise ValueError(f"Unknown log rotation: {rotation!r}")

    handler.setLevel(logging.DEBUG)
    handler.setFormatter(JSONFormatter())
    return handler


class TradewireLogger:
    """
    Centralized logging for tradewire.

    Singleton pattern ensures only one logger configuration exists.

    Example:
        >>> logger = TradewireLogger.get_instance(level="DEBUG")
        >>> logger.info("Transport leased", extra={"worker_id": "worker-1"})
    """

    _instance: Optional['TradewireLogger'] = None
    _lock: threading.Lock = threading.Lock()

    def __init__(
        self,
        level: str = "INFO",
        log_file: Optional[Path] = None,
        console: bool = True,
        rotation: str = "daily",
        retention_days: int = 30,
    ):
        """
        Initialize tradewire logger.

        Args:
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_file: Path to JSON log file (optional)
            console: Enable console output on stderr
            rotation: "daily" or "none"
            retention_days: Rotated files to keep
        """
        self.logger = logging.getLogger("tradewire")
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.propagate = False

        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        if console:
            self.logger.addHandler(_console_handler(level))
        if log_file:
            self.logger.addHandler(_file_handler(Path(log_file), rotation, retention_days))

    @classmethod
    def get_instance(
        cls,
        level: str = "INFO",
        log_file: Optional[Path] = None,
        console: bool = True,
        rotation: str = "daily",
        retention_days: int = 30,
    ) -> 'TradewireLogger':
        """
        Get singleton instance of TradewireLogger.

        Arguments only apply to the call that creates the instance; use
        `configure` to replace an existing configuration.
        """
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls(
                        level=level,
                        log_file=log_file,
                        console=console,
                        rotation=rotation,
                        retention_days=retention_days,
                    )
        return cls._instance

    @classmethod
    def configure(cls, **kwargs) -> 'TradewireLogger':
        """Rebuild the singleton with new settings (used at application startup)."""
        with cls._lock:
            cls._instance = cls(**kwargs)
        return cls._instance

    def _merge_context(self, kwargs: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge LogContext into kwargs['extra'].

        Explicit extra fields take precedence over context fields.
        """
        context = LogContext.get_context()

        if context:
            extra = kwargs.get('extra', {})
            kwargs = kwargs.copy()
            kwargs['extra'] = {**context, **extra}

        return kwargs

    def debug(self, message: str, **kwargs):
        """Log debug message with automatic context injection."""
        self.logger.debug(message, **self._merge_context(kwargs))

    def info(self, message: str, **kwargs):
        """Log info message with automatic context injection."""
        self.logger.info(message, **self._merge_context(kwargs))

    def warning(self, message: str, **kwargs):
        """Log warning message with automatic context injection."""
        self.logger.warning(message, **self._merge_context(kwargs))

    def error(self, message: str, **kwargs):
        """Log error message with automatic context injection."""
        self.logger.error(message, **self._merge_context(kwargs))

    def critical(self, message: str, **kwargs):
        """Log critical message with automatic context injection."""
        self.logger.critical(message, **self._merge_context(kwargs))


def get_logger(name: str) -> logging.Logger:
    """
    Get a child of the configured tradewire logger.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger named "tradewire.<name>"
    """
    if name.startswith("tradewire."):
        name = name[len("tradewire."):]
    return logging.getLogger(f"tradewire.{name}")
