"""Logging infrastructure for tradewire."""

from .logger import TradewireLogger, get_logger
from .context import LogContext, logging_context

__all__ = ["TradewireLogger", "get_logger", "LogContext", "logging_context"]
