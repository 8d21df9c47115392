"""Logging configuration for the ricecoder client.

Uses Python's standard logging module with support for:
- Level taken from the client settings (logLevel, debugMode)
- File logging via the RICECODER_LOG environment variable
- A TRACE level below DEBUG for raw wire traffic
- Stderr fallback only when attached to a real console
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ricecoder_client.settings.schema import Settings

# Custom log level for raw wire lines
TRACE = 5

logging.addLevelName(TRACE, "TRACE")

# Module-level logger
logger = logging.getLogger("ricecoder_client")

_initialized = False

# Map settings logLevel values to logging constants
_LEVEL_MAP = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class _LowercaseLevelFormatter(logging.Formatter):
    """Formatter that emits lowercase level names."""

    def format(self, record: logging.LogRecord) -> str:
        record.levelname = record.levelname.lower()
        return super().format(record)


def level_for(settings: Settings | None) -> int:
    """Resolve the effective log level for a settings record.

    debugMode forces DEBUG regardless of logLevel.
    """
    if settings is None:
        return logging.INFO
    if settings.debug_mode is True:
        return logging.DEBUG
    if isinstance(settings.log_level, str):
        return _LEVEL_MAP.get(settings.log_level.lower(), logging.INFO)
    return logging.INFO


def setup_logging(settings: Settings | None = None, *, verbose: int = 0) -> None:
    """Initialize logging for the client.

    Call this once at startup. Subsequent calls only adjust the level.

    Args:
        settings: Optional settings supplying logLevel / debugMode.
        verbose: Extra verbosity from the command line. 1 = debug, 2+ = trace.
    """
    global _initialized

    log_level = level_for(settings)
    if verbose == 1:
        log_level = min(log_level, logging.DEBUG)
    elif verbose >= 2:
        log_level = TRACE

    logger.setLevel(log_level)
    for handler in logger.handlers:
        handler.setLevel(log_level)

    if _initialized:
        return
    _initialized = True

    # Format: HH:MM:SS level: message
    formatter = _LowercaseLevelFormatter(
        "%(asctime)s %(levelname)s: %(message)s", datefmt="%H:%M:%S"
    )

    log_path = os.environ.get("RICECODER_LOG")

    if log_path:
        log_path = os.path.expanduser(log_path)
        try:
            file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            # Fall back to stderr if file can't be opened (only if real console)
            if sys.stderr.isatty():
                print(f"[ricecoder] Failed to open log file: {e}", file=sys.stderr)
                _add_stderr_handler(formatter, log_level)
    elif sys.stderr.isatty():
        _add_stderr_handler(formatter, log_level)


def _add_stderr_handler(formatter: logging.Formatter, level: int = logging.DEBUG) -> None:
    """Add a stderr handler to the logger."""
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(level)
    stderr_handler.setFormatter(formatter)
    logger.addHandler(stderr_handler)


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Optional name for a child logger (e.g., "transport", "streams").
              If None, returns the root ricecoder_client logger.

    Returns:
        A logger instance.
    """
    if name:
        return logger.getChild(name)
    return logger
