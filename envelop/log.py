#!/usr/bin/env python3
"""
envelop Logging Configuration

Centralized logging setup for consistent formatting across the project.
Console output goes to stderr so that wire text printed on stdout by the
CLI is never interleaved with log lines.

Usage:
    from envelop.log import get_logger

    logger = get_logger(__name__)
    logger.debug("Encoded envelope")
    logger.warning("Signature mismatch", extra={"envelope_id": "123", "msg_type": "chat.message"})
"""

from __future__ import annotations
import logging
import sys
from typing import Optional, Any
import os


# ========================================
#           LOGGING FORMATTERS
# ========================================

class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output"""

    # ANSI Color codes
    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'       # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class GenericFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        # Envelope context, if the caller passed it through `extra`
        context = []

        if hasattr(record, 'envelope_id') and record.envelope_id:
            context.append(f"env={str(record.envelope_id)[:8]}...")
        if hasattr(record, 'msg_type') and record.msg_type:
            context.append(f"type={record.msg_type}")
        if hasattr(record, 'sender') and record.sender:
            context.append(f"from={record.sender}")

        message = super().format(record)
        if context:
            return f"[{' '.join(context)}] {message}"
        return message


# ========================================
#           LOGGING CONFIGURATION
# ========================================

_loggers_configured = set()

def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger for the given module.

    Args:
        name: Usually __name__ from the calling module
        level: Override log level ("DEBUG", "INFO", "WARNING", "ERROR")

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Only configure each logger once
    if name not in _loggers_configured:
        _configure_logger(logger, level)
        _loggers_configured.add(name)

    return logger


def _configure_logger(logger: logging.Logger, level: Optional[str] = None) -> None:
    """Configure a logger with appropriate handlers and formatters"""

    logger.setLevel(_get_log_level(level))

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    _add_console_handler(logger, colored=_is_development())
    if os.getenv('ENVELOP_LOG_FILE'):
        _add_file_handler(logger, os.environ['ENVELOP_LOG_FILE'])

    # Prevent duplicate messages from parent loggers
    logger.propagate = False


def _get_log_level(level: Optional[str] = None) -> int:
    """Determine appropriate log level"""

    level = level or os.getenv('ENVELOP_LOG_LEVEL')
    if level:
        return getattr(logging, level.upper(), logging.INFO)

    # Default based on environment
    return logging.DEBUG if _is_development() else logging.INFO


def _is_development() -> bool:
    """Detect if we're in development mode"""
    return (
        os.getenv('PYTHON_ENV', '').lower() in ['dev', 'development'] or
        'pytest' in sys.modules
    )


def _add_console_handler(logger: logging.Logger, colored: bool = True) -> None:
    """Add console handler with appropriate formatter"""

    fmt = '[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(message)s'
    handler = logging.StreamHandler(sys.stderr)

    if colored and _supports_color():
        formatter = ColoredFormatter(
            fmt=fmt,
            datefmt='%H:%M:%S'
        )
    else:
        formatter = GenericFormatter(
            fmt=fmt,
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_file_handler(logger: logging.Logger, path: str) -> None:
    """Add file handler when ENVELOP_LOG_FILE is set"""

    handler = logging.FileHandler(path)

    formatter = GenericFormatter(
        fmt='%(asctime)s | %(name)-30s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _supports_color() -> bool:
    """Check if terminal supports color output"""

    # stderr must be a terminal
    if not (hasattr(sys.stderr, "isatty") and sys.stderr.isatty()):
        return False

    # TERM should not be dumb
    if os.getenv("TERM", "") == "dumb":
        return False

    # Windows-specific check
    if sys.platform == "win32":
        return os.getenv("ANSICON") is not None or os.getenv("WT_SESSION") is not None or os.getenv("TERM_PROGRAM") == "vscode" or "WindowsTerminal" in os.getenv("TERM", "")

    return True
# ========================================
#           CONVENIENCE FUNCTIONS
# ========================================

def set_level(level: str) -> None:
    """Apply level to every logger configured through get_logger."""
    numeric = _get_log_level(level)
    for name in _loggers_configured:
        logging.getLogger(name).setLevel(numeric)


def log_envelope(logger: logging.Logger, level: str, message: str,
                 envelope: Optional[Any] = None,
                 **context: Any) -> None:
    """
    Log an envelope event with structured context.

    Args:
        logger: Logger instance
        level: Log level ("debug", "info", "warning", "error")
        message: Log message
        envelope: Envelope for automatic context extraction
        **context: Additional context fields

    Example:
        log_envelope(logger, "info", "Decoded message",
                     envelope=env, compression="gzip")
    """

    extra_context = {}

    if envelope is not None:
        extra_context.update({
            'envelope_id': envelope.id,
            'msg_type': envelope.type,
            'sender': envelope.sender,
        })

    extra_context.update(context)

    log_func = getattr(logger, level.lower())
    log_func(message, extra=extra_context)
