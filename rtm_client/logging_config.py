"""Centralized logging configuration for rtm-client.

This module provides:
- Configurable log levels and output destinations
- Log file rotation with configurable size limits
- Redaction of tokens and secrets before anything is written
"""

from __future__ import annotations

import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TextIO

# Default configuration
DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
DEFAULT_BACKUP_COUNT = 3

PACKAGE_LOGGER = "rtm_client"

# Log directory
LOG_DIR = Path.home() / ".config" / "rtm-client" / "logs"

_SECRET_PARAMS = re.compile(r"(auth_token|api_sig|frob|token)=([^&\s]+)")


def get_log_file_path() -> Path:
    """Get the path to the log file, creating directory if needed."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    return LOG_DIR / "rtm-client.log"


class RedactingFilter(logging.Filter):
    """Masks credential query parameters in log messages.

    httpx logs full request URLs at INFO, which include ``auth_token``.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SECRET_PARAMS.sub(r"\1=***", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(
    *,
    level: int | str = DEFAULT_LOG_LEVEL,
    log_to_file: bool = True,
    log_to_console: bool = False,
    console_stream: TextIO = sys.stderr,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    debug_modules: list[str] | None = None,
) -> None:
    """Configure logging for the entire application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_to_file: Whether to log to file.
        log_to_console: Whether to log to console (stderr). Never enable
            this while the TUI owns the terminal.
        console_stream: Stream for console output.
        max_bytes: Maximum log file size before rotation.
        backup_count: Number of backup log files to keep.
        debug_modules: List of module names to set to DEBUG level.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), DEFAULT_LOG_LEVEL)

    handlers: list[logging.Handler] = []
    formatter = logging.Formatter(DEFAULT_LOG_FORMAT, DEFAULT_DATE_FORMAT)
    redactor = RedactingFilter()

    if log_to_file:
        file_handler = RotatingFileHandler(
            get_log_file_path(),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        handlers.append(file_handler)

    if log_to_console:
        handlers.append(logging.StreamHandler(console_stream))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(redactor)

    # Our package and httpx share the same handlers
    for name in (PACKAGE_LOGGER, "httpx"):
        named = logging.getLogger(name)
        named.handlers.clear()
        for handler in handlers:
            named.addHandler(handler)
        named.propagate = False

    logging.getLogger(PACKAGE_LOGGER).setLevel(level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    if debug_modules:
        for module_name in debug_modules:
            full_name = (
                f"{PACKAGE_LOGGER}.{module_name}"
                if not module_name.startswith(f"{PACKAGE_LOGGER}.")
                else module_name
            )
            logging.getLogger(full_name).setLevel(logging.DEBUG)


def log_exception(
    logger: logging.Logger,
    exc: Exception,
    message: str = "An error occurred",
    *,
    level: int = logging.ERROR,
    include_traceback: bool = True,
) -> None:
    """Log an exception with consistent formatting.

    Args:
        logger: Logger to use.
        exc: Exception to log.
        message: Human-readable message prefix.
        level: Log level (default ERROR).
        include_traceback: Whether to include full traceback.
    """
    if include_traceback:
        logger.log(level, "%s: %s", message, exc, exc_info=True)
    else:
        logger.log(level, "%s: %s (%s)", message, exc, type(exc).__name__)

