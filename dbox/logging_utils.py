"""
Logging utilities for dbox.

The library itself only creates module loggers; applications (and the
``dbox`` command line tool) call setup_logging() once to attach a console
handler and, optionally, a rotating log file. Every handler installed here
carries a filter that masks bearer tokens so credentials never reach a log.
"""

import logging
import os
import re
from logging.handlers import RotatingFileHandler
from typing import Optional

LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
LOG_BACKUP_COUNT = 5
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Loggers of the HTTP stack that are too chatty at DEBUG
NOISY_LOGGERS = ("urllib3", "requests")

_TOKEN_PATTERN = re.compile(r"(Bearer\s+|access_token=|refresh_token=)[A-Za-z0-9._\-]+")

# Track handlers we add to avoid interfering with third-party logging
_added_handlers: set[logging.Handler] = set()


def redact_tokens(text: str) -> str:
    """Replace bearer/refresh tokens in text with ``***``."""
    return _TOKEN_PATTERN.sub(r"\1***", text)


class TokenRedactingFilter(logging.Filter):
    """Masks OAuth tokens in log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # Malformed format args; the handler reports them through handleError
            return True
        redacted = redact_tokens(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """
    Configure logging for applications built on dbox.

    Args:
        verbose: If True, set log level to DEBUG, otherwise INFO
        log_file: Optional path to a log file, rotated at 10MB with 5 backups.
                  Console-only logging when omitted.
    """
    level = logging.DEBUG if verbose else logging.INFO
    formatter = logging.Formatter(LOG_FORMAT)
    token_filter = TokenRedactingFilter()
    root_logger = logging.getLogger()

    # Only remove handlers installed by a previous call
    for handler in list(_added_handlers):
        if handler in root_logger.handlers:
            root_logger.removeHandler(handler)
    _added_handlers.clear()

    handlers: list[logging.Handler] = []

    if log_file:
        try:
            log_dir = os.path.dirname(os.path.abspath(log_file))
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            handlers.append(RotatingFileHandler(log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT))
        except OSError as e:
            print(f"Warning: Could not create log file '{log_file}': {e}")
            print("Falling back to console-only logging.")
            log_file = None

    handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
        handler.addFilter(token_filter)
        root_logger.addHandler(handler)
        _added_handlers.add(handler)

    root_logger.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.debug(f"Logging initialized - Level: {logging.getLevelName(level)}, File: {log_file or '-'}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the specified module name."""
    return logging.getLogger(name)
