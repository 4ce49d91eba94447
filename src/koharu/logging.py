"""
Structured logging for koharu.

Plain text records are the default. JSON records (one object per line, with
`extra` fields kept) are enabled with `logging.json_format`.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from koharu.config import LoggingConfig

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Attributes every LogRecord carries; anything else came from `extra`.
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JSONFormatter(logging.Formatter):
    """
    A logging formatter that outputs log records as JSON objects.

    Each record carries timestamp (UTC, ISO 8601), level, logger and message,
    plus any fields passed through the `extra` argument.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format the log record as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            JSON-formatted string representation of the log record.
        """
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key in set(record.__dict__) - _RESERVED_ATTRS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def setup_logging(
    config: LoggingConfig | None = None,
    *,
    level: str = "WARNING",
    json_format: bool = False,
    log_to_stdout: bool = False,
) -> logging.Logger:
    """
    Configure the koharu package logger.

    Logs go to stderr by default so that they never interleave with the
    command output printed on stdout.

    Args:
        config: Optional LoggingConfig; overrides the keyword arguments.
        level: Log level if no config is provided.
        json_format: Whether to use JSON formatting.
        log_to_stdout: Log to stdout instead of stderr.

    Returns:
        The configured `koharu` logger.

    Example:
        >>> from koharu.logging import setup_logging
        >>> logger = setup_logging(level="DEBUG")
        >>> logger.info("Session started", extra={"project": "/srv/blog"})
    """
    if config is not None:
        log_level = config.level.upper()
        json_format = config.json_format
        log_to_stdout = config.log_to_stdout
    else:
        log_level = level.upper()

    logger = logging.getLogger("koharu")
    logger.setLevel(getattr(logging, log_level, logging.WARNING))
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout if log_to_stdout else sys.stderr)
    handler.setLevel(getattr(logging, log_level, logging.WARNING))
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
    logger.addHandler(handler)

    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger of the `koharu` package logger.

    Args:
        name: Typically __name__ of the calling module. The "koharu." prefix
            is added automatically if not present.

    Returns:
        A logger instance.
    """
    if not name.startswith("koharu"):
        name = f"koharu.{name}"

    return logging.getLogger(name)
