"""
Logging setup for the sync core.

Sync passes run unattended (on devices and in background workers), so the
default output is one JSON object per line with the pass context
(entity_type, church_id, record_id) as top-level fields. Credentials that
end up in log context are masked.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

ROOT_LOGGER = "churchthrive_sync"

LOG_LEVEL_ENV = "CHURCHTHRIVE_LOG_LEVEL"
LOG_FORMAT_ENV = "CHURCHTHRIVE_LOG_FORMAT"

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

# Attributes every LogRecord carries; anything else came in through `extra`.
_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message",
}

REDACTED_KEYS = frozenset({"key", "server_key", "authorization", "token", "password"})


class StructuredJsonFormatter(logging.Formatter):
    """
    Formats records as single-line JSON.

    Fields: timestamp (UTC ISO 8601), level, logger, message, exception (if
    any), then every `extra` field. Values of keys in `redacted_keys` are
    replaced with "***".
    """

    def __init__(self, redacted_keys: frozenset[str] = REDACTED_KEYS):
        super().__init__()
        self.redacted_keys = redacted_keys

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            if key.lower() in self.redacted_keys:
                log_obj[key] = "***"
                continue
            try:
                json.dumps(value)
                log_obj[key] = value
            except (TypeError, ValueError):
                log_obj[key] = str(value)

        return json.dumps(log_obj, ensure_ascii=False, default=str)


def configure_structured_logging(
    level: int | str = logging.INFO,
    logger_name: str | None = ROOT_LOGGER,
    structured: bool = True,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Attach a single stream handler to a logger.

    Args:
        level: Logging level, as a number or a name ("DEBUG")
        logger_name: Logger to configure (default: the package logger;
            None for the root logger)
        structured: JSON lines when True, plain text otherwise
        stream: Output stream (default: stdout)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Reconfiguring replaces the previous handler
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredJsonFormatter() if structured else logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    return logger


def configure_logging_from_env(stream: TextIO | None = None) -> logging.Logger:
    """Configure the package logger from CHURCHTHRIVE_LOG_LEVEL / CHURCHTHRIVE_LOG_FORMAT.

    Format "text" selects plain output; anything else selects JSON.
    """
    level = os.environ.get(LOG_LEVEL_ENV, "INFO")
    structured = os.environ.get(LOG_FORMAT_ENV, "json").lower() != "text"
    return configure_structured_logging(level, structured=structured, stream=stream)


def get_sync_logger(name: str) -> logging.Logger:
    """
    Get a logger for a sync component.

    Args:
        name: Component name (e.g., 'manager', 'monitor')

    Returns:
        Logger instance named 'churchthrive_sync.{name}'
    """
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


class SyncLoggerAdapter(logging.LoggerAdapter):
    """
    Stamps sync pass context (entity_type, church_id) on every record.

    Per-call `extra` fields take precedence over the adapter's context.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs
