"""
Structured logging configuration for the role hierarchy engine.

Supports both human-readable (development) and JSON (staging/production) formats.
"""

import logging
import json
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Optional


_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
))


class LogContext:
    """
    Context manager for adding fields to log records.

    Fields live in a ContextVar, so each asyncio task sees only the context
    it entered (plus what it inherited when it was created).

    Usage:
        with LogContext(business_id="b1", year=2025):
            logger.info("Reconciling roles")  # Will include business_id and year
    """

    _context: ContextVar[Dict[str, Any]] = ContextVar("role_hierarchy_log_context", default={})

    def __init__(self, **kwargs):
        self._fields = kwargs
        self._token: Optional[Token] = None

    def __enter__(self):
        self._token = LogContext._context.set({**LogContext._context.get(), **self._fields})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        LogContext._context.reset(self._token)
        self._token = None

    @classmethod
    def current(cls) -> Dict[str, Any]:
        """Snapshot of the active context fields."""
        return dict(cls._context.get())


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Output format compatible with log aggregators (ELK, CloudWatch, etc.)
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Scope fields first, so they sort together in aggregators
        for key in ("business_id", "year", "role_id"):
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        for key, value in LogContext.current().items():
            log_data.setdefault(key, value)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add extra fields
        for key, value in record.__dict__.items():
            if key.startswith("_") or key in _RESERVED_ATTRS or key in log_data:
                continue
            log_data[key] = value

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def configure_logging(level: str = "INFO", format_type: str = "text") -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: "json" for structured, "text" for human-readable
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)

    if format_type.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name, typically __name__

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)
