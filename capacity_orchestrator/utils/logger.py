"""
Logging utilities for Capacity Orchestrator

Provides structured logging configuration and a task-local log context, so
every record written while an execution runs carries its job, execution and
pool ids.
"""

import contextvars
import logging
import sys
import json
from datetime import datetime
from typing import Any, Dict, Optional
from pathlib import Path


_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "taskName"}

# Context copied into each asyncio task when it is created
_log_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    "capacity_orchestrator_log_context", default={}
)


class StructuredFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON.

    Fields passed through `extra=` and fields from the log context are
    collected under "extra".
    """

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno
        }

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        if self.include_extra:
            extra = {key: value for key, value in vars(record).items() if key not in _RESERVED_ATTRS}
            if extra:
                entry["extra"] = extra

        return json.dumps(entry, default=str, ensure_ascii=False)


class JobContextFilter(logging.Filter):
    """Copies the current log context onto records that don't set the field themselves."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def setup_logger(
    name: str,
    level: str = "INFO",
    structured: bool = True,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Set up a logger with appropriate configuration.

    Args:
        name: Logger name
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        structured: Whether to use structured JSON logging
        log_file: Optional log file path

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(log_level)

    # Avoid adding handlers multiple times
    if any(not isinstance(h, logging.NullHandler) for h in logger.handlers):
        return logger

    if structured:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    handlers: list = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    # Filters sit on the handlers so records from child loggers get context too
    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        handler.addFilter(JobContextFilter())
        logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_log_context() -> Dict[str, Any]:
    return dict(_log_context.get())


def set_log_context(**fields):
    """Add fields to the log context of the current task."""
    _log_context.set({**_log_context.get(), **fields})


def clear_log_context():
    _log_context.set({})


class LoggerContext:
    """
    Context manager that adds log context fields for the duration of a block.

    Context lives in a ContextVar, so concurrent executions each see their
    own fields.
    """

    def __init__(self, **fields):
        self.fields = fields
        self._token: Optional[contextvars.Token] = None

    def __enter__(self):
        self._token = _log_context.set({**_log_context.get(), **self.fields})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _log_context.reset(self._token)
