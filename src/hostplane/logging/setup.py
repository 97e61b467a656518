"""Structured logging configuration.

Provides JSON and text formatters, an operation-context filter that
stamps every record with the domain and workflow being processed, and a
one-call :func:`configure_logging` driven by the ``logging`` section.

The orchestration facade and the renewal sweep wrap each unit of work in
:func:`operation_context`, so a driver deep in the stack logs with the
domain it is working for without being told::

    with operation_context("example.com", "provision"):
        dns.create_zone(domain)   # records carry domain/operation
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from contextlib import contextmanager
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Generator

    from hostplane.config.settings import LoggingSettings

_domain: contextvars.ContextVar[str] = contextvars.ContextVar("hostplane_domain", default="-")
_operation: contextvars.ContextVar[str] = contextvars.ContextVar("hostplane_operation", default="-")

# Standard LogRecord attributes; anything else is "extra" and is
# included in structured output.
_STANDARD_ATTRS = frozenset(
    {
        "args",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
        "domain",
        "operation",
    }
)


@contextmanager
def operation_context(domain: str, operation: str) -> Generator[None, None, None]:
    """Tag log records emitted inside the block with *domain* and *operation*."""
    domain_token = _domain.set(domain)
    operation_token = _operation.set(operation)
    try:
        yield
    finally:
        _operation.reset(operation_token)
        _domain.reset(domain_token)


def current_operation() -> tuple[str, str]:
    return _domain.get(), _operation.get()


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class StructuredFormatter(logging.Formatter):
    """JSON-lines formatter: one object per record, extras included."""

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        data: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
        }
        for attr in ("domain", "operation"):
            value = getattr(record, attr, "-")
            if value != "-":
                data[attr] = value

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                data.setdefault(key, value)

        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            data["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for the console."""

    _FMT = "%(asctime)s %(levelname)-8s [%(domain)s:%(operation)s] %(name)s: %(message)s"

    def __init__(self) -> None:
        super().__init__(fmt=self._FMT, datefmt="%Y-%m-%d %H:%M:%S")


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


class OperationContextFilter(logging.Filter):
    """Copy the current operation context onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "domain"):
            record.domain = _domain.get()
        if not hasattr(record, "operation"):
            record.operation = _operation.get()
        return True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def configure_logging(settings: LoggingSettings) -> logging.Logger:
    """Configure the ``hostplane`` logger tree from settings.

    Replaces any existing handlers.  Sets up the ``hostplane.audit``
    logger with a rotating JSON file when ``logging.audit.enabled``.

    Returns the root ``hostplane`` logger.
    """
    level = getattr(logging, settings.level.upper(), logging.INFO)

    root = logging.getLogger("hostplane")
    root.setLevel(level)
    root.handlers.clear()
    root.propagate = False

    formatter: logging.Formatter
    formatter = StructuredFormatter() if settings.format == "json" else TextFormatter()
    ctx_filter = OperationContextFilter()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.addFilter(ctx_filter)
    root.addHandler(console)

    audit = logging.getLogger("hostplane.audit")
    audit.handlers.clear()
    if settings.audit.enabled and settings.audit.file:
        audit.setLevel(logging.INFO)
        try:
            fh = RotatingFileHandler(
                settings.audit.file,
                maxBytes=settings.audit.max_file_size_bytes,
                backupCount=settings.audit.backup_count,
            )
        except OSError as exc:
            root.warning("Could not open audit log file %s: %s", settings.audit.file, exc)
        else:
            fh.setFormatter(StructuredFormatter())
            fh.addFilter(ctx_filter)
            audit.addHandler(fh)

    for lib in ("psycopg", "psycopg.pool", "acmeow", "urllib3"):
        logging.getLogger(lib).setLevel(logging.WARNING)

    return root
