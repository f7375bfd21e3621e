"""Structured, redacting logging for issue-db.

Every message and every string-valued extra is passed through
``errors.redact`` before it leaves the process, in both output modes:

- text:  ``2024-01-01 12:00:00,000 INFO record create event123 #7``
- JSON:  one object per line with ``timestamp``, ``level``, ``logger``,
  ``message`` plus any structured fields (``operation``, ``key``, ...)

The level comes from the ``level`` argument, else ``LOG_LEVEL``, else INFO.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import IO, Any

from .errors import redact

DEFAULT_LOGGER_NAME = "issuedb"
TEXT_FORMAT = "%(asctime)s %(levelname)s %(message)s"

# attributes every LogRecord carries; anything else arrived via ``extra``
_STANDARD_FIELDS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


def _structured_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        name: redact(value) if isinstance(value, str) else value
        for name, value in vars(record).items()
        if name not in _STANDARD_FIELDS and not name.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }
        for name, value in _structured_fields(record).items():
            payload.setdefault(name, value)
        return json.dumps(payload, default=str)


class RedactingFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return redact(super().format(record))


def _resolve_level(level: str | None) -> int:
    name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


class StructuredLogger:
    """Thin facade over a stdlib logger that owns exactly one handler."""

    def __init__(
        self,
        name: str = DEFAULT_LOGGER_NAME,
        json_logging: bool = False,
        level: str | None = None,
        stream: IO[str] | None = None,
    ) -> None:
        self._logger = logging.getLogger(name)
        self._logger.setLevel(_resolve_level(level))
        self._logger.propagate = False
        formatter: logging.Formatter = (
            JSONFormatter() if json_logging else RedactingFormatter(TEXT_FORMAT)
        )
        handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
        handler.setFormatter(formatter)
        # re-configuring the same named logger replaces its output
        self._logger.handlers = [handler]

    @property
    def level(self) -> int:
        return self._logger.level

    def _log(self, level: int, message: str, fields: dict[str, Any]) -> None:
        self._logger.log(level, message, extra=fields)

    def debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._log(logging.ERROR, message, fields)

    def log_operation(self, operation: str, **fields: Any) -> None:
        self.info(f"Operation: {operation}", operation=operation, **fields)

    def log_record_action(
        self, action: str, key: str, issue_number: int | None = None, **fields: Any
    ) -> None:
        """Log a successful create/update/delete of the record ``key``."""
        suffix = f" #{issue_number}" if issue_number else ""
        if issue_number:
            fields["issue_number"] = issue_number
        self.info(f"record {action} {key}{suffix}", operation=f"record_{action}", key=key, **fields)

    def log_performance(self, operation: str, duration_ms: float, **fields: Any) -> None:
        self.debug(
            f"Performance: {operation} completed in {duration_ms:.2f}ms",
            operation=operation,
            duration_ms=round(duration_ms, 2),
            **fields,
        )

    def log_error(self, message: str, error: str | None = None, **fields: Any) -> None:
        if error:
            fields["error"] = error
        self.error(message, **fields)

    @contextmanager
    def timed_operation(self, operation: str, **fields: Any) -> Iterator[None]:
        """Log start and duration of the wrapped block; failures are logged and re-raised."""
        self.debug(f"{operation} started", operation=f"{operation}_start", **fields)
        started = time.perf_counter()
        try:
            yield
        except Exception as exc:
            self.log_error(f"operation {operation} failed", error=str(exc), **fields)
            raise
        self.log_performance(operation, (time.perf_counter() - started) * 1000, **fields)


_default_logger: StructuredLogger | None = None


def get_logger() -> StructuredLogger:
    """Return the process-wide logger, creating it on first use."""
    global _default_logger  # noqa: PLW0603
    if _default_logger is None:
        _default_logger = StructuredLogger()
    return _default_logger


def configure_logging(
    json_logging: bool = False, level: str | None = None, stream: IO[str] | None = None
) -> StructuredLogger:
    global _default_logger  # noqa: PLW0603
    _default_logger = StructuredLogger(json_logging=json_logging, level=level, stream=stream)
    return _default_logger


__all__ = [
    "JSONFormatter",
    "RedactingFormatter",
    "StructuredLogger",
    "get_logger",
    "configure_logging",
]
