"""Logging helpers for SQLBatis.

Library loggers live under the ``sqlbatis`` namespace and never configure
handlers on their own. Executors and strategies attach the statement id and
operation to their records; :class:`StructuredFormatter` renders those fields,
plus the correlation ID of the current context, as one JSON object per line.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any, Final

from sqlbatis.utils.serializers import to_json

if TYPE_CHECKING:
    from collections.abc import Iterable
    from logging import LogRecord

__all__ = (
    "STATEMENT_FIELDS",
    "CorrelationIDFilter",
    "StructuredFormatter",
    "configure_logging",
    "correlation_id_var",
    "get_correlation_id",
    "get_logger",
    "log_with_context",
    "set_correlation_id",
)

ROOT_LOGGER_NAME: Final = "sqlbatis"
SIMPLE_FORMAT: Final = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
STATEMENT_FIELDS: Final = ("statement_id", "operation")
"""Record attributes copied into structured output when set through ``extra=``."""

correlation_id_var: ContextVar[str | None] = ContextVar("sqlbatis_correlation_id", default=None)


def set_correlation_id(correlation_id: str | None) -> None:
    """Bind ``correlation_id`` to the current context; ``None`` clears it."""
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> str | None:
    return correlation_id_var.get()


class StructuredFormatter(logging.Formatter):
    """Render records as JSON lines.

    Every entry carries timestamp, level, logger and message. The statement
    id, operation and correlation ID are added when known, followed by any
    ``extra_fields`` attached through :func:`log_with_context`.
    """

    def format(self, record: LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in STATEMENT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value

        correlation_id = getattr(record, "correlation_id", None) or get_correlation_id()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        entry.update(getattr(record, "extra_fields", None) or {})

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return to_json(entry)


class CorrelationIDFilter(logging.Filter):
    """Stamp records with the correlation ID of the current context."""

    def filter(self, record: LogRecord) -> bool:
        correlation_id = get_correlation_id()
        if correlation_id:
            record.correlation_id = correlation_id  # type: ignore[attr-defined]
        return True


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``sqlbatis`` or a logger below it.

    Names outside the namespace are prefixed, so ``get_logger("session")``
    and ``get_logger("sqlbatis.session")`` return the same logger.
    """
    if name is None:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    logger = logging.getLogger(name)
    if not any(isinstance(f, CorrelationIDFilter) for f in logger.filters):
        logger.addFilter(CorrelationIDFilter())
    return logger


def configure_logging(
    level: str = "INFO",
    format_style: str = "structured",
    log_to_file: str | None = None,
    extra_handlers: Iterable[logging.Handler] | None = None,
) -> None:
    """Install handlers on the ``sqlbatis`` logger.

    Existing handlers are replaced and propagation to the root logger is
    turned off. File output is always structured.

    Args:
        level: Level name, case-insensitive.
        format_style: ``"structured"`` for JSON lines, anything else for plain text.
        log_to_file: Optional path of an additional log file.
        extra_handlers: Handlers added as given.
    """
    library_logger = logging.getLogger(ROOT_LOGGER_NAME)
    library_logger.setLevel(level.upper())
    library_logger.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(StructuredFormatter() if format_style == "structured" else logging.Formatter(SIMPLE_FORMAT))
    handlers: list[logging.Handler] = [console]
    if log_to_file:
        file_handler = logging.FileHandler(log_to_file)
        file_handler.setFormatter(StructuredFormatter())
        handlers.append(file_handler)
    handlers.extend(extra_handlers or ())

    for handler in handlers:
        library_logger.addHandler(handler)
    library_logger.propagate = False

    log_with_context(
        library_logger,
        logging.INFO,
        "SQLBatis logging configured",
        level=level,
        format_style=format_style,
        handlers_count=len(handlers),
    )


def log_with_context(logger: logging.Logger, level: int, message: str, /, **extra_fields: Any) -> None:
    """Log ``message`` with ``extra_fields`` attached for structured output.

    ``statement_id`` and ``operation`` are also set as record attributes so
    plain formatters can reference them.
    """
    if not logger.isEnabledFor(level):
        return
    record = logger.makeRecord(logger.name, level, "(unknown file)", 0, message, (), None)
    for field in STATEMENT_FIELDS:
        if field in extra_fields:
            setattr(record, field, extra_fields[field])
    record.extra_fields = extra_fields  # type: ignore[attr-defined]
    logger.handle(record)
