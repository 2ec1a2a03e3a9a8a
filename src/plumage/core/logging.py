"""Structured logging infrastructure for Plumage.

Provides structured logging using structlog with learning-specific context
such as species, image_id and reviewer_id. Supports console and JSON output,
optionally to a rotating log file.

Example usage:
    from plumage.core.logging import LearningContext, configure_logging, get_logger, with_context

    # Configure once at startup
    configure_logging(level="DEBUG", format="console")

    # Get a component-specific logger
    logger = get_logger("learning.engine")

    # Log with auto-context
    logger.info("pattern_created", key="pico:Cardenal Rojo")

    # Correlate every entry for one review event
    ctx = LearningContext(species="Cardenal Rojo", image_id="img-42", reviewer_id="u-7")
    with with_context(ctx):
        logger.info("approval_received")  # Includes species, image_id, reviewer_id
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Field names whose values are never written to logs
SENSITIVE_PATTERNS = frozenset({
    "api_key",
    "apikey",
    "service_role",
    "token",
    "secret",
    "password",
    "credential",
    "authorization",
})


@dataclass(frozen=True)
class LearningContext:
    """Immutable context for correlating log entries of one learning event.

    Attributes:
        species: Species context the event applies to.
        image_id: Image the reviewed annotation belongs to.
        reviewer_id: Human reviewer who produced the outcome.
        operation: Engine operation name (e.g., "approval", "correction").
    """

    species: str | None = None
    image_id: str | None = None
    reviewer_id: str | None = None
    operation: str | None = None

    def with_operation(self, operation: str) -> LearningContext:
        """Return a copy of this context for the given operation."""
        return replace(self, operation=operation)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to a dictionary for logging, skipping unset fields."""
        return {
            key: value
            for key, value in (
                ("species", self.species),
                ("image_id", self.image_id),
                ("reviewer_id", self.reviewer_id),
                ("operation", self.operation),
            )
            if value is not None
        }


# ContextVar keeps concurrent review events isolated from each other
_current_context: ContextVar[LearningContext | None] = ContextVar(
    "plumage_context", default=None
)


def get_current_context() -> LearningContext | None:
    """Get the current LearningContext if set."""
    return _current_context.get()


@contextmanager
def with_context(ctx: LearningContext) -> Iterator[LearningContext]:
    """Set the LearningContext for the duration of a block.

    Args:
        ctx: The context whose fields are added to every log entry in the block.

    Yields:
        The LearningContext that was set.
    """
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


def _sanitize_value(key: str, value: Any) -> Any:
    key_lower = key.lower()
    for pattern in SENSITIVE_PATTERNS:
        if pattern in key_lower:
            return "[REDACTED]"
    return value


def _sanitize_event_dict(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that redacts sensitive fields, one level deep."""
    sanitized: EventDict = {}
    for key, value in event_dict.items():
        if isinstance(value, dict):
            sanitized[key] = {k: _sanitize_value(k, v) for k, v in value.items()}
        else:
            sanitized[key] = _sanitize_value(key, value)
    return sanitized


def _add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def _add_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that adds LearningContext fields to log entries.

    Explicitly passed fields take precedence over context fields.
    """
    ctx = get_current_context()
    if ctx is not None:
        for key, value in ctx.to_dict().items():
            event_dict.setdefault(key, value)
    return event_dict


class PlumageLogger:
    """Component logger wrapper around structlog.

    The underlying structlog logger is fetched lazily on every call so that
    loggers created at import time respect configure_logging() called later.
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self._component = component
        self._context: dict[str, Any] = {"component": component, **initial_context}

    def _get_logger(self) -> structlog.stdlib.BoundLogger:
        logger: structlog.stdlib.BoundLogger = structlog.get_logger().bind(**self._context)
        return logger

    def bind(self, **context: Any) -> PlumageLogger:
        """Create a new logger with additional bound context."""
        merged = {**self._context, **context}
        merged.pop("component", None)
        return PlumageLogger(self._component, **merged)

    def debug(self, event: str, **kw: Any) -> None:
        self._get_logger().debug(event, **kw)

    def info(self, event: str, **kw: Any) -> None:
        self._get_logger().info(event, **kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._get_logger().warning(event, **kw)

    def error(self, event: str, **kw: Any) -> None:
        self._get_logger().error(event, **kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Log an error with traceback; call from inside an exception handler."""
        self._get_logger().exception(event, **kw)


def _build_processors(
    renderer: Processor,
    include_timestamps: bool,
    include_context: bool,
) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        _sanitize_event_dict,
    ]
    if include_context:
        processors.append(_add_context)
    if include_timestamps:
        processors.append(_add_timestamp)
    processors.extend([
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        renderer,
    ])
    return processors


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO",
    format: Literal["json", "console"] = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 20,
    backup_count: int = 3,
    include_timestamps: bool = True,
    include_context: bool = True,
) -> None:
    """Configure Plumage structured logging.

    Call once at application startup. Console output goes to stderr; JSON
    output goes to ``file_path`` when given, otherwise to stdout.

    Args:
        level: Minimum log level to capture.
        format: "json" for structured output, "console" for human-readable.
        file_path: Optional rotating log file.
        max_file_size_mb: Maximum log file size before rotation (MB).
        backup_count: Number of rotated log files to keep.
        include_timestamps: Whether to add ISO8601 UTC timestamps.
        include_context: Whether to add LearningContext fields.
    """
    log_level = getattr(logging, level)

    handler: logging.Handler
    if file_path is not None:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            file_path,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
    elif format == "json":
        handler = logging.StreamHandler(sys.stdout)
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    renderer: Processor
    if format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=file_path is None)

    # cache_logger_on_first_use=False so import-time loggers follow runtime config
    structlog.configure(
        processors=_build_processors(renderer, include_timestamps, include_context),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(component: str, **initial_context: Any) -> PlumageLogger:
    """Get a Plumage logger for a component.

    Args:
        component: The component name (e.g., "learning.engine", "storage.supabase").
        **initial_context: Additional context to bind.
    """
    return PlumageLogger(component, **initial_context)


__all__ = [
    "LearningContext",
    "PlumageLogger",
    "SENSITIVE_PATTERNS",
    "configure_logging",
    "get_current_context",
    "get_logger",
    "with_context",
]
