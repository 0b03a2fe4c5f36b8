"""Logging utilities for the agent supervisor.

This module provides standalone structlog logger factories that write
JSON-formatted or text-formatted logs to a file or to stderr. Each logger
is self-contained and does not modify global structlog configuration.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from os import getenv
from pathlib import Path
from typing import Literal, cast

import structlog
from structlog.typing import FilteringBoundLogger

LogFormatType = Literal["json", "text"]

ENV_DEBUG = "AGENT_SUPERVISOR_DEBUG"
ENV_LOG_LEVEL = "AGENT_SUPERVISOR_LOG_LEVEL"


def _get_log_level() -> int:
    """Get the log level from environment variables.

    Checks AGENT_SUPERVISOR_DEBUG first (sets DEBUG if present), then
    AGENT_SUPERVISOR_LOG_LEVEL. Defaults to INFO if neither is set.

    Returns:
        The logging level as an integer.
    """
    if getenv(ENV_DEBUG, None):
        return logging.DEBUG

    log_levels = logging.getLevelNamesMapping()
    return log_levels.get(getenv(ENV_LOG_LEVEL, "info").upper(), logging.INFO)


def _log_level_from_string(level: str, *, respect_env: bool = False) -> int:
    """Convert a log level string to a logging level integer.

    Args:
        level: Log level string (debug, info, warning, error).
        respect_env: If True, AGENT_SUPERVISOR_DEBUG overrides to DEBUG level.

    Returns:
        The logging level as an integer.
    """
    if respect_env and getenv(ENV_DEBUG, None):
        return logging.DEBUG

    log_levels = logging.getLevelNamesMapping()
    return log_levels.get(level.upper(), logging.INFO)


def _build_processors(log_format: LogFormatType) -> list[structlog.typing.Processor]:
    processors: list[structlog.typing.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if log_format == "json":
        # Add dict_tracebacks for structured exception logging in JSON
        processors.append(structlog.processors.dict_tracebacks)
        processors.append(structlog.processors.JSONRenderer())
    else:
        # Text format: "timestamp [level] event key=value ..."
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    return processors


def _create_file_logger(
    log_file_path: str,
    *,
    log_level: int,
    log_format: LogFormatType,
    max_bytes: int | None = None,
    backup_count: int | None = None,
) -> FilteringBoundLogger:
    """Create a standalone structlog logger writing to the specified file.

    Args:
        log_file_path: Path to the log file (will be opened in append mode).
        log_level: Effective log level.
        log_format: Output format, either "json" or "text".
        max_bytes: Maximum size in bytes before rotation. Must be set with
            backup_count for rotation to be enabled.
        backup_count: Number of rotated log files to keep. Must be set with
            max_bytes for rotation to be enabled.

    Returns:
        A configured FilteringBoundLogger instance.
    """
    log_path = Path(log_file_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    raw_logger: object
    if max_bytes is not None and backup_count is not None:
        # Use stdlib logging with RotatingFileHandler for proper rotation support
        stdlib_logger = logging.getLogger(
            f"agent_supervisor.{log_path.stem}.{id(log_path)}"
        )
        stdlib_logger.handlers.clear()
        stdlib_logger.propagate = False
        stdlib_logger.setLevel(log_level)

        handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        handler.setLevel(log_level)
        # structlog renders the message, the handler only writes it
        handler.setFormatter(logging.Formatter("%(message)s"))
        stdlib_logger.addHandler(handler)
        raw_logger = stdlib_logger
    else:
        raw_logger = structlog.WriteLoggerFactory(file=log_path.open("a"))()

    return cast(
        "FilteringBoundLogger",
        structlog.wrap_logger(
            raw_logger,
            processors=_build_processors(log_format),
            wrapper_class=structlog.make_filtering_bound_logger(log_level),
            context_class=dict,
        ),
    )


def create_logger(
    *,
    level: str | None = None,
    log_format: LogFormatType = "json",
    log_file: str = "",
    max_bytes: int | None = None,
    backup_count: int | None = None,
    **context: object,
) -> FilteringBoundLogger:
    """Create a logger for the supervisor and its collaborators.

    Creates a standalone structlog logger that writes structured logs to
    ``log_file``, or to stderr when no file is given.

    The log level is determined by (in order of precedence):
    1. AGENT_SUPERVISOR_DEBUG environment variable (if set, enables DEBUG level)
    2. The `level` parameter (if provided)
    3. AGENT_SUPERVISOR_LOG_LEVEL environment variable
    4. Default: INFO

    Args:
        level: Optional log level string (debug, info, warning, error).
        log_format: Output format, either "json" or "text".
        log_file: Path to log file (stderr if empty).
        max_bytes: Maximum size in bytes before rotation.
        backup_count: Number of rotated log files to keep.
        **context: Key/value pairs bound to every entry.

    Returns:
        A FilteringBoundLogger instance.
    """
    effective_level = (
        _log_level_from_string(level, respect_env=True)
        if level is not None
        else _get_log_level()
    )

    if log_file:
        logger = _create_file_logger(
            log_file,
            log_level=effective_level,
            log_format=log_format,
            max_bytes=max_bytes,
            backup_count=backup_count,
        )
    else:
        logger = cast(
            "FilteringBoundLogger",
            structlog.wrap_logger(
                structlog.PrintLoggerFactory(file=sys.stderr)(),
                processors=_build_processors(log_format),
                wrapper_class=structlog.make_filtering_bound_logger(effective_level),
                context_class=dict,
            ),
        )

    if context:
        logger = logger.bind(**context)
    return logger


def get_default_logger() -> FilteringBoundLogger:
    """Return a stderr text logger honoring the environment level overrides."""
    return create_logger(log_format="text")
