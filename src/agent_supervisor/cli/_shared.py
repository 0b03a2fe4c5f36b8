"""Shared CLI utilities for commands.

This module provides common utilities used across CLI command implementations:
- Standardized exit codes
- Configuration and logger loading with error reporting
"""

from enum import IntEnum
from pathlib import Path
from typing import Any, Never

from rich.console import Console
from structlog.typing import FilteringBoundLogger

from agent_supervisor.config import (
    ConfigLoadError,
    ConfigValidationError,
    SupervisorConfig,
    load_config,
)
from agent_supervisor.utils import create_logger


class ExitCode(IntEnum):
    """Standard exit codes for agent-supervisor commands."""

    SUCCESS = 0
    TASK_FAILED = 1
    LOAD_ERROR = 2
    VALIDATION_ERROR = 3
    NOT_FOUND = 4


def exit_with_error(
    message: str,
    code: ExitCode,
    *,
    console: Console | None = None,
) -> Never:
    """Print an error message and exit with the specified code.

    Args:
        message: The error message to display.
        code: The exit code to use.
        console: Optional Rich console for output. If not provided,
            a new stderr console will be created.

    Raises:
        SystemExit: Always raised with the specified exit code.
    """
    if console is None:
        console = Console(stderr=True)

    console.print(f"[red]Error:[/red] {message}")
    raise SystemExit(code)


def load_config_or_exit(
    config_path: Path | None,
    cli_overrides: dict[str, Any] | None,  # pyright: ignore[reportExplicitAny]
    *,
    console: Console,
) -> SupervisorConfig:
    """Load the effective configuration, exiting with a message on failure."""
    try:
        return load_config(config_path, cli_overrides=cli_overrides)
    except FileNotFoundError as e:
        exit_with_error(
            f"Config file not found: {e.filename}",
            ExitCode.NOT_FOUND,
            console=console,
        )
    except ConfigLoadError as e:
        exit_with_error(
            f"Failed to load config: {e}",
            ExitCode.LOAD_ERROR,
            console=console,
        )
    except ConfigValidationError as e:
        exit_with_error(
            f"Config validation failed: {e}",
            ExitCode.VALIDATION_ERROR,
            console=console,
        )


def create_cli_logger(config: SupervisorConfig) -> FilteringBoundLogger:
    """Create the logger described by the ``[logging]`` section."""
    return create_logger(
        level=config.logging.level.value,
        log_format=config.logging.format.value,  # type: ignore[arg-type]
        log_file=config.logging.file,
    )
