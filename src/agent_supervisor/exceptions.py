"""Agent supervisor exceptions."""

from pathlib import Path
from typing import Any


class AgentSupervisorError(Exception):
    """Base exception for agent supervisor errors."""


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigError(AgentSupervisorError):
    """Base exception for configuration errors."""


class ConfigLoadError(ConfigError):
    """Raised when configuration cannot be loaded or parsed."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        """Initialize with error message and location context.

        Args:
            message: Human-readable error message.
            path: Path to the file that failed to load.
            line: Line number of the error, if known.
            column: Column number of the error, if known.
        """
        super().__init__(message)
        self.path: Path | None = path
        self.line: int | None = line
        self.column: int | None = column


class ConfigValidationError(ConfigError):
    """Raised when a configuration value fails validation."""

    def __init__(
        self,
        message: str,
        *,
        key: str,
        value: Any,  # noqa: ANN401
        expected: str,
    ) -> None:
        """Initialize with error message and validation context.

        Args:
            message: Human-readable error message.
            key: Dotted path of the offending configuration key.
            value: The invalid value.
            expected: Description of what was expected.
        """
        super().__init__(message)
        self.key: str = key
        self.value: Any = value
        self.expected: str = expected


# =============================================================================
# Agent Exceptions
# =============================================================================


class AgentError(AgentSupervisorError):
    """Base exception for agent adapter errors."""


class AdapterNotFoundError(AgentError, KeyError):
    """Raised when no agent adapter resolves for an id or the default.

    Attributes:
        agent_id: The adapter id that was requested, or None for the default.
    """

    def __init__(self, message: str, *, agent_id: str | None = None) -> None:
        """Initialize with error message and adapter context.

        Args:
            message: Human-readable error message.
            agent_id: The adapter id that could not be resolved.
        """
        super().__init__(message)
        self.agent_id: str | None = agent_id

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class AgentUnavailableError(AgentError):
    """Raised when an agent adapter reports that its CLI is not available."""

    def __init__(self, message: str, *, agent_id: str | None = None) -> None:
        """Initialize with error message and adapter context.

        Args:
            message: Human-readable error message.
            agent_id: The id of the unavailable adapter.
        """
        super().__init__(message)
        self.agent_id: str | None = agent_id


class AgentSpawnError(AgentError):
    """Raised when an agent process cannot be spawned.

    Attributes:
        agent_id: The id of the adapter that failed to spawn.
        cause: The underlying exception that caused the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        agent_id: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and spawn context.

        Args:
            message: Human-readable error message.
            agent_id: The id of the adapter that failed to spawn.
            cause: The underlying exception that caused the failure.
        """
        super().__init__(message)
        self.agent_id: str | None = agent_id
        self.cause: Exception | None = cause


class CredentialError(AgentError):
    """Raised when an adapter cannot load the credentials it needs."""

    def __init__(
        self,
        message: str,
        *,
        agent_id: str | None = None,
        variable: str | None = None,
    ) -> None:
        """Initialize with error message and credential context.

        Args:
            message: Human-readable error message.
            agent_id: The id of the adapter whose credentials are missing.
            variable: The environment variable that was expected.
        """
        super().__init__(message)
        self.agent_id: str | None = agent_id
        self.variable: str | None = variable


# =============================================================================
# Supervisor Exceptions
# =============================================================================


class SupervisorError(AgentSupervisorError):
    """Base exception for supervisor errors."""


class SupervisorNotRunningError(SupervisorError):
    """Raised when work is submitted to a supervisor outside its context."""


class StreamProcessingError(SupervisorError):
    """Raised when consuming a process output channel fails.

    Attributes:
        task_id: The task whose stream failed.
        stream: Which channel failed ("stdout" or "stderr").
        cause: The underlying exception.
    """

    def __init__(
        self,
        message: str,
        *,
        task_id: str | None = None,
        stream: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        """Initialize with error message and stream context.

        Args:
            message: Human-readable error message.
            task_id: The task whose stream failed.
            stream: Which channel failed.
            cause: The underlying exception.
        """
        super().__init__(message)
        self.task_id: str | None = task_id
        self.stream: str | None = stream
        self.cause: BaseException | None = cause
