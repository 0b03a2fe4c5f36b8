"""Configuration models.

This module defines the Pydantic models for supervisor configuration:
- LogLevel / LogFormat: Logging enums
- LoggingConfig: Logging section
- AgentCommandConfig: One command-line agent adapter
- SupervisorConfig: Top-level configuration
"""

from enum import StrEnum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field


class LogLevel(StrEnum):
    """Log level threshold values.

    Values are ordered from most verbose (debug) to least verbose (error).
    """

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogFormat(StrEnum):
    """Log output format values."""

    JSON = "json"
    TEXT = "text"


class LoggingConfig(BaseModel):
    """Logging configuration section.

    Attributes:
        level: Log level threshold.
        format: Log output format.
        file: Path to log file (empty writes to stderr).
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.TEXT
    file: str = ""


class AgentCommandConfig(BaseModel):
    """Configuration for a command-line agent adapter.

    Attributes:
        name: Human-readable name (defaults to the table key).
        command: Executable followed by the argument template.
        fallback_paths: Locations checked when the executable is not on PATH.
        version_args: Arguments for the availability probe (empty skips it).
        env: Extra environment variables for the agent process.
        credential_env: Environment variables that must be set before spawning.
        model: Default model passed as ``{model}``.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    name: str | None = None
    command: list[str] = Field(min_length=1)
    fallback_paths: list[str] = Field(default_factory=list)
    version_args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    credential_env: list[str] = Field(default_factory=list)
    model: str | None = None


class SupervisorConfig(BaseModel):
    """Top-level supervisor configuration.

    Attributes:
        max_concurrent: Maximum number of running agent processes.
        max_task_duration_minutes: Duration limit per task, 0 disables it.
        default_agent: Adapter id used when a task names none.
        logging: Logging settings.
        agents: Command-line adapters keyed by id.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    max_concurrent: int = Field(default=1, ge=1)
    max_task_duration_minutes: int = Field(default=15, ge=0)
    default_agent: str | None = None
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    agents: dict[str, AgentCommandConfig] = Field(default_factory=dict)
