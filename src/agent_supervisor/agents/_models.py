"""Data models shared by agent adapters and the supervisor.

This module defines the value types that cross the adapter boundary:
- OutputEventType: Classification of a single output line
- AgentOutputEvent: One classified output line
- UsageLimitResult: Result of usage-limit detection
- AgentInvokeOptions: Inputs for spawning an agent process
"""

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

import pendulum


class OutputEventType(StrEnum):
    """Classification of agent output.

    - LOG: Ordinary output
    - ERROR: Error output (the only type checked for authentication failures)
    - PROGRESS: Adapter-reported progress update
    - RATE_LIMIT: Transient throttle with no known reset time
    - USAGE_LIMIT: Quota exhausted, may carry a reset time
    - COMPLETE: Adapter-reported final result
    """

    LOG = "log"
    ERROR = "error"
    PROGRESS = "progress"
    RATE_LIMIT = "rate-limit"
    USAGE_LIMIT = "usage-limit"
    COMPLETE = "complete"


@dataclass(frozen=True, slots=True)
class AgentOutputEvent:
    """Immutable classified output event.

    Attributes:
        type: Classification of the line.
        message: The raw line (without trailing newline).
        timestamp: When the line was observed.
        reset_at: When a usage limit resets, only set for USAGE_LIMIT events.
        session_id: Agent session identifier, if the adapter reports one.
    """

    type: OutputEventType
    message: str
    timestamp: pendulum.DateTime = field(default_factory=lambda: pendulum.now("UTC"))
    reset_at: pendulum.DateTime | None = None
    session_id: str | None = None


@dataclass(frozen=True, slots=True)
class UsageLimitResult:
    """Result of usage-limit detection on a single line."""

    is_usage_limit: bool
    reset_at: pendulum.DateTime | None = None


@dataclass(frozen=True, slots=True)
class AgentInvokeOptions:
    """Options for invoking an agent.

    Attributes:
        prompt: The prompt or instructions for the agent.
        working_directory: Directory the agent runs in.
        context_files: Additional context files to pass along.
        model: Optional model override.
        agent_options: Adapter-specific options, passed through untouched.
    """

    prompt: str
    working_directory: Path
    context_files: tuple[Path, ...] = ()
    model: str | None = None
    agent_options: dict[str, object] = field(default_factory=dict)
