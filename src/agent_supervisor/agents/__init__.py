"""Agent adapters.

This package defines the contract between the supervisor and agent CLIs,
plus the shared implementation most adapters build on.

Key Components:
    - AgentAdapter: Protocol for spawning agents and classifying their output
    - CredentialPreloader: Optional protocol for loading credentials before spawn
    - ProcessHandle: Protocol for a spawned agent process
    - AgentOutputEvent: One classified line of output
    - BaseAgentAdapter: Discovery, spawning and default heuristics
    - CommandAdapter: Adapter driven by an argv template
    - SubprocessHandle: ProcessHandle backed by anyio
    - AgentRegistry: Adapters by id, with a default
"""

from ._base import BaseAgentAdapter, extract_reset_time
from ._command import CommandAdapter
from ._lines import iter_lines
from ._models import (
    AgentInvokeOptions,
    AgentOutputEvent,
    OutputEventType,
    UsageLimitResult,
)
from ._process import SubprocessHandle
from ._protocol import AgentAdapter, CredentialPreloader, ProcessHandle
from ._registry import AgentRegistry

__all__ = [
    "AgentAdapter",
    "AgentInvokeOptions",
    "AgentOutputEvent",
    "AgentRegistry",
    "BaseAgentAdapter",
    "CommandAdapter",
    "CredentialPreloader",
    "OutputEventType",
    "ProcessHandle",
    "SubprocessHandle",
    "UsageLimitResult",
    "extract_reset_time",
    "iter_lines",
]
