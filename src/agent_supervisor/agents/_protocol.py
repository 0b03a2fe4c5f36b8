"""Protocol definitions for agent adapters.

This module defines the interfaces that decouple the supervisor from any
specific agent CLI:
- ProcessHandle: A spawned agent process
- AgentAdapter: Spawns processes and classifies their output
- CredentialPreloader: Optional capability for adapters that load credentials
  before spawning
"""

from collections.abc import AsyncIterable, AsyncIterator
from typing import Protocol, runtime_checkable

from ._models import AgentInvokeOptions, AgentOutputEvent, UsageLimitResult


@runtime_checkable
class ProcessHandle(Protocol):
    """Protocol for a spawned agent process.

    The supervisor exclusively owns the handle and is the only caller of
    ``kill()``. Both output channels reach end-of-stream once the process
    exits and its pipes close.
    """

    @property
    def pid(self) -> int:
        """Return the OS process id."""
        ...

    @property
    def stdout(self) -> AsyncIterable[bytes]:
        """Return the standard output byte stream."""
        ...

    @property
    def stderr(self) -> AsyncIterable[bytes]:
        """Return the standard error byte stream."""
        ...

    async def wait(self) -> int:
        """Wait for the process to exit.

        Returns:
            The process exit code.
        """
        ...

    def kill(self) -> None:
        """Terminate the process."""
        ...


@runtime_checkable
class AgentAdapter(Protocol):
    """Protocol for agent adapters.

    An adapter translates the generic spawn/parse/classify contract into a
    specific agent CLI's invocation and output format.
    """

    @property
    def id(self) -> str:
        """Return the unique adapter id."""
        ...

    @property
    def name(self) -> str:
        """Return the human-readable adapter name."""
        ...

    async def is_available(self) -> bool:
        """Return True if the agent CLI can be invoked."""
        ...

    async def invoke(self, options: AgentInvokeOptions) -> ProcessHandle:
        """Spawn the agent for a task.

        Args:
            options: Prompt, working directory and adapter options.

        Returns:
            A handle to the spawned process.

        Raises:
            AgentSpawnError: If the process cannot be spawned.
        """
        ...

    def parse_output(self, stream: AsyncIterable[bytes]) -> AsyncIterator[AgentOutputEvent]:
        """Decode a stdout byte stream into classified events."""
        ...

    def detect_auth_error(self, message: str) -> bool:
        """Return True if an error message indicates an authentication failure."""
        ...

    def detect_rate_limit(self, line: str) -> bool:
        """Return True if a line indicates a transient rate limit."""
        ...

    def detect_usage_limit(self, line: str) -> UsageLimitResult:
        """Detect a usage limit and, when possible, its reset time."""
        ...


@runtime_checkable
class CredentialPreloader(Protocol):
    """Capability for adapters that must load credentials before spawning."""

    async def load_credentials(self) -> None:
        """Load credentials.

        Raises:
            CredentialError: If the credentials cannot be loaded.
        """
        ...
