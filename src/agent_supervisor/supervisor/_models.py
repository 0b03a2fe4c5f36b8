"""Data models for the process supervisor.

This module defines the supervisor's per-task record:
- ProcessState: Lifecycle states for a managed agent process
- ManagedProcess: Mutable record owned by the supervisor
"""

from dataclasses import dataclass, field
from enum import StrEnum

import anyio
import pendulum

from agent_supervisor.agents import AgentOutputEvent, ProcessHandle


class ProcessState(StrEnum):
    """Managed process lifecycle states.

    - RUNNING: Process is running normally
    - PAUSED: A rate or usage limit was observed; the process keeps running
    - COMPLETED: Process exited 0 and its output was fully drained
    - FAILED: Non-zero exit, supervision error, authentication failure, or
      lost process reference
    - CANCELLED: Explicitly cancelled
    - TIMED_OUT: Killed after exceeding the maximum task duration

    RUNNING and PAUSED are active; the other four are terminal and never
    overwritten.
    """

    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        """Return True for states that can no longer change."""
        return self not in (ProcessState.RUNNING, ProcessState.PAUSED)


@dataclass(slots=True, eq=False)
class ManagedProcess:
    """The supervisor's record of one task's agent invocation.

    Records are created by ``ProcessSupervisor.start()`` (or ``restore()``),
    mutated only by the supervisor, and removed only by ``remove()`` or
    ``clear_all()``.

    Attributes:
        task_id: Task this process runs for (unique within a supervisor).
        project_id: Project the task belongs to.
        agent_id: Id of the adapter that spawned the process.
        process: Handle to the agent process, None if the reference was lost.
        state: Current lifecycle state.
        started_at: When the process was started.
        output_log: Classified output in arrival order.
        error: Failure reason, set only for FAILED and TIMED_OUT.
        exit_code: Process exit code once it has exited.
        timeout_handle: Cancel scope of the armed duration timer, if any.
    """

    task_id: str
    project_id: str
    agent_id: str
    process: ProcessHandle | None
    state: ProcessState = ProcessState.RUNNING
    started_at: pendulum.DateTime = field(default_factory=lambda: pendulum.now("UTC"))
    output_log: list[AgentOutputEvent] = field(default_factory=list)
    error: str | None = None
    exit_code: int | None = None
    timeout_handle: anyio.CancelScope | None = field(default=None, repr=False)

    @property
    def is_terminal(self) -> bool:
        """Return True if the record reached a terminal state."""
        return self.state.is_terminal

    @property
    def pid(self) -> int | None:
        """Return the process id, or None without a process reference."""
        return self.process.pid if self.process is not None else None
