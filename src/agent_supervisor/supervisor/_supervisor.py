"""Process supervisor for agent subprocesses.

This module provides the ProcessSupervisor class, which owns the table of
in-flight agent work, drives each task's state machine, enforces the
concurrency and duration limits, and publishes lifecycle events.

Scheduling is cooperative (anyio). Every check-and-transition on a record
runs without an intervening await, so the table needs no lock.
"""

from types import TracebackType
from typing import Self, final

import anyio
import anyio.abc
import pendulum
from structlog.typing import FilteringBoundLogger

from agent_supervisor.agents import (
    AgentAdapter,
    AgentInvokeOptions,
    AgentOutputEvent,
    AgentRegistry,
    CredentialPreloader,
)
from agent_supervisor.config import SupervisorConfig
from agent_supervisor.exceptions import (
    AdapterNotFoundError,
    AgentUnavailableError,
    SupervisorNotRunningError,
)
from agent_supervisor.utils import get_default_logger

from ._events import EventBus, ProcessEvent, ProcessEventType
from ._models import ManagedProcess, ProcessState
from ._output import OutputStreamProcessor

SECONDS_PER_MINUTE: float = 60

AUTH_FAILED_MESSAGE = "Authentication failed"
STALE_REFERENCE_MESSAGE = "Process reference lost"
UNEXPECTED_FAILURE_MESSAGE = "Process failed unexpectedly"


def _describe_error(error: BaseException) -> str:
    # Task groups wrap failures; report the underlying one when there is one.
    while isinstance(error, BaseExceptionGroup) and len(error.exceptions) == 1:
        error = error.exceptions[0]
    return str(error) or UNEXPECTED_FAILURE_MESSAGE


@final
class _RecordObserver:
    """Routes one record's classified output back into the supervisor."""

    __slots__ = ("_agent_id", "_managed", "_supervisor")

    def __init__(
        self,
        supervisor: "ProcessSupervisor",
        managed: ManagedProcess,
        agent_id: str,
    ) -> None:
        self._supervisor = supervisor
        self._managed = managed
        self._agent_id = agent_id

    def on_output(self, event: AgentOutputEvent) -> None:
        self._supervisor._record_output(self._managed, event)  # noqa: SLF001

    def on_usage_limit(self, event: AgentOutputEvent) -> None:
        self._supervisor._pause(  # noqa: SLF001
            self._managed,
            ProcessEventType.USAGE_LIMITED,
            reset_at=event.reset_at,
        )

    def on_rate_limit(self, event: AgentOutputEvent) -> None:  # noqa: ARG002
        self._supervisor._pause(self._managed, ProcessEventType.RATE_LIMITED)  # noqa: SLF001

    def on_auth_failure(self, event: AgentOutputEvent) -> None:  # noqa: ARG002
        self._supervisor._fail_authentication(self._managed, self._agent_id)  # noqa: SLF001


@final
class ProcessSupervisor:
    """Supervises agent processes on behalf of a task queue.

    The supervisor is an async context manager owning an anyio task group.
    ``start()`` spawns an agent and returns its record immediately; the
    record is then supervised in the background until the process has
    exited *and* both output channels are drained, at which point the
    terminal state is decided and published.

    Admission control is limited to ``can_start_new()``; queuing is the
    caller's responsibility.

    A PAUSED record is still supervised: when its process exits it becomes
    COMPLETED or FAILED, and when the duration limit elapses it is killed
    and becomes TIMED_OUT. ``cancel()`` only acts on RUNNING records.

    Example:
        >>> async with ProcessSupervisor(registry, bus) as supervisor:
        ...     if supervisor.can_start_new():
        ...         await supervisor.start("task-1", "project-1", options)
    """

    __slots__ = (
        "_event_bus",
        "_logger",
        "_max_concurrent",
        "_max_task_duration_minutes",
        "_processes",
        "_registry",
        "_start_locks",
        "_task_group",
    )

    def __init__(
        self,
        registry: AgentRegistry,
        event_bus: EventBus | None = None,
        *,
        max_concurrent: int = 1,
        max_task_duration_minutes: int = 15,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the supervisor.

        Args:
            registry: Resolves adapters by id or default.
            event_bus: Bus that lifecycle events are published to.
            max_concurrent: Maximum running processes (clamped to >= 1).
            max_task_duration_minutes: Duration limit per task, 0 disables it.
            logger: Logger for supervision diagnostics.
        """
        self._registry = registry
        self._logger: FilteringBoundLogger = logger or get_default_logger()
        self._event_bus = event_bus or EventBus(logger=self._logger)
        self._max_concurrent = max(1, max_concurrent)
        self._max_task_duration_minutes = max(0, max_task_duration_minutes)
        self._processes: dict[str, ManagedProcess] = {}
        self._start_locks: dict[str, anyio.Lock] = {}
        self._task_group: anyio.abc.TaskGroup | None = None

    @classmethod
    def from_config(
        cls,
        config: SupervisorConfig,
        registry: AgentRegistry,
        event_bus: EventBus | None = None,
        *,
        logger: FilteringBoundLogger | None = None,
    ) -> Self:
        """Create a supervisor using the limits from configuration."""
        return cls(
            registry,
            event_bus,
            max_concurrent=config.max_concurrent,
            max_task_duration_minutes=config.max_task_duration_minutes,
            logger=logger,
        )

    async def __aenter__(self) -> Self:
        task_group = anyio.create_task_group()
        await task_group.__aenter__()
        self._task_group = task_group
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        task_group = self._task_group
        self._task_group = None
        self.clear_all()
        if task_group is None:
            return None
        task_group.cancel_scope.cancel()
        return await task_group.__aexit__(exc_type, exc_val, exc_tb)

    # -------------------------------------------------------------------------
    # Limits
    # -------------------------------------------------------------------------

    @property
    def event_bus(self) -> EventBus:
        """Return the bus lifecycle events are published to."""
        return self._event_bus

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    def set_max_concurrent(self, value: int) -> None:
        """Set the maximum number of running processes (at least 1)."""
        self._max_concurrent = max(1, value)

    @property
    def max_task_duration_minutes(self) -> int:
        return self._max_task_duration_minutes

    def set_max_task_duration(self, minutes: int) -> None:
        """Set the duration limit for tasks started from now on (0 = no limit)."""
        self._max_task_duration_minutes = max(0, minutes)
        self._logger.debug(
            "max_task_duration_set",
            minutes=self._max_task_duration_minutes,
        )

    def get_running_count(self) -> int:
        """Return the number of records in the RUNNING state."""
        return sum(
            1 for managed in self._processes.values() if managed.state == ProcessState.RUNNING
        )

    def can_start_new(self) -> bool:
        """Return True if another process may be started."""
        return self.get_running_count() < self._max_concurrent

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(
        self,
        task_id: str,
        project_id: str,
        options: AgentInvokeOptions,
        agent_id: str | None = None,
    ) -> ManagedProcess:
        """Start an agent process for a task.

        If the task already has a RUNNING record, that record is returned
        and nothing is spawned; concurrent calls for the same task are
        serialized so only one of them spawns.

        Args:
            task_id: Task to run.
            project_id: Project the task belongs to.
            options: Prompt, working directory and adapter options.
            agent_id: Adapter to use, or None for the registry default.

        Returns:
            The task's record, in the RUNNING state.

        Raises:
            SupervisorNotRunningError: If called outside ``async with``.
            AdapterNotFoundError: If no adapter resolves.
            AgentUnavailableError: If the adapter reports it is unavailable.
            CredentialError: If the adapter cannot load its credentials.
            AgentSpawnError: If the process cannot be spawned.
        """
        task_group = self._require_task_group()
        lock = self._start_locks.setdefault(task_id, anyio.Lock())

        async with lock:
            existing = self._processes.get(task_id)
            if existing is not None:
                if existing.state == ProcessState.RUNNING:
                    self._logger.debug("process_already_running", task_id=task_id)
                    return existing
                self._discard(existing)

            adapter = self._resolve_adapter(agent_id)
            log = self._logger.bind(task_id=task_id, agent_id=adapter.id)

            if not await adapter.is_available():
                msg = f"Agent '{adapter.name}' is not available. Is it installed?"
                raise AgentUnavailableError(msg, agent_id=adapter.id)

            if isinstance(adapter, CredentialPreloader):
                log.debug("loading_credentials")
                await adapter.load_credentials()

            handle = await adapter.invoke(options)

            managed = ManagedProcess(
                task_id=task_id,
                project_id=project_id,
                agent_id=adapter.id,
                process=handle,
            )
            self._processes[task_id] = managed
            log.info("process_started", pid=handle.pid, project_id=project_id)
            self._publish(
                ProcessEvent(task_id, ProcessEventType.STARTED, process=managed)
            )

            self._arm_timeout(task_group, managed)
            task_group.start_soon(
                self._supervise,
                managed,
                adapter,
                name=f"supervise:{task_id}",
            )
            return managed

    def restore(
        self,
        task_id: str,
        project_id: str,
        agent_id: str,
        started_at: pendulum.DateTime | None = None,
    ) -> ManagedProcess:
        """Track a task believed to be running whose process handle is gone.

        Used to re-hydrate records after a restart; ``cleanup_stale()``
        then fails them. A RUNNING record for the task is returned as is.

        Returns:
            The task's record.
        """
        existing = self._processes.get(task_id)
        if existing is not None:
            if existing.state == ProcessState.RUNNING:
                return existing
            self._discard(existing)

        managed = ManagedProcess(
            task_id=task_id,
            project_id=project_id,
            agent_id=agent_id,
            process=None,
            started_at=started_at or pendulum.now("UTC"),
        )
        self._processes[task_id] = managed
        self._logger.debug("process_restored", task_id=task_id, agent_id=agent_id)
        return managed

    def cancel(self, task_id: str) -> bool:
        """Cancel a running process.

        Returns:
            True if the process was cancelled, False if the task is unknown
            or not RUNNING (nothing is changed).
        """
        managed = self._processes.get(task_id)
        if managed is None or managed.state != ProcessState.RUNNING:
            return False

        self._disarm_timeout(managed)
        if managed.process is not None:
            managed.process.kill()
        managed.state = ProcessState.CANCELLED
        self._logger.info("process_cancelled", task_id=task_id)
        self._publish(ProcessEvent(task_id, ProcessEventType.CANCELLED))
        return True

    def resume(self, task_id: str) -> bool:
        """Return a PAUSED record to RUNNING.

        Paused records never resume on their own; callers reset them once
        the limit has passed.

        Returns:
            True if the record was paused and is now running.
        """
        managed = self._processes.get(task_id)
        if managed is None or managed.state != ProcessState.PAUSED:
            return False
        managed.state = ProcessState.RUNNING
        self._logger.info("process_resumed", task_id=task_id)
        return True

    def cleanup_stale(self) -> int:
        """Fail RUNNING records that have no process reference.

        Records with a process reference are left alone; their exit and
        timeout paths decide their fate.

        Returns:
            The number of records failed.
        """
        cleaned = 0
        for managed in list(self._processes.values()):
            if managed.state != ProcessState.RUNNING or managed.process is not None:
                continue
            self._disarm_timeout(managed)
            managed.state = ProcessState.FAILED
            managed.error = STALE_REFERENCE_MESSAGE
            self._logger.warning("process_reference_lost", task_id=managed.task_id)
            self._publish(
                ProcessEvent(
                    managed.task_id,
                    ProcessEventType.FAILED,
                    error=managed.error,
                )
            )
            cleaned += 1
        self._logger.debug("cleanup_stale_completed", cleaned=cleaned)
        return cleaned

    def clear_all(self) -> None:
        """Kill every active process and forget all records.

        Kill failures are logged and do not stop the rest from being
        cleared.
        """
        for managed in self._processes.values():
            self._disarm_timeout(managed)
            if managed.is_terminal or managed.process is None:
                continue
            try:
                managed.process.kill()
            except Exception:  # noqa: BLE001
                self._logger.warning(
                    "process_kill_failed",
                    task_id=managed.task_id,
                    exc_info=True,
                )
        self._processes.clear()
        self._start_locks.clear()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, task_id: str) -> ManagedProcess | None:
        """Return the record for a task, or None."""
        return self._processes.get(task_id)

    def get_all(self) -> list[ManagedProcess]:
        """Return every record."""
        return list(self._processes.values())

    def get_running(self) -> list[ManagedProcess]:
        """Return the records in the RUNNING state."""
        return [
            managed
            for managed in self._processes.values()
            if managed.state == ProcessState.RUNNING
        ]

    def get_output_log(self, task_id: str) -> list[AgentOutputEvent]:
        """Return a copy of a task's output log (empty for unknown tasks)."""
        managed = self._processes.get(task_id)
        return list(managed.output_log) if managed is not None else []

    def remove(self, task_id: str) -> bool:
        """Stop tracking a task.

        Only the duration timer is disarmed; a still-running process is not
        killed.

        Returns:
            True if a record was removed.
        """
        managed = self._processes.pop(task_id, None)
        if managed is None:
            return False
        self._disarm_timeout(managed)
        lock = self._start_locks.get(task_id)
        if lock is not None and not lock.locked():
            del self._start_locks[task_id]
        return True

    # -------------------------------------------------------------------------
    # Supervision
    # -------------------------------------------------------------------------

    def _require_task_group(self) -> anyio.abc.TaskGroup:
        if self._task_group is None:
            msg = "ProcessSupervisor must be entered with 'async with' before use"
            raise SupervisorNotRunningError(msg)
        return self._task_group

    def _resolve_adapter(self, agent_id: str | None) -> AgentAdapter:
        if agent_id is not None:
            adapter = self._registry.get(agent_id)
            if adapter is None:
                msg = f"Agent adapter '{agent_id}' not found"
                raise AdapterNotFoundError(msg, agent_id=agent_id)
            return adapter
        return self._registry.get_default()

    def _is_current(self, managed: ManagedProcess) -> bool:
        return self._processes.get(managed.task_id) is managed

    def _discard(self, managed: ManagedProcess) -> None:
        """Drop a record that is being replaced by a new start."""
        self._disarm_timeout(managed)
        del self._processes[managed.task_id]
        if not managed.is_terminal and managed.process is not None:
            # A paused process is still alive; nobody would supervise it.
            try:
                managed.process.kill()
            except Exception:  # noqa: BLE001
                self._logger.warning(
                    "process_kill_failed",
                    task_id=managed.task_id,
                    exc_info=True,
                )
        self._logger.debug("process_discarded", task_id=managed.task_id)

    async def _supervise(self, managed: ManagedProcess, adapter: AgentAdapter) -> None:
        """Drain output and wait for exit, then decide the terminal state."""
        handle = managed.process
        assert handle is not None  # noqa: S101
        processor = OutputStreamProcessor(
            managed.task_id,
            adapter,
            handle,
            _RecordObserver(self, managed, adapter.id),
            logger=self._logger,
        )

        try:
            async with anyio.create_task_group() as join:
                join.start_soon(processor.run, name=f"output:{managed.task_id}")
                exit_code = await handle.wait()
        except Exception as e:
            self._logger.exception("supervision_failed", task_id=managed.task_id)
            self._finish(managed, ProcessState.FAILED, error=_describe_error(e))
            return

        managed.exit_code = exit_code
        if exit_code == 0:
            self._finish(managed, ProcessState.COMPLETED, exit_code=exit_code)
        else:
            self._finish(
                managed,
                ProcessState.FAILED,
                error=f"Process exited with code {exit_code}",
            )

    def _finish(
        self,
        managed: ManagedProcess,
        state: ProcessState,
        *,
        error: str | None = None,
        exit_code: int | None = None,
    ) -> None:
        """Apply the exit-path terminal transition unless one already won."""
        self._disarm_timeout(managed)
        if not self._is_current(managed) or managed.is_terminal:
            self._logger.debug(
                "terminal_transition_skipped",
                task_id=managed.task_id,
                state=managed.state.value,
                attempted=state.value,
            )
            return

        managed.state = state
        if state == ProcessState.COMPLETED:
            self._logger.info("process_completed", task_id=managed.task_id)
            self._publish(
                ProcessEvent(
                    managed.task_id,
                    ProcessEventType.COMPLETED,
                    exit_code=exit_code,
                )
            )
        else:
            managed.error = error
            self._logger.info("process_failed", task_id=managed.task_id, error=error)
            self._publish(
                ProcessEvent(managed.task_id, ProcessEventType.FAILED, error=error)
            )

    def _arm_timeout(
        self,
        task_group: anyio.abc.TaskGroup,
        managed: ManagedProcess,
    ) -> None:
        minutes = self._max_task_duration_minutes
        if minutes <= 0:
            return
        scope = anyio.CancelScope()
        managed.timeout_handle = scope
        task_group.start_soon(
            self._run_timeout,
            managed,
            scope,
            minutes,
            name=f"timeout:{managed.task_id}",
        )

    async def _run_timeout(
        self,
        managed: ManagedProcess,
        scope: anyio.CancelScope,
        minutes: int,
    ) -> None:
        with scope:
            await anyio.sleep(minutes * SECONDS_PER_MINUTE)
            if managed.timeout_handle is scope:
                self._handle_timeout(managed, minutes)

    def _handle_timeout(self, managed: ManagedProcess, minutes: int) -> None:
        managed.timeout_handle = None
        if not self._is_current(managed) or managed.is_terminal:
            return

        self._logger.info(
            "process_timed_out",
            task_id=managed.task_id,
            duration_minutes=minutes,
        )
        if managed.process is not None:
            try:
                managed.process.kill()
            except Exception:  # noqa: BLE001
                self._logger.warning(
                    "process_kill_failed",
                    task_id=managed.task_id,
                    exc_info=True,
                )

        managed.state = ProcessState.TIMED_OUT
        managed.error = f"Task exceeded maximum duration of {minutes} minutes"
        self._publish(
            ProcessEvent(
                managed.task_id,
                ProcessEventType.TIMED_OUT,
                duration_minutes=minutes,
            )
        )

    def _disarm_timeout(self, managed: ManagedProcess) -> None:
        scope = managed.timeout_handle
        if scope is not None:
            managed.timeout_handle = None
            scope.cancel()

    # -------------------------------------------------------------------------
    # Stream observer callbacks
    # -------------------------------------------------------------------------

    def _record_output(self, managed: ManagedProcess, event: AgentOutputEvent) -> None:
        if not self._is_current(managed):
            return
        managed.output_log.append(event)
        self._publish(
            ProcessEvent(managed.task_id, ProcessEventType.OUTPUT, output=event)
        )

    def _pause(
        self,
        managed: ManagedProcess,
        event_type: ProcessEventType,
        *,
        reset_at: pendulum.DateTime | None = None,
    ) -> None:
        if not self._is_current(managed) or managed.is_terminal:
            return
        managed.state = ProcessState.PAUSED
        self._logger.info(
            "process_paused",
            task_id=managed.task_id,
            reason=event_type.value,
            reset_at=reset_at.to_iso8601_string() if reset_at is not None else None,
        )
        self._publish(ProcessEvent(managed.task_id, event_type, reset_at=reset_at))

    def _fail_authentication(self, managed: ManagedProcess, agent_id: str) -> None:
        if not self._is_current(managed) or managed.is_terminal:
            return
        self._disarm_timeout(managed)
        managed.state = ProcessState.FAILED
        managed.error = AUTH_FAILED_MESSAGE
        self._logger.warning(
            "process_auth_failed",
            task_id=managed.task_id,
            agent_id=agent_id,
        )
        self._publish(
            ProcessEvent(managed.task_id, ProcessEventType.AUTH_FAILED, agent_id=agent_id)
        )
        # The agent cannot make progress; nothing would time it out any more.
        if managed.process is not None:
            try:
                managed.process.kill()
            except Exception:  # noqa: BLE001
                self._logger.warning(
                    "process_kill_failed",
                    task_id=managed.task_id,
                    exc_info=True,
                )

    def _publish(self, event: ProcessEvent) -> None:
        self._event_bus.publish(event)
