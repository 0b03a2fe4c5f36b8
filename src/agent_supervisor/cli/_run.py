"""Async runner behind the ``run`` command.

Runs one task per prompt through a ProcessSupervisor, admitting a new task
only while the supervisor has a free slot, and waits for every started task
to reach a terminal state.
"""

from collections.abc import Callable, Sequence
from pathlib import Path

import anyio
from rich.console import Console
from structlog.typing import FilteringBoundLogger

from agent_supervisor.agents import AgentInvokeOptions, AgentRegistry
from agent_supervisor.config import SupervisorConfig
from agent_supervisor.exceptions import AgentError
from agent_supervisor.supervisor import (
    ConsoleEventSink,
    EventBus,
    ProcessState,
    ProcessSupervisor,
)

POLL_INTERVAL_SECONDS = 0.1


async def _wait_until(predicate: Callable[[], bool]) -> None:
    while not predicate():
        await anyio.sleep(POLL_INTERVAL_SECONDS)


async def run_prompts(  # noqa: PLR0913
    prompts: Sequence[str],
    *,
    config: SupervisorConfig,
    registry: AgentRegistry,
    working_directory: Path,
    project_id: str,
    agent_id: str | None,
    console: Console,
    logger: FilteringBoundLogger,
    show_output: bool = True,
) -> dict[str, ProcessState]:
    """Run each prompt as a task and collect the final states.

    A task whose agent cannot be started is reported and counted as
    FAILED without stopping the remaining tasks.

    Returns:
        The final state of every task, keyed by task id.
    """
    bus = EventBus(logger=logger)
    sink = ConsoleEventSink(console, show_output=show_output)
    results: dict[str, ProcessState] = {}
    started: list[str] = []

    with bus.subscribe(sink):
        async with ProcessSupervisor.from_config(
            config, registry, bus, logger=logger
        ) as supervisor:
            for index, prompt in enumerate(prompts, start=1):
                task_id = f"task-{index}"
                await _wait_until(supervisor.can_start_new)
                options = AgentInvokeOptions(
                    prompt=prompt,
                    working_directory=working_directory,
                )
                try:
                    await supervisor.start(task_id, project_id, options, agent_id)
                except AgentError as e:
                    console.print(f"[red]\\[{task_id}] could not start:[/red] {e}")
                    logger.warning("task_start_failed", task_id=task_id, error=str(e))
                    results[task_id] = ProcessState.FAILED
                    continue
                started.append(task_id)

            def all_finished() -> bool:
                for task_id in started:
                    managed = supervisor.get(task_id)
                    if managed is not None and not managed.is_terminal:
                        return False
                return True

            await _wait_until(all_finished)

            for task_id in started:
                managed = supervisor.get(task_id)
                results[task_id] = (
                    managed.state if managed is not None else ProcessState.FAILED
                )

    task_ids = [f"task-{index}" for index in range(1, len(prompts) + 1)]
    return {task_id: results[task_id] for task_id in task_ids}
