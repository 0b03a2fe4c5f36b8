# pyright: reportUnusedCallResult=false, reportUnusedFunction=false
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing
"""The command-line interface for agent-supervisor."""

from functools import partial
from pathlib import Path
from typing import Annotated, Any

import anyio
from cyclopts import App, Parameter
from rich.console import Console
from rich.table import Table
from structlog.typing import FilteringBoundLogger

from agent_supervisor.agents import AgentRegistry
from agent_supervisor.config import SupervisorConfig, render_config
from agent_supervisor.exceptions import AdapterNotFoundError
from agent_supervisor.supervisor import ProcessState

from ._run import run_prompts
from ._shared import ExitCode, create_cli_logger, exit_with_error, load_config_or_exit

ConfigOption = Annotated[
    Path | None, Parameter(name="--config", help="Path to config file")
]


def create_app(
    console: Console | None = None,
    error_console: Console | None = None,
    *,
    exit_on_error: bool = True,
) -> App:
    if console is None:
        console = Console()
    if error_console is None:
        error_console = Console(stderr=True)
    app = App(
        name="agent-supervisor",
        help="Run AI coding agent CLIs under supervision.",
        help_on_error=True,
        console=console,
        error_console=error_console,
        exit_on_error=exit_on_error,
    )

    def build_registry(
        config_path: Path | None,
        overrides: dict[str, Any] | None,  # pyright: ignore[reportExplicitAny]
    ) -> tuple[SupervisorConfig, AgentRegistry, FilteringBoundLogger]:
        config = load_config_or_exit(config_path, overrides, console=error_console)
        logger = create_cli_logger(config)
        try:
            registry = AgentRegistry.from_config(config, logger=logger)
        except AdapterNotFoundError as e:
            exit_with_error(str(e), ExitCode.VALIDATION_ERROR, console=error_console)
        return config, registry, logger

    @app.command(name="run")
    def run(  # noqa: PLR0913
        *prompts: Annotated[str, Parameter(help="One task is run per prompt.")],
        agent: Annotated[
            str | None, Parameter(help="Agent id (defaults to default_agent).")
        ] = None,
        cwd: Annotated[
            Path | None, Parameter(help="Working directory for the agent.")
        ] = None,
        project: Annotated[str, Parameter(help="Project id for the tasks.")] = "default",
        max_concurrent: Annotated[
            int | None, Parameter(help="Maximum number of running agents.")
        ] = None,
        max_duration: Annotated[
            int | None,
            Parameter(help="Duration limit per task in minutes (0 disables)."),
        ] = None,
        quiet: Annotated[bool, Parameter(help="Hide agent output lines.")] = False,
        config: ConfigOption = None,
    ) -> None:
        """Run one supervised agent task per prompt.

        Exits 0 only if every task completed.
        """
        if not prompts:
            exit_with_error(
                "At least one prompt is required",
                ExitCode.VALIDATION_ERROR,
                console=error_console,
            )

        overrides: dict[str, Any] = {}  # pyright: ignore[reportExplicitAny]
        if max_concurrent is not None:
            overrides["max_concurrent"] = max_concurrent
        if max_duration is not None:
            overrides["max_task_duration_minutes"] = max_duration

        loaded, registry, logger = build_registry(config, overrides or None)
        if len(registry) == 0:
            exit_with_error(
                "No agents configured. Add an agents table to agent-supervisor.toml",
                ExitCode.NOT_FOUND,
                console=error_console,
            )

        results = anyio.run(
            partial(
                run_prompts,
                prompts,
                config=loaded,
                registry=registry,
                working_directory=(cwd or Path.cwd()).resolve(),
                project_id=project,
                agent_id=agent,
                console=console,
                logger=logger,
                show_output=not quiet,
            )
        )

        table = Table(title="Results")
        table.add_column("Task")
        table.add_column("State")
        for task_id, state in results.items():
            color = "green" if state == ProcessState.COMPLETED else "red"
            table.add_row(task_id, f"[{color}]{state.value}[/{color}]")
        console.print(table)

        if any(state != ProcessState.COMPLETED for state in results.values()):
            raise SystemExit(ExitCode.TASK_FAILED)

    @app.command(name="agents")
    def agents(*, config: ConfigOption = None) -> None:
        """List configured agents and whether they are available."""
        _, registry, _ = build_registry(config, None)
        available = {adapter.id for adapter in anyio.run(registry.get_available)}

        table = Table(title="Agents")
        table.add_column("ID")
        table.add_column("Name")
        table.add_column("Default")
        table.add_column("Available")
        for adapter in registry.get_all():
            table.add_row(
                adapter.id,
                adapter.name,
                "*" if adapter.id == registry.default_id else "",
                "[green]yes[/green]" if adapter.id in available else "[red]no[/red]",
            )
        console.print(table)

    @app.command(name="config")
    def show_config(*, config: ConfigOption = None) -> None:
        """Print the effective configuration as TOML."""
        loaded = load_config_or_exit(config, None, console=error_console)
        console.print(render_config(loaded), markup=False, highlight=False)

    return app


app = create_app()


def main() -> None:
    """Entry point for the ``agent-supervisor`` script."""
    app()
