"""Configurable command-line agent adapter."""

import os
from collections.abc import Mapping, Sequence
from typing import final

from structlog.typing import FilteringBoundLogger

from agent_supervisor.exceptions import AgentSpawnError, CredentialError

from ._base import BaseAgentAdapter
from ._models import AgentInvokeOptions


@final
class CommandAdapter(BaseAgentAdapter):
    """Adapter that runs an agent from an argv template.

    The first element of ``command`` is the executable; the remaining
    elements are rendered per task with ``str.format`` placeholders:
    ``{prompt}``, ``{working_directory}``, ``{model}`` and
    ``{context_files}`` (space separated).

    Example:
        >>> adapter = CommandAdapter(
        ...     "claude",
        ...     command=["claude", "-p", "{prompt}", "--output-format", "stream-json"],
        ...     credential_env=["ANTHROPIC_API_KEY"],
        ... )
    """

    def __init__(  # noqa: PLR0913
        self,
        agent_id: str,
        *,
        command: Sequence[str],
        name: str | None = None,
        env: Mapping[str, str] | None = None,
        credential_env: Sequence[str] = (),
        model: str | None = None,
        fallback_paths: Sequence[str] = (),
        version_args: Sequence[str] | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            agent_id: Unique adapter id.
            command: Executable followed by the argument template.
            name: Human-readable name, defaults to the id.
            env: Extra environment variables for the agent process.
            credential_env: Environment variables that must be set before spawning.
            model: Default model, used when the task does not choose one.
            fallback_paths: Locations checked when the executable is not on PATH.
            version_args: Arguments for the availability probe, None to skip it.
            logger: Logger for spawn diagnostics.

        Raises:
            ValueError: If ``command`` is empty.
        """
        if not command:
            msg = f"Agent '{agent_id}' has an empty command"
            raise ValueError(msg)
        super().__init__(
            fallback_paths=fallback_paths,
            version_args=version_args,
            logger=logger,
        )
        self._id = agent_id
        self._name = name or agent_id
        self._executable = command[0]
        self._arg_template: tuple[str, ...] = tuple(command[1:])
        self._env: dict[str, str] = dict(env or {})
        self._credential_env: tuple[str, ...] = tuple(credential_env)
        self._model = model
        self._credentials: dict[str, str] = {}

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def cli_command(self) -> str:
        return self._executable

    def get_executable_path(self) -> str | None:
        """Find the executable, accepting an explicit path in the command."""
        if os.sep in self._executable and self._custom_path is None:
            return self._executable if os.access(self._executable, os.X_OK) else None
        return super().get_executable_path()

    def build_args(self, options: AgentInvokeOptions) -> list[str]:
        """Render the argument template for a task.

        Raises:
            AgentSpawnError: If the template references an unknown placeholder.
        """
        values = {
            "prompt": options.prompt,
            "working_directory": str(options.working_directory),
            "model": options.model or self._model or "",
            "context_files": " ".join(str(path) for path in options.context_files),
        }
        try:
            return [arg.format_map(values) for arg in self._arg_template]
        except (KeyError, IndexError, ValueError) as e:
            msg = f"Invalid command template for agent '{self.name}': {e}"
            raise AgentSpawnError(msg, agent_id=self.id, cause=e) from e

    def additional_env(self, options: AgentInvokeOptions) -> dict[str, str]:  # noqa: ARG002
        return {**self._env, **self._credentials}

    async def load_credentials(self) -> None:
        """Capture the declared credential variables from the environment.

        Raises:
            CredentialError: If a declared variable is unset or empty.
        """
        credentials: dict[str, str] = {}
        for variable in self._credential_env:
            value = os.environ.get(variable, "")
            if not value:
                msg = f"Agent '{self.name}' requires {variable} to be set"
                raise CredentialError(msg, agent_id=self.id, variable=variable)
            credentials[variable] = value
        self._credentials = credentials
