"""Registry of available agent adapters."""

from typing import Self, final

from structlog.typing import FilteringBoundLogger

from agent_supervisor.config import SupervisorConfig
from agent_supervisor.exceptions import AdapterNotFoundError
from agent_supervisor.utils import get_default_logger

from ._command import CommandAdapter
from ._protocol import AgentAdapter


@final
class AgentRegistry:
    """Holds agent adapters by id and tracks the default adapter.

    The first registered adapter becomes the default unless a default is
    set explicitly.
    """

    __slots__ = ("_adapters", "_default_id", "_logger")

    def __init__(
        self,
        adapters: list[AgentAdapter] | None = None,
        *,
        default_id: str | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            adapters: Adapters to register.
            default_id: Id of the default adapter.
            logger: Logger for availability diagnostics.

        Raises:
            AdapterNotFoundError: If default_id is not among the adapters.
        """
        self._adapters: dict[str, AgentAdapter] = {}
        self._default_id: str | None = None
        self._logger: FilteringBoundLogger = logger or get_default_logger()
        for adapter in adapters or []:
            self.register(adapter)
        if default_id is not None:
            self.set_default(default_id)

    @classmethod
    def from_config(
        cls,
        config: SupervisorConfig,
        *,
        logger: FilteringBoundLogger | None = None,
    ) -> Self:
        """Build a registry of CommandAdapters from configuration.

        Args:
            config: Supervisor configuration with an ``agents`` table.
            logger: Logger shared by the registry and its adapters.

        Returns:
            A registry whose default is ``config.default_agent`` when set.

        Raises:
            AdapterNotFoundError: If default_agent names an unconfigured agent.
        """
        adapters: list[AgentAdapter] = [
            CommandAdapter(
                agent_id,
                command=agent.command,
                name=agent.name,
                env=agent.env,
                credential_env=agent.credential_env,
                model=agent.model,
                fallback_paths=agent.fallback_paths,
                version_args=agent.version_args or None,
                logger=logger,
            )
            for agent_id, agent in config.agents.items()
        ]
        return cls(adapters, default_id=config.default_agent, logger=logger)

    def register(self, adapter: AgentAdapter) -> None:
        """Register an adapter, replacing any adapter with the same id."""
        self._adapters[adapter.id] = adapter
        if self._default_id is None:
            self._default_id = adapter.id

    def get(self, agent_id: str) -> AgentAdapter | None:
        """Return the adapter with the given id, or None."""
        return self._adapters.get(agent_id)

    def get_all(self) -> list[AgentAdapter]:
        """Return all registered adapters in registration order."""
        return list(self._adapters.values())

    async def get_available(self) -> list[AgentAdapter]:
        """Return the adapters whose CLI is currently available.

        Adapters whose availability check raises are skipped.
        """
        available: list[AgentAdapter] = []
        for adapter in self._adapters.values():
            try:
                if await adapter.is_available():
                    available.append(adapter)
            except Exception:  # noqa: BLE001
                self._logger.warning(
                    "agent_availability_check_failed",
                    agent_id=adapter.id,
                    exc_info=True,
                )
        return available

    @property
    def default_id(self) -> str | None:
        """Return the id of the default adapter."""
        return self._default_id

    def get_default(self) -> AgentAdapter:
        """Return the default adapter.

        Raises:
            AdapterNotFoundError: If no default adapter is registered.
        """
        adapter = (
            self._adapters.get(self._default_id) if self._default_id is not None else None
        )
        if adapter is None:
            msg = f"Default adapter '{self._default_id}' not registered"
            raise AdapterNotFoundError(msg, agent_id=self._default_id)
        return adapter

    def set_default(self, agent_id: str) -> None:
        """Set the default adapter.

        Raises:
            AdapterNotFoundError: If no adapter with that id is registered.
        """
        if agent_id not in self._adapters:
            msg = f"Cannot set default: adapter '{agent_id}' not registered"
            raise AdapterNotFoundError(msg, agent_id=agent_id)
        self._default_id = agent_id

    def __len__(self) -> int:
        return len(self._adapters)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._adapters
