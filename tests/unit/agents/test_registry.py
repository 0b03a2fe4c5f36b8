import pytest

from agent_supervisor.agents import AgentRegistry, CommandAdapter
from agent_supervisor.config import SupervisorConfig, config_from_dict
from agent_supervisor.exceptions import AdapterNotFoundError
from tests.helpers import CapturedLog
from tests.unit.supervisor.fakes import FakeAdapter


class ExplodingAdapter(FakeAdapter):
    async def is_available(self) -> bool:
        msg = "probe crashed"
        raise OSError(msg)


@pytest.fixture
def registry(captured_log: CapturedLog) -> AgentRegistry:
    return AgentRegistry(logger=captured_log.logger)


class TestRegistration:
    def test_first_registered_adapter_is_default(self, registry: AgentRegistry) -> None:
        registry.register(FakeAdapter("first"))
        registry.register(FakeAdapter("second"))

        assert registry.default_id == "first"
        assert registry.get_default().id == "first"

    def test_register_replaces_same_id(self, registry: AgentRegistry) -> None:
        original = FakeAdapter("agent")
        replacement = FakeAdapter("agent")

        registry.register(original)
        registry.register(replacement)

        assert len(registry) == 1
        assert registry.get("agent") is replacement

    def test_get_all_keeps_registration_order(self, registry: AgentRegistry) -> None:
        for agent_id in ("c", "a", "b"):
            registry.register(FakeAdapter(agent_id))

        assert [adapter.id for adapter in registry.get_all()] == ["c", "a", "b"]

    def test_get_unknown_returns_none(self, registry: AgentRegistry) -> None:
        assert registry.get("missing") is None
        assert "missing" not in registry

    def test_constructor_default(self, captured_log: CapturedLog) -> None:
        registry = AgentRegistry(
            [FakeAdapter("a"), FakeAdapter("b")],
            default_id="b",
            logger=captured_log.logger,
        )

        assert registry.get_default().id == "b"
        assert "a" in registry


class TestDefault:
    def test_empty_registry_has_no_default(self, registry: AgentRegistry) -> None:
        with pytest.raises(AdapterNotFoundError) as exc_info:
            _ = registry.get_default()

        assert exc_info.value.agent_id is None

    def test_set_default_requires_registered_adapter(
        self, registry: AgentRegistry
    ) -> None:
        registry.register(FakeAdapter("a"))

        with pytest.raises(AdapterNotFoundError, match="'missing' not registered"):
            registry.set_default("missing")

        assert registry.default_id == "a"

    def test_set_default(self, registry: AgentRegistry) -> None:
        registry.register(FakeAdapter("a"))
        registry.register(FakeAdapter("b"))

        registry.set_default("b")

        assert registry.get_default().id == "b"

    def test_not_found_error_is_a_key_error(self, registry: AgentRegistry) -> None:
        with pytest.raises(KeyError):
            _ = registry.get_default()


@pytest.mark.anyio
class TestAvailability:
    async def test_returns_only_available_adapters(
        self, registry: AgentRegistry
    ) -> None:
        registry.register(FakeAdapter("up"))
        registry.register(FakeAdapter("down", available=False))

        available = await registry.get_available()

        assert [adapter.id for adapter in available] == ["up"]

    async def test_failing_probe_is_skipped_and_logged(
        self, registry: AgentRegistry, captured_log: CapturedLog
    ) -> None:
        registry.register(ExplodingAdapter("broken"))
        registry.register(FakeAdapter("up"))

        available = await registry.get_available()

        assert [adapter.id for adapter in available] == ["up"]
        entries = captured_log.events("agent_availability_check_failed")
        assert [entry["agent_id"] for entry in entries] == ["broken"]


class TestFromConfig:
    def test_builds_command_adapters(self, captured_log: CapturedLog) -> None:
        config = config_from_dict(
            {
                "agents": {
                    "claude": {
                        "name": "Claude Code",
                        "command": ["claude", "-p", "{prompt}"],
                        "credential_env": ["ANTHROPIC_API_KEY"],
                    },
                    "codex": {"command": ["codex", "exec", "{prompt}"]},
                },
                "default_agent": "codex",
            }
        )

        registry = AgentRegistry.from_config(config, logger=captured_log.logger)

        assert len(registry) == 2
        claude = registry.get("claude")
        assert isinstance(claude, CommandAdapter)
        assert claude.name == "Claude Code"
        assert registry.get_default().id == "codex"

    def test_unknown_default_agent_raises(self, captured_log: CapturedLog) -> None:
        config = SupervisorConfig(default_agent="ghost")

        with pytest.raises(AdapterNotFoundError) as exc_info:
            _ = AgentRegistry.from_config(config, logger=captured_log.logger)

        assert exc_info.value.agent_id == "ghost"

    def test_empty_config_gives_empty_registry(self, captured_log: CapturedLog) -> None:
        registry = AgentRegistry.from_config(
            SupervisorConfig(), logger=captured_log.logger
        )

        assert len(registry) == 0
        assert registry.default_id is None
