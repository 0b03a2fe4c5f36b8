from pathlib import Path

import pytest

from agent_supervisor.agents import (
    AgentAdapter,
    AgentInvokeOptions,
    CommandAdapter,
    CredentialPreloader,
)
from agent_supervisor.exceptions import AgentSpawnError, CredentialError
from tests.helpers import CapturedLog


def make_adapter(captured_log: CapturedLog, **kwargs: object) -> CommandAdapter:
    options: dict[str, object] = {
        "command": ["agent", "-p", "{prompt}", "--cwd", "{working_directory}"],
    }
    options.update(kwargs)
    return CommandAdapter("agent", logger=captured_log.logger, **options)  # type: ignore[arg-type]


def options(**kwargs: object) -> AgentInvokeOptions:
    return AgentInvokeOptions(
        prompt=str(kwargs.pop("prompt", "fix the bug")),
        working_directory=Path("/repo"),
        **kwargs,  # type: ignore[arg-type]
    )


class TestIdentity:
    def test_name_defaults_to_id(self, captured_log: CapturedLog) -> None:
        adapter = make_adapter(captured_log)

        assert adapter.id == "agent"
        assert adapter.name == "agent"
        assert adapter.cli_command == "agent"

    def test_explicit_name(self, captured_log: CapturedLog) -> None:
        adapter = make_adapter(captured_log, name="Agent CLI")

        assert adapter.name == "Agent CLI"

    def test_empty_command_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="empty command"):
            _ = CommandAdapter("agent", command=[])

    def test_satisfies_protocols(self, captured_log: CapturedLog) -> None:
        adapter = make_adapter(captured_log)

        assert isinstance(adapter, AgentAdapter)
        assert isinstance(adapter, CredentialPreloader)


class TestBuildArgs:
    def test_renders_placeholders(self, captured_log: CapturedLog) -> None:
        adapter = make_adapter(captured_log)

        assert adapter.build_args(options()) == [
            "-p",
            "fix the bug",
            "--cwd",
            "/repo",
        ]

    def test_prompt_is_a_single_argument(self, captured_log: CapturedLog) -> None:
        adapter = make_adapter(captured_log, command=["agent", "{prompt}"])

        args = adapter.build_args(options(prompt="two words; rm -rf /"))

        assert args == ["two words; rm -rf /"]

    def test_task_model_overrides_default(self, captured_log: CapturedLog) -> None:
        adapter = make_adapter(
            captured_log, command=["agent", "--model", "{model}"], model="small"
        )

        assert adapter.build_args(options()) == ["--model", "small"]
        assert adapter.build_args(options(model="large")) == ["--model", "large"]

    def test_missing_model_renders_empty(self, captured_log: CapturedLog) -> None:
        adapter = make_adapter(captured_log, command=["agent", "{model}"])

        assert adapter.build_args(options()) == [""]

    def test_context_files_are_space_separated(self, captured_log: CapturedLog) -> None:
        adapter = make_adapter(captured_log, command=["agent", "{context_files}"])

        args = adapter.build_args(
            options(context_files=(Path("/repo/a.py"), Path("/repo/b.py")))
        )

        assert args == ["/repo/a.py /repo/b.py"]

    @pytest.mark.parametrize("template", ["{unknown}", "{0}", "{prompt"])
    def test_invalid_template_raises_spawn_error(
        self, captured_log: CapturedLog, template: str
    ) -> None:
        adapter = make_adapter(captured_log, command=["agent", template])

        with pytest.raises(AgentSpawnError) as exc_info:
            _ = adapter.build_args(options())

        assert exc_info.value.agent_id == "agent"
        assert exc_info.value.cause is not None


class TestExecutablePath:
    def test_explicit_path_is_used_directly(
        self, tmp_path: Path, captured_log: CapturedLog
    ) -> None:
        executable = tmp_path / "agent.sh"
        _ = executable.write_text("#!/bin/sh\n")
        executable.chmod(0o755)

        adapter = make_adapter(captured_log, command=[str(executable)])

        assert adapter.get_executable_path() == str(executable)

    def test_explicit_path_must_be_executable(
        self, tmp_path: Path, captured_log: CapturedLog
    ) -> None:
        script = tmp_path / "agent.sh"
        _ = script.write_text("#!/bin/sh\n")
        script.chmod(0o644)

        adapter = make_adapter(captured_log, command=[str(script)])

        assert adapter.get_executable_path() is None


@pytest.mark.anyio
class TestCredentials:
    async def test_loads_declared_variables(
        self, monkeypatch: pytest.MonkeyPatch, captured_log: CapturedLog
    ) -> None:
        monkeypatch.setenv("AGENT_API_KEY", "secret")
        adapter = make_adapter(
            captured_log, credential_env=["AGENT_API_KEY"], env={"AGENT_MODE": "ci"}
        )

        await adapter.load_credentials()

        assert adapter.additional_env(options()) == {
            "AGENT_MODE": "ci",
            "AGENT_API_KEY": "secret",
        }

    @pytest.mark.parametrize("value", [None, ""])
    async def test_missing_variable_raises(
        self,
        monkeypatch: pytest.MonkeyPatch,
        captured_log: CapturedLog,
        value: str | None,
    ) -> None:
        if value is None:
            monkeypatch.delenv("AGENT_API_KEY", raising=False)
        else:
            monkeypatch.setenv("AGENT_API_KEY", value)
        adapter = make_adapter(captured_log, credential_env=["AGENT_API_KEY"])

        with pytest.raises(CredentialError) as exc_info:
            await adapter.load_credentials()

        assert exc_info.value.variable == "AGENT_API_KEY"
        assert exc_info.value.agent_id == "agent"

    async def test_without_credentials_env_is_static(
        self, captured_log: CapturedLog
    ) -> None:
        adapter = make_adapter(captured_log, env={"AGENT_MODE": "ci"})

        await adapter.load_credentials()

        assert adapter.additional_env(options()) == {"AGENT_MODE": "ci"}
