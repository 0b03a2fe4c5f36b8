# pyright: reportAny=false
"""Tests for configuration loading and merging."""

import os
from pathlib import Path

import pytest
import tomllib
from pyfakefs.fake_filesystem import FakeFilesystem

from agent_supervisor.config import (
    CONFIG_FILE_NAME,
    ConfigLoadError,
    ConfigValidationError,
    LogLevel,
    SupervisorConfig,
    config_from_dict,
    deep_merge,
    load_config,
    parse_env_vars,
    parse_string_value,
    read_toml_file,
    render_config,
    set_nested_key,
)

AGENTS_TOML = """\
max_concurrent = 3
default_agent = "claude"

[logging]
level = "debug"

[agents.claude]
command = ["claude", "-p", "{prompt}"]
credential_env = ["ANTHROPIC_API_KEY"]
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("AGENT_SUPERVISOR_"):
            monkeypatch.delenv(key)


class TestReadTomlFile:
    def test_reads_valid_file(self, fs: FakeFilesystem) -> None:
        _ = fs.create_file("/project/config.toml", contents='max_concurrent = 2\n')

        assert read_toml_file(Path("/project/config.toml")) == {"max_concurrent": 2}

    def test_missing_file_raises_file_not_found(self, fs: FakeFilesystem) -> None:
        with pytest.raises(FileNotFoundError):
            _ = read_toml_file(Path("/project/missing.toml"))

    def test_invalid_toml_raises_load_error(self, fs: FakeFilesystem) -> None:
        path = Path("/project/config.toml")
        _ = fs.create_file(path, contents="max_concurrent = = 2\n")

        with pytest.raises(ConfigLoadError) as exc_info:
            _ = read_toml_file(path)

        assert exc_info.value.path == path
        assert isinstance(exc_info.value.__cause__, tomllib.TOMLDecodeError)


class TestDeepMerge:
    def test_merges_nested_dicts(self) -> None:
        base = {"logging": {"level": "info", "format": "text"}}
        override = {"logging": {"level": "debug"}}

        assert deep_merge(base, override) == {
            "logging": {"level": "debug", "format": "text"}
        }

    def test_lists_are_replaced(self) -> None:
        base = {"command": ["a", "b"]}
        override = {"command": ["c"]}

        assert deep_merge(base, override) == {"command": ["c"]}

    def test_type_mismatch_override_wins(self) -> None:
        assert deep_merge({"logging": {"level": "info"}}, {"logging": "off"}) == {
            "logging": "off"
        }

    def test_inputs_are_not_modified(self) -> None:
        base = {"agents": {"a": {"command": ["a"]}}}
        override = {"agents": {"b": {"command": ["b"]}}}

        result = deep_merge(base, override)
        result["agents"]["a"]["command"].append("changed")

        assert base == {"agents": {"a": {"command": ["a"]}}}
        assert override == {"agents": {"b": {"command": ["b"]}}}


class TestSetNestedKey:
    def test_creates_intermediate_dicts(self) -> None:
        d: dict[str, object] = {}

        set_nested_key(d, "agents.claude.model", "opus")

        assert d == {"agents": {"claude": {"model": "opus"}}}

    def test_replaces_scalar_on_path(self) -> None:
        d: dict[str, object] = {"logging": "debug"}

        set_nested_key(d, "logging.level", "warning")

        assert d == {"logging": {"level": "warning"}}


class TestParseStringValue:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("true", True),
            ("FALSE", False),
            ("42", 42),
            ("1.5", 1.5),
            ('["claude", "-p"]', ["claude", "-p"]),
            ('{"KEY": "v"}', {"KEY": "v"}),
            ("[not json", "[not json"),
            ("claude", "claude"),
            ("v1.2.3", "v1.2.3"),
        ],
    )
    def test_infers_types(self, raw: str, expected: object) -> None:
        assert parse_string_value(raw) == expected


class TestParseEnvVars:
    def test_nested_keys_use_double_underscore(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("AGENT_SUPERVISOR_MAX_CONCURRENT", "4")
        monkeypatch.setenv("AGENT_SUPERVISOR_LOGGING__LEVEL", "debug")
        monkeypatch.setenv("AGENT_SUPERVISOR_", "ignored")
        monkeypatch.setenv("OTHER_MAX_CONCURRENT", "9")

        assert parse_env_vars() == {
            "max_concurrent": 4,
            "logging": {"level": "debug"},
        }


class TestLoadConfig:
    def test_defaults_without_sources(self, fs: FakeFilesystem) -> None:
        _ = fs.create_dir("/project")

        config = load_config(search_dir=Path("/project"))

        assert config == SupervisorConfig()
        assert config.max_concurrent == 1
        assert config.max_task_duration_minutes == 15

    def test_discovers_file_in_search_dir(self, fs: FakeFilesystem) -> None:
        _ = fs.create_file(f"/project/{CONFIG_FILE_NAME}", contents=AGENTS_TOML)

        config = load_config(search_dir=Path("/project"))

        assert config.max_concurrent == 3
        assert config.default_agent == "claude"
        assert config.logging.level == LogLevel.DEBUG
        assert config.agents["claude"].command == ["claude", "-p", "{prompt}"]

    def test_explicit_missing_path_raises(self, fs: FakeFilesystem) -> None:
        with pytest.raises(FileNotFoundError):
            _ = load_config(Path("/project/custom.toml"))

    def test_precedence_cli_over_env_over_file(
        self, fs: FakeFilesystem, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _ = fs.create_file("/project/custom.toml", contents=AGENTS_TOML)
        monkeypatch.setenv("AGENT_SUPERVISOR_MAX_CONCURRENT", "5")
        monkeypatch.setenv("AGENT_SUPERVISOR_MAX_TASK_DURATION_MINUTES", "30")

        config = load_config(
            Path("/project/custom.toml"),
            cli_overrides={"max_task_duration_minutes": 45},
        )

        assert config.max_concurrent == 5
        assert config.max_task_duration_minutes == 45
        assert config.default_agent == "claude"

    def test_env_can_be_ignored(
        self, fs: FakeFilesystem, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _ = fs.create_dir("/project")
        monkeypatch.setenv("AGENT_SUPERVISOR_MAX_CONCURRENT", "5")

        config = load_config(search_dir=Path("/project"), include_env=False)

        assert config.max_concurrent == 1

    def test_env_can_define_agent_command(
        self, fs: FakeFilesystem, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _ = fs.create_dir("/project")
        monkeypatch.setenv(
            "AGENT_SUPERVISOR_AGENTS__CODEX__COMMAND", '["codex", "exec", "{prompt}"]'
        )

        config = load_config(search_dir=Path("/project"))

        assert config.agents["codex"].command == ["codex", "exec", "{prompt}"]

    def test_invalid_value_raises_validation_error(self, fs: FakeFilesystem) -> None:
        _ = fs.create_file(
            f"/project/{CONFIG_FILE_NAME}", contents="max_concurrent = 0\n"
        )

        with pytest.raises(ConfigValidationError) as exc_info:
            _ = load_config(search_dir=Path("/project"))

        assert exc_info.value.key == "max_concurrent"
        assert exc_info.value.value == 0


class TestConfigFromDict:
    def test_reports_nested_key(self) -> None:
        with pytest.raises(ConfigValidationError) as exc_info:
            _ = config_from_dict({"agents": {"claude": {"command": []}}})

        assert exc_info.value.key == "agents.claude.command"

    def test_unknown_keys_are_ignored(self) -> None:
        config = config_from_dict({"unknown": 1, "max_concurrent": 2})

        assert config.max_concurrent == 2


class TestRenderConfig:
    def test_renders_loadable_toml(self) -> None:
        config = config_from_dict(tomllib.loads(AGENTS_TOML))

        rendered = render_config(config)

        assert config_from_dict(tomllib.loads(rendered)) == config
        assert 'default_agent = "claude"' in rendered

    def test_omits_unset_values(self) -> None:
        rendered = render_config(SupervisorConfig())

        assert "default_agent" not in rendered
        assert "max_concurrent = 1" in rendered
