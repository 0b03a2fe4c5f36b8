import os
from pathlib import Path

import pytest

SHELL_AGENT_TOML = """\
max_concurrent = 2

[logging]
level = "error"

[agents.shell]
name = "Shell"
command = ["sh", "-c", "{prompt}"]
"""


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if Path(item.path).is_relative_to(Path(__file__).parent):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep AGENT_SUPERVISOR_* settings from the host out of the tests."""
    for key in list(os.environ):
        if key.startswith("AGENT_SUPERVISOR_"):
            monkeypatch.delenv(key)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write a config with a single ``sh -c`` agent."""
    path = tmp_path / "agent-supervisor.toml"
    _ = path.write_text(SHELL_AGENT_TOML)
    return path
