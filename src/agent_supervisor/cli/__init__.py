"""Command-line interface for agent-supervisor."""

from ._app import app, create_app, main
from ._run import run_prompts
from ._shared import ExitCode

__all__ = ["ExitCode", "app", "create_app", "main", "run_prompts"]
