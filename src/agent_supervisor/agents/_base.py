"""Base agent adapter with shared heuristics.

This module provides BaseAgentAdapter, which implements the parts of the
AgentAdapter protocol that are common to most agent CLIs:
- Executable discovery (PATH, fallback locations, custom override)
- Process spawning through anyio
- Line-oriented stdout parsing with JSON awareness
- Rate-limit, usage-limit and authentication-error heuristics

Subclasses supply the executable name and the argument list for a task.
"""

import abc
import contextlib
import glob
import json
import os
import re
import shutil
import subprocess
from collections.abc import AsyncIterable, AsyncIterator, Mapping, Sequence
from pathlib import Path
from typing import ClassVar

import anyio
import pendulum
from structlog.typing import FilteringBoundLogger

from agent_supervisor.exceptions import AgentSpawnError
from agent_supervisor.utils import get_default_logger

from ._lines import iter_lines
from ._models import (
    AgentInvokeOptions,
    AgentOutputEvent,
    OutputEventType,
    UsageLimitResult,
)
from ._process import SubprocessHandle

_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "rate limit",
    "rate_limit",
    "429",
    "too many requests",
    "overloaded",
)
_USAGE_LIMIT_PATTERNS: tuple[str, ...] = (
    "usage limit",
    "usage_limit",
    "quota exceeded",
    "quota_exceeded",
    "limit exceeded",
    "daily limit",
    "monthly limit",
    "exceeded your",
    "api limit",
    "request limit reached",
    "token limit",
    "out of credits",
    "billing",
)
_AUTH_ERROR_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "401",
    "403",
    "authentication failed",
    "not authenticated",
    "invalid token",
    "token expired",
    "please log in",
    "please authenticate",
    "login required",
    "access denied",
    "invalid api key",
    "api_key_invalid",
)

_RESET_CLOCK_RE = re.compile(
    r"(?:resets?|available|try again)(?:\s+at)?\s+"
    r"(?P<hour>\d{1,2}):(?P<minute>\d{2})(?::(?P<second>\d{2}))?"
    r"(?:\s*(?P<meridiem>AM|PM))?",
    re.IGNORECASE,
)
_RESET_DURATION_RE = re.compile(
    r"(?:resets?|available|try again)\s+in\s+(?P<amount>\d+)\s*"
    r"(?P<unit>hour|minute|min|second|sec|hr|h|m|s)s?\b",
    re.IGNORECASE,
)
_RESET_ISO_RE = re.compile(
    r"(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:?\d{2})?)",
    re.IGNORECASE,
)


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None


def extract_reset_time(
    output: str,
    *,
    now: pendulum.DateTime | None = None,
) -> pendulum.DateTime | None:
    """Extract a usage-limit reset time from a message.

    Supported forms, checked in order:
    - "resets at 3:30 PM" / "try again at 14:05:30" (rolled to tomorrow if
      the time has already passed today)
    - "try again in 2 hours" / "resets in 15 minutes"
    - An ISO 8601 timestamp anywhere in the message

    Args:
        output: The message to search.
        now: Reference time, defaults to the current local time.

    Returns:
        The reset time, or None if the message carries none.
    """
    current = now if now is not None else pendulum.now()

    clock = _RESET_CLOCK_RE.search(output)
    if clock is not None:
        hour = int(clock["hour"])
        meridiem = (clock["meridiem"] or "").upper()
        if meridiem == "PM" and hour < 12:  # noqa: PLR2004
            hour += 12
        elif meridiem == "AM" and hour == 12:  # noqa: PLR2004
            hour = 0
        minute = int(clock["minute"])
        second = int(clock["second"] or 0)
        # Out-of-range clock fields fall through to the other forms.
        if hour < 24 and minute < 60 and second < 60:  # noqa: PLR2004
            reset_at = current.set(
                hour=hour, minute=minute, second=second, microsecond=0
            )
            if reset_at < current:
                reset_at = reset_at.add(days=1)
            return reset_at

    duration = _RESET_DURATION_RE.search(output)
    if duration is not None:
        amount = int(duration["amount"])
        unit = duration["unit"].lower()
        with contextlib.suppress(OverflowError, ValueError):
            if unit.startswith("h"):
                return current.add(hours=amount)
            if unit.startswith("m"):
                return current.add(minutes=amount)
            return current.add(seconds=amount)

    iso = _RESET_ISO_RE.search(output)
    if iso is not None:
        try:
            parsed = pendulum.parse(iso.group(1))
        except ValueError:
            return None
        if isinstance(parsed, pendulum.DateTime):
            return parsed

    return None


class BaseAgentAdapter(abc.ABC):
    """Base class for CLI agent adapters.

    Provides executable discovery, spawning, and the default output
    classification heuristics. Subclasses override the pattern tuples or the
    detect_* methods for agent-specific behavior.

    Attributes:
        fallback_paths: Locations checked when the CLI is not on PATH. Glob
            patterns are allowed.
        version_args: Arguments used to probe the executable in is_available(),
            or None to skip the probe.
    """

    rate_limit_patterns: ClassVar[tuple[str, ...]] = _RATE_LIMIT_PATTERNS
    usage_limit_patterns: ClassVar[tuple[str, ...]] = _USAGE_LIMIT_PATTERNS
    auth_error_patterns: ClassVar[tuple[str, ...]] = _AUTH_ERROR_PATTERNS

    def __init__(
        self,
        *,
        fallback_paths: Sequence[str] = (),
        version_args: Sequence[str] | None = ("--version",),
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            fallback_paths: Locations checked when the CLI is not on PATH.
            version_args: Arguments for the availability probe, None to skip it.
            logger: Logger for spawn diagnostics.
        """
        self.fallback_paths: tuple[str, ...] = tuple(fallback_paths)
        self.version_args: tuple[str, ...] | None = (
            tuple(version_args) if version_args is not None else None
        )
        self._custom_path: str | None = None
        self._cached_path: str | None = None
        self._logger: FilteringBoundLogger = logger or get_default_logger()

    @property
    @abc.abstractmethod
    def id(self) -> str:
        """Return the unique adapter id."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Return the human-readable adapter name."""

    @property
    @abc.abstractmethod
    def cli_command(self) -> str:
        """Return the executable name looked up on PATH."""

    @abc.abstractmethod
    def build_args(self, options: AgentInvokeOptions) -> list[str]:
        """Build the argument list (without the executable) for a task."""

    def additional_env(self, options: AgentInvokeOptions) -> Mapping[str, str]:  # noqa: ARG002
        """Return extra environment variables for the spawned process."""
        return {}

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    def set_custom_path(self, path: str | None) -> None:
        """Override executable discovery with an explicit path.

        Args:
            path: Executable path, or None to restore auto-detection.
        """
        self._custom_path = path
        self._cached_path = None

    def get_executable_path(self) -> str | None:
        """Find the agent executable.

        Checks the custom path, then PATH, then the fallback locations. The
        first hit is cached.

        Returns:
            The executable path, or None if it cannot be found.
        """
        if self._custom_path is not None:
            return self._custom_path if Path(self._custom_path).exists() else None

        if self._cached_path is not None:
            return self._cached_path

        found = shutil.which(self.cli_command)
        if found is None:
            for candidate in self.fallback_paths:
                expanded = os.path.expanduser(candidate)  # noqa: PTH111
                matches = sorted(glob.glob(expanded)) if "*" in expanded else [expanded]  # noqa: PTH207
                existing = [match for match in matches if Path(match).exists()]
                if existing:
                    found = existing[0]
                    break

        self._cached_path = found
        return found

    async def is_available(self) -> bool:
        """Return True if the executable exists and answers the version probe."""
        path = self.get_executable_path()
        if path is None:
            return False
        if self.version_args is None:
            return True

        try:
            _ = await anyio.run_process(
                [path, *self.version_args],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except (OSError, subprocess.CalledProcessError):
            return False
        return True

    # -------------------------------------------------------------------------
    # Spawning
    # -------------------------------------------------------------------------

    async def invoke(self, options: AgentInvokeOptions) -> SubprocessHandle:
        """Spawn the agent for a task.

        Args:
            options: Prompt, working directory and adapter options.

        Returns:
            A handle to the spawned process.

        Raises:
            AgentSpawnError: If the executable is missing or cannot be started.
        """
        path = self.get_executable_path()
        if path is None:
            msg = f"Executable for agent '{self.name}' not found"
            raise AgentSpawnError(msg, agent_id=self.id)
        return await self.spawn_process(path, self.build_args(options), options)

    async def spawn_process(
        self,
        executable: str,
        args: Sequence[str],
        options: AgentInvokeOptions,
    ) -> SubprocessHandle:
        """Spawn a process with piped output and closed stdin.

        Args:
            executable: Path to the executable.
            args: Arguments after the executable.
            options: Invocation options (working directory and env hooks).

        Returns:
            A handle to the spawned process.

        Raises:
            AgentSpawnError: If the process cannot be started.
        """
        env = {
            **os.environ,
            "CI": "true",
            "TERM": "dumb",
            **self.additional_env(options),
        }
        self._logger.debug(
            "agent_spawning",
            agent_id=self.id,
            executable=executable,
            args=list(args),
            cwd=str(options.working_directory),
        )

        try:
            process = await anyio.open_process(
                [executable, *args],
                cwd=options.working_directory,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            msg = f"Failed to start agent '{self.name}': {e}"
            raise AgentSpawnError(msg, agent_id=self.id, cause=e) from e

        self._logger.debug("agent_spawned", agent_id=self.id, pid=process.pid)
        return SubprocessHandle(process)

    # -------------------------------------------------------------------------
    # Output classification
    # -------------------------------------------------------------------------

    async def parse_output(
        self,
        stream: AsyncIterable[bytes],
    ) -> AsyncIterator[AgentOutputEvent]:
        """Decode a stdout byte stream into classified events.

        Args:
            stream: The stdout byte stream.

        Yields:
            One event per non-blank line that parse_line() classifies.
        """
        async for line in iter_lines(stream):
            event = self.parse_line(line)
            if event is not None:
                yield event

    def parse_line(self, line: str) -> AgentOutputEvent | None:
        """Classify a single line of output.

        JSON lines are classified by their ``type``/``error``/``done`` keys;
        anything else is treated as plain text.

        Args:
            line: One line of output.

        Returns:
            The classified event, or None to drop the line.
        """
        try:
            payload = json.loads(line)
        except ValueError:
            payload = None

        if isinstance(payload, dict):
            if payload.get("type") == "error" or payload.get("error"):
                error_message = str(payload.get("error") or payload.get("message") or line)
                return self._classify_problem(line, error_message)
            if payload.get("type") == "result" or payload.get("done"):
                return AgentOutputEvent(type=OutputEventType.COMPLETE, message=line)
            return AgentOutputEvent(type=OutputEventType.LOG, message=line)

        usage_limit = self.detect_usage_limit(line)
        if usage_limit.is_usage_limit:
            return AgentOutputEvent(
                type=OutputEventType.USAGE_LIMIT,
                message=line,
                reset_at=usage_limit.reset_at,
            )
        if self.detect_rate_limit(line):
            return AgentOutputEvent(type=OutputEventType.RATE_LIMIT, message=line)
        if "error" in line.lower():
            return AgentOutputEvent(type=OutputEventType.ERROR, message=line)
        return AgentOutputEvent(type=OutputEventType.LOG, message=line)

    def _classify_problem(self, line: str, error_message: str) -> AgentOutputEvent:
        usage_limit = self.detect_usage_limit(error_message)
        if usage_limit.is_usage_limit:
            return AgentOutputEvent(
                type=OutputEventType.USAGE_LIMIT,
                message=line,
                reset_at=usage_limit.reset_at,
            )
        if self.detect_rate_limit(error_message):
            return AgentOutputEvent(type=OutputEventType.RATE_LIMIT, message=line)
        return AgentOutputEvent(type=OutputEventType.ERROR, message=line)

    def detect_rate_limit(self, line: str) -> bool:
        """Return True if the line looks like a transient rate limit."""
        return _first_match(line.lower(), self.rate_limit_patterns) is not None

    def detect_usage_limit(self, line: str) -> UsageLimitResult:
        """Detect a usage limit and extract its reset time when present."""
        if _first_match(line.lower(), self.usage_limit_patterns) is None:
            return UsageLimitResult(is_usage_limit=False)
        return UsageLimitResult(is_usage_limit=True, reset_at=extract_reset_time(line))

    def detect_auth_error(self, message: str) -> bool:
        """Return True if the message looks like an authentication failure."""
        return _first_match(message.lower(), self.auth_error_patterns) is not None
