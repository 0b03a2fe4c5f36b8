"""Helpers shared across the test suites."""

from collections.abc import Callable, MutableMapping
from dataclasses import dataclass
from typing import Any

import anyio
from structlog.testing import LogCapture
from structlog.typing import FilteringBoundLogger


@dataclass(frozen=True, slots=True)
class CapturedLog:
    """A logger whose entries are recorded instead of written."""

    logger: FilteringBoundLogger
    capture: LogCapture

    @property
    def entries(self) -> list[MutableMapping[str, Any]]:  # pyright: ignore[reportExplicitAny]
        return self.capture.entries

    def events(self, name: str) -> list[MutableMapping[str, Any]]:  # pyright: ignore[reportExplicitAny]
        """Return every entry logged with event ``name``."""
        return [entry for entry in self.capture.entries if entry.get("event") == name]

    def has_event(self, name: str) -> bool:
        return bool(self.events(name))


async def wait_for(predicate: Callable[[], bool], *, timeout: float = 2.0) -> None:
    """Yield to the event loop until ``predicate()`` is true."""
    with anyio.fail_after(timeout):
        while not predicate():
            await anyio.sleep(0.001)
