"""Concurrent consumption and classification of agent output.

This module provides the OutputStreamProcessor, which drains a process's
stdout and stderr independently, turns them into classified output events,
and reports them to a StreamObserver. The observer (the supervisor) owns
every state change; the processor only classifies and reports.
"""

from collections.abc import AsyncGenerator, AsyncIterable, AsyncIterator
from typing import Literal, Protocol, final

import anyio
import anyio.abc
from structlog.typing import FilteringBoundLogger

from agent_supervisor.agents import (
    AgentAdapter,
    AgentOutputEvent,
    OutputEventType,
    ProcessHandle,
    iter_lines,
)
from agent_supervisor.exceptions import StreamProcessingError
from agent_supervisor.utils import get_default_logger

StreamName = Literal["stdout", "stderr"]


class StreamObserver(Protocol):
    """Receives classified output from an OutputStreamProcessor.

    Methods are synchronous so that a check-and-transition performed by the
    observer cannot interleave with another task.
    """

    def on_output(self, event: AgentOutputEvent) -> None:
        """Record one classified output event."""
        ...

    def on_usage_limit(self, event: AgentOutputEvent) -> None:
        """Handle a usage-limit event (after on_output)."""
        ...

    def on_rate_limit(self, event: AgentOutputEvent) -> None:
        """Handle a rate-limit event (after on_output)."""
        ...

    def on_auth_failure(self, event: AgentOutputEvent) -> None:
        """Handle an error event that matched the auth heuristic."""
        ...


@final
class OutputStreamProcessor:
    """Drains both output channels of one agent process.

    stdout is parsed by the adapter; stderr is decoded into lines here and
    classified as usage-limit, then rate-limit, else error. Each channel is
    consumed by its own task, so a blocked reader on one never starves the
    other, and an exception on one is logged without aborting the other.

    The only early exit is an authentication failure: the channel that saw
    it stops consuming and closes its stream.

    Attributes:
        task_id: Task whose process is being drained.
        errors: Failures raised while consuming a channel.
    """

    __slots__ = ("_adapter", "_logger", "_observer", "_process", "errors", "task_id")

    def __init__(
        self,
        task_id: str,
        adapter: AgentAdapter,
        process: ProcessHandle,
        observer: StreamObserver,
        *,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the processor.

        Args:
            task_id: Task whose process is being drained.
            adapter: Adapter supplying stdout parsing and heuristics.
            process: The process whose channels are consumed.
            observer: Receives classified events.
            logger: Logger for channel failures.
        """
        self.task_id = task_id
        self._adapter = adapter
        self._process = process
        self._observer = observer
        self._logger: FilteringBoundLogger = (logger or get_default_logger()).bind(
            task_id=task_id
        )
        self.errors: list[StreamProcessingError] = []

    async def run(self) -> None:
        """Consume both channels until each reaches EOF or stops early."""
        async with anyio.create_task_group() as tg:
            tg.start_soon(self._consume, "stdout")
            tg.start_soon(self._consume, "stderr")

    def classify_stderr_line(self, line: str) -> AgentOutputEvent:
        """Classify one stderr line in priority order.

        Usage limits come first because they carry a reset time, then rate
        limits; anything else is an error.
        """
        usage_limit = self._adapter.detect_usage_limit(line)
        if usage_limit.is_usage_limit:
            return AgentOutputEvent(
                type=OutputEventType.USAGE_LIMIT,
                message=line,
                reset_at=usage_limit.reset_at,
            )
        if self._adapter.detect_rate_limit(line):
            return AgentOutputEvent(type=OutputEventType.RATE_LIMIT, message=line)
        return AgentOutputEvent(type=OutputEventType.ERROR, message=line)

    async def _parse_stderr(
        self,
        stream: AsyncIterable[bytes],
    ) -> AsyncIterator[AgentOutputEvent]:
        async for line in iter_lines(stream):
            yield self.classify_stderr_line(line)

    async def _consume(self, stream_name: StreamName) -> None:
        if stream_name == "stdout":
            stream = self._process.stdout
            events = self._adapter.parse_output(stream)
        else:
            stream = self._process.stderr
            events = self._parse_stderr(stream)

        try:
            if await self._drain(events):
                self._logger.info("auth_failure_detected", stream=stream_name)
                await _close_stream(stream)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            # Stream closed, which is expected on process exit
            pass
        except Exception as e:
            error = StreamProcessingError(
                f"Error processing {stream_name} for task {self.task_id}: {e}",
                task_id=self.task_id,
                stream=stream_name,
                cause=e,
            )
            self.errors.append(error)
            self._logger.exception("stream_processing_failed", stream=stream_name)

    async def _drain(self, events: AsyncIterator[AgentOutputEvent]) -> bool:
        """Dispatch events until EOF; return True if stopped by an auth failure."""
        try:
            async for event in events:
                if self._dispatch(event):
                    return True
            return False
        finally:
            if isinstance(events, AsyncGenerator):
                await events.aclose()

    def _dispatch(self, event: AgentOutputEvent) -> bool:
        """Report one event; return True if the channel must stop."""
        self._observer.on_output(event)

        # Only error events are checked, output that merely mentions an auth
        # failure (e.g. source code) must not fail the task.
        if event.type == OutputEventType.ERROR and self._adapter.detect_auth_error(
            event.message
        ):
            self._observer.on_auth_failure(event)
            return True

        if event.type == OutputEventType.USAGE_LIMIT:
            self._observer.on_usage_limit(event)
        elif event.type == OutputEventType.RATE_LIMIT:
            self._observer.on_rate_limit(event)
        return False


async def _close_stream(stream: AsyncIterable[bytes]) -> None:
    if isinstance(stream, anyio.abc.AsyncResource):
        await stream.aclose()
