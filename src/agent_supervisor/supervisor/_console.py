"""Console rendering of supervisor events."""

from typing import final

from rich.console import Console
from rich.style import Style
from rich.text import Text

from agent_supervisor.agents import OutputEventType

from ._events import ProcessEvent, ProcessEventType


@final
class ConsoleEventSink:
    """Event handler that writes supervisor events to a rich console.

    Formats events as `[task_id] LABEL details` with color coding:
    - output: The classified line, error output in dim red
    - lifecycle events: Special formatting based on event type

    Instances are callables, so they can be passed straight to
    ``EventBus.subscribe()``.
    """

    __slots__ = ("_console", "_event_styles", "_output_styles", "show_output")

    def __init__(self, console: Console | None = None, *, show_output: bool = True) -> None:
        """Initialize the sink.

        Args:
            console: Rich Console instance for output. If None, creates a new one.
            show_output: Whether agent output lines are printed.
        """
        self._console = console or Console()
        self.show_output = show_output
        self._output_styles: dict[OutputEventType, Style] = {
            OutputEventType.ERROR: Style(color="red", dim=True),
            OutputEventType.PROGRESS: Style(color="cyan", dim=True),
            OutputEventType.RATE_LIMIT: Style(color="yellow"),
            OutputEventType.USAGE_LIMIT: Style(color="yellow", bold=True),
            OutputEventType.COMPLETE: Style(color="green"),
        }
        self._event_styles: dict[ProcessEventType, Style] = {
            ProcessEventType.STARTED: Style(color="green", bold=True),
            ProcessEventType.COMPLETED: Style(color="green"),
            ProcessEventType.FAILED: Style(color="red", bold=True),
            ProcessEventType.AUTH_FAILED: Style(color="red", bold=True),
            ProcessEventType.RATE_LIMITED: Style(color="yellow"),
            ProcessEventType.USAGE_LIMITED: Style(color="yellow", bold=True),
            ProcessEventType.CANCELLED: Style(color="magenta"),
            ProcessEventType.TIMED_OUT: Style(color="magenta", bold=True),
        }

    def __call__(self, event: ProcessEvent) -> None:
        if event.event_type == ProcessEventType.OUTPUT:
            if self.show_output and event.output is not None:
                self.write_output(event)
            return
        self.write_event(event)

    def write_output(self, event: ProcessEvent) -> None:
        """Write one line of classified agent output with prefix."""
        assert event.output is not None  # noqa: S101
        style = self._output_styles.get(event.output.type, Style())

        text = Text()
        _ = text.append(f"[{event.task_id}]", style=Style(color="blue", bold=True))
        _ = text.append(" ")
        _ = text.append(event.output.message, style=style)

        self._console.print(text)

    def write_event(self, event: ProcessEvent) -> None:
        """Write a lifecycle event with special formatting."""
        style = self._event_styles.get(event.event_type, Style())

        text = Text()
        _ = text.append(f"[{event.task_id}]", style=Style(color="blue", bold=True))
        _ = text.append(" ")

        # "process:timed-out" -> "TIMED-OUT"
        label = event.event_type.value.removeprefix("process:").upper()
        _ = text.append(label, style=style)

        if event.process is not None:
            _ = text.append(
                f" (agent={event.process.agent_id} pid={event.process.pid})",
                style=Style(dim=True),
            )

        if event.exit_code is not None:
            _ = text.append(f" exit_code={event.exit_code}", style=Style(dim=True))

        if event.agent_id is not None:
            _ = text.append(f" agent={event.agent_id}", style=Style(dim=True))

        if event.duration_minutes is not None:
            _ = text.append(
                f" after {event.duration_minutes} minutes", style=Style(dim=True)
            )

        if event.reset_at is not None:
            _ = text.append(
                f" resets at {event.reset_at.to_iso8601_string()}",
                style=Style(dim=True),
            )

        if event.error:
            _ = text.append(f" - {event.error}", style=style)

        self._console.print(text)
