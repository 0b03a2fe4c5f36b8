"""Typed event bus for supervisor notifications.

The supervisor publishes one ProcessEvent per lifecycle transition and per
output line. Persistence and UI layers subscribe either with a synchronous
handler or by opening an async stream.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Self, final

import anyio
import pendulum
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from structlog.typing import FilteringBoundLogger

from agent_supervisor.agents import AgentOutputEvent
from agent_supervisor.utils import get_default_logger

from ._models import ManagedProcess


class ProcessEventType(StrEnum):
    """Types of supervisor events.

    - STARTED: Process spawned and record inserted
    - OUTPUT: One classified output event appended to the log
    - COMPLETED: Process exited 0 after its output was drained
    - FAILED: Process failed (non-zero exit, supervision error, stale record)
    - RATE_LIMITED: A rate-limit line was observed
    - USAGE_LIMITED: A usage-limit line was observed
    - AUTH_FAILED: An error line matched the adapter's auth heuristic
    - CANCELLED: Process cancelled by request
    - TIMED_OUT: Process killed after exceeding the duration limit
    """

    STARTED = "process:started"
    OUTPUT = "process:output"
    COMPLETED = "process:completed"
    FAILED = "process:failed"
    RATE_LIMITED = "process:rate-limited"
    USAGE_LIMITED = "process:usage-limited"
    AUTH_FAILED = "process:auth-failed"
    CANCELLED = "process:cancelled"
    TIMED_OUT = "process:timed-out"


TERMINAL_EVENT_TYPES: frozenset[ProcessEventType] = frozenset(
    {
        ProcessEventType.COMPLETED,
        ProcessEventType.FAILED,
        ProcessEventType.AUTH_FAILED,
        ProcessEventType.CANCELLED,
        ProcessEventType.TIMED_OUT,
    }
)


@dataclass(frozen=True, slots=True)
class ProcessEvent:
    """Immutable supervisor event.

    Only the payload field matching ``event_type`` is set.

    Attributes:
        task_id: Task the event belongs to.
        event_type: Type of event.
        timestamp: When the event was published.
        process: The new record (STARTED).
        output: The classified output (OUTPUT).
        exit_code: Process exit code (COMPLETED).
        error: Failure reason (FAILED).
        reset_at: When the usage limit resets, if known (USAGE_LIMITED).
        agent_id: Adapter whose credentials failed (AUTH_FAILED).
        duration_minutes: The exceeded duration limit (TIMED_OUT).
    """

    task_id: str
    event_type: ProcessEventType
    timestamp: pendulum.DateTime = field(default_factory=lambda: pendulum.now("UTC"))
    process: ManagedProcess | None = None
    output: AgentOutputEvent | None = None
    exit_code: int | None = None
    error: str | None = None
    reset_at: pendulum.DateTime | None = None
    agent_id: str | None = None
    duration_minutes: int | None = None

    @property
    def is_terminal(self) -> bool:
        """Return True if the event reports a terminal transition."""
        return self.event_type in TERMINAL_EVENT_TYPES


EventHandler = Callable[[ProcessEvent], None]


@final
class Subscription:
    """Handle returned by EventBus.subscribe(); closing it unsubscribes."""

    __slots__ = ("_bus", "event_types", "handler")

    def __init__(
        self,
        bus: "EventBus",
        handler: EventHandler,
        event_types: frozenset[ProcessEventType],
    ) -> None:
        self._bus: EventBus | None = bus
        self.handler = handler
        self.event_types = event_types

    def matches(self, event: ProcessEvent) -> bool:
        return not self.event_types or event.event_type in self.event_types

    @property
    def closed(self) -> bool:
        return self._bus is None

    def close(self) -> None:
        """Unsubscribe the handler. Closing twice is a no-op."""
        if self._bus is not None:
            self._bus.unsubscribe(self)
            self._bus = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@final
class EventBus:
    """Synchronous publish/subscribe surface for supervisor events.

    Handlers run in subscription order inside ``publish()``, so the order
    in which one task's events are observed is the order the supervisor
    published them. A failing handler is logged and skipped; it never
    affects the publisher or other handlers.

    Example:
        >>> bus = EventBus()
        >>> with bus.subscribe(print, ProcessEventType.COMPLETED):
        ...     ...
    """

    __slots__ = ("_logger", "_subscriptions")

    def __init__(self, *, logger: FilteringBoundLogger | None = None) -> None:
        """Initialize the bus.

        Args:
            logger: Logger for handler failures and dropped stream events.
        """
        self._subscriptions: list[Subscription] = []
        self._logger: FilteringBoundLogger = logger or get_default_logger()

    def subscribe(
        self,
        handler: EventHandler,
        *event_types: ProcessEventType,
    ) -> Subscription:
        """Subscribe a handler.

        Args:
            handler: Called synchronously with each matching event.
            *event_types: Event types to receive; none means all.

        Returns:
            A Subscription that unsubscribes when closed.
        """
        subscription = Subscription(self, handler, frozenset(event_types))
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription if it is still registered."""
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass

    def open_stream(
        self,
        *event_types: ProcessEventType,
        max_buffer_size: float = math.inf,
    ) -> MemoryObjectReceiveStream[ProcessEvent]:
        """Open an async stream of events.

        Events that do not fit in the buffer are dropped with a warning.
        Closing the returned stream unsubscribes it.

        Args:
            *event_types: Event types to receive; none means all.
            max_buffer_size: Number of undelivered events to buffer.

        Returns:
            The receiving end of a memory object stream.
        """
        send_stream: MemoryObjectSendStream[ProcessEvent]
        receive_stream: MemoryObjectReceiveStream[ProcessEvent]
        send_stream, receive_stream = anyio.create_memory_object_stream[ProcessEvent](
            max_buffer_size
        )
        subscription: Subscription | None = None

        def forward(event: ProcessEvent) -> None:
            try:
                send_stream.send_nowait(event)
            except anyio.WouldBlock:
                self._logger.warning(
                    "event_stream_full",
                    task_id=event.task_id,
                    event_type=event.event_type.value,
                )
            except (anyio.BrokenResourceError, anyio.ClosedResourceError):
                send_stream.close()
                if subscription is not None:
                    subscription.close()

        subscription = self.subscribe(forward, *event_types)
        return receive_stream

    def publish(self, event: ProcessEvent) -> None:
        """Dispatch an event to every matching subscriber.

        Args:
            event: The event to publish.
        """
        for subscription in tuple(self._subscriptions):
            if subscription.closed or not subscription.matches(event):
                continue
            try:
                subscription.handler(event)
            except Exception:  # noqa: BLE001
                # Subscriber errors should not break supervision
                self._logger.exception(
                    "event_handler_failed",
                    task_id=event.task_id,
                    event_type=event.event_type.value,
                )

    def __len__(self) -> int:
        return len(self._subscriptions)
