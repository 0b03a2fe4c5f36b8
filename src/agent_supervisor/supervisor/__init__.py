"""Supervisor package for managing agent subprocesses.

This package owns the lifecycle of agent processes started on behalf of a
task queue: admission control, output draining and classification, terminal
state decisions, duration limits and lifecycle events.

Key Components:
    - ProcessState: Lifecycle state enumeration
    - ManagedProcess: The supervisor's per-task record
    - ProcessEvent / ProcessEventType: Lifecycle event records
    - EventBus: Typed publish/subscribe surface for events
    - OutputStreamProcessor: Concurrent stdout/stderr classifier
    - ConsoleEventSink: Console output implementation
    - ProcessSupervisor: Process table and state machine

Example:
    >>> from agent_supervisor.supervisor import EventBus, ProcessSupervisor
    >>> bus = EventBus()
    >>> async with ProcessSupervisor(registry, bus, max_concurrent=2) as supervisor:
    ...     managed = await supervisor.start("task-1", "project-1", options)
"""

from ._console import ConsoleEventSink
from ._events import (
    TERMINAL_EVENT_TYPES,
    EventBus,
    EventHandler,
    ProcessEvent,
    ProcessEventType,
    Subscription,
)
from ._models import ManagedProcess, ProcessState
from ._output import OutputStreamProcessor, StreamObserver
from ._supervisor import ProcessSupervisor

__all__ = [
    "TERMINAL_EVENT_TYPES",
    "ConsoleEventSink",
    "EventBus",
    "EventHandler",
    "ManagedProcess",
    "OutputStreamProcessor",
    "ProcessEvent",
    "ProcessEventType",
    "ProcessState",
    "ProcessSupervisor",
    "StreamObserver",
    "Subscription",
]
