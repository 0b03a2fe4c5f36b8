"""Supervision of AI coding agent CLIs run on behalf of a task queue."""

from agent_supervisor.agents import (
    AgentAdapter,
    AgentInvokeOptions,
    AgentOutputEvent,
    AgentRegistry,
    BaseAgentAdapter,
    CommandAdapter,
    OutputEventType,
)
from agent_supervisor.config import SupervisorConfig, load_config
from agent_supervisor.supervisor import (
    EventBus,
    ManagedProcess,
    ProcessEvent,
    ProcessEventType,
    ProcessState,
    ProcessSupervisor,
)

__all__ = [
    "AgentAdapter",
    "AgentInvokeOptions",
    "AgentOutputEvent",
    "AgentRegistry",
    "BaseAgentAdapter",
    "CommandAdapter",
    "EventBus",
    "ManagedProcess",
    "OutputEventType",
    "ProcessEvent",
    "ProcessEventType",
    "ProcessState",
    "ProcessSupervisor",
    "SupervisorConfig",
    "load_config",
]
