import pytest

from agent_supervisor.agents import AgentRegistry
from agent_supervisor.supervisor import EventBus
from tests.helpers import CapturedLog

from .fakes import EventRecorder, FakeAdapter


@pytest.fixture
def adapter(captured_log: CapturedLog) -> FakeAdapter:
    return FakeAdapter(logger=captured_log.logger)


@pytest.fixture
def registry(adapter: FakeAdapter, captured_log: CapturedLog) -> AgentRegistry:
    return AgentRegistry([adapter], logger=captured_log.logger)


@pytest.fixture
def bus(captured_log: CapturedLog) -> EventBus:
    return EventBus(logger=captured_log.logger)


@pytest.fixture
def recorder(bus: EventBus) -> EventRecorder:
    recorder = EventRecorder()
    _ = bus.subscribe(recorder)
    return recorder
