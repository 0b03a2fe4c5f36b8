from collections.abc import AsyncIterable, AsyncIterator

import pytest

from agent_supervisor.agents import AgentOutputEvent, OutputEventType
from agent_supervisor.supervisor import OutputStreamProcessor
from tests.helpers import CapturedLog

from .fakes import FakeAdapter, FakeProcess

pytestmark = pytest.mark.anyio


class RecordingObserver:
    def __init__(self) -> None:
        self.output: list[AgentOutputEvent] = []
        self.usage_limits: list[AgentOutputEvent] = []
        self.rate_limits: list[AgentOutputEvent] = []
        self.auth_failures: list[AgentOutputEvent] = []

    def on_output(self, event: AgentOutputEvent) -> None:
        self.output.append(event)

    def on_usage_limit(self, event: AgentOutputEvent) -> None:
        self.usage_limits.append(event)

    def on_rate_limit(self, event: AgentOutputEvent) -> None:
        self.rate_limits.append(event)

    def on_auth_failure(self, event: AgentOutputEvent) -> None:
        self.auth_failures.append(event)


class BrokenStdoutAdapter(FakeAdapter):
    """Adapter whose stdout parser fails after the first event."""

    async def parse_output(
        self, stream: AsyncIterable[bytes]
    ) -> AsyncIterator[AgentOutputEvent]:
        async for _chunk in stream:
            yield AgentOutputEvent(type=OutputEventType.LOG, message="before failure")
            msg = "parser bug"
            raise RuntimeError(msg)


def make_processor(
    adapter: FakeAdapter,
    process: FakeProcess,
    observer: RecordingObserver,
    captured_log: CapturedLog,
) -> OutputStreamProcessor:
    return OutputStreamProcessor(
        "task-1", adapter, process, observer, logger=captured_log.logger
    )


class TestClassifyStderrLine:
    @pytest.mark.parametrize(
        ("line", "expected"),
        [
            ("Usage limit reached, try again in 3 hours", OutputEventType.USAGE_LIMIT),
            ("429 Too Many Requests", OutputEventType.RATE_LIMIT),
            ("API overloaded", OutputEventType.RATE_LIMIT),
            ("warning: deprecated flag", OutputEventType.ERROR),
            ("Error: 401 Unauthorized", OutputEventType.ERROR),
        ],
    )
    def test_priority_order(
        self,
        line: str,
        expected: OutputEventType,
        adapter: FakeAdapter,
        captured_log: CapturedLog,
    ) -> None:
        processor = make_processor(
            adapter, FakeProcess(), RecordingObserver(), captured_log
        )

        event = processor.classify_stderr_line(line)

        assert event.type == expected
        assert event.message == line

    def test_usage_limit_carries_reset_time(
        self, adapter: FakeAdapter, captured_log: CapturedLog
    ) -> None:
        processor = make_processor(
            adapter, FakeProcess(), RecordingObserver(), captured_log
        )

        event = processor.classify_stderr_line("quota exceeded; try again in 2 hours")

        assert event.reset_at is not None


class TestRun:
    async def test_drains_both_channels_to_eof(
        self, adapter: FakeAdapter, captured_log: CapturedLog
    ) -> None:
        process = FakeProcess()
        observer = RecordingObserver()
        process.write_stdout("out 1\nout 2\n")
        process.write_stderr("err 1\n")
        process.close_output()

        await make_processor(adapter, process, observer, captured_log).run()

        messages = sorted(event.message for event in observer.output)
        assert messages == ["err 1", "out 1", "out 2"]

    async def test_limit_events_are_reported_after_output(
        self, adapter: FakeAdapter, captured_log: CapturedLog
    ) -> None:
        process = FakeProcess()
        observer = RecordingObserver()
        process.write_stderr("usage limit hit\nrate limit hit\n")
        process.close_output()

        await make_processor(adapter, process, observer, captured_log).run()

        assert len(observer.output) == 2
        assert observer.usage_limits == [observer.output[0]]
        assert observer.rate_limits == [observer.output[1]]

    async def test_auth_failure_stops_only_that_channel(
        self, adapter: FakeAdapter, captured_log: CapturedLog
    ) -> None:
        process = FakeProcess()
        observer = RecordingObserver()
        process.write_stderr("error: authentication failed\nnever read\n")
        process.write_stdout("stdout keeps going\n")
        process.close_output()

        processor = make_processor(adapter, process, observer, captured_log)
        await processor.run()

        assert [event.message for event in observer.auth_failures] == [
            "error: authentication failed"
        ]
        messages = [event.message for event in observer.output]
        assert "never read" not in messages
        assert "stdout keeps going" in messages
        assert captured_log.has_event("auth_failure_detected")
        assert processor.errors == []

    async def test_channel_failure_is_isolated(self, captured_log: CapturedLog) -> None:
        adapter = BrokenStdoutAdapter(logger=captured_log.logger)
        process = FakeProcess()
        observer = RecordingObserver()
        process.write_stdout("anything\n")
        process.write_stderr("stderr line\n")
        process.close_output()

        processor = make_processor(adapter, process, observer, captured_log)
        await processor.run()

        messages = sorted(event.message for event in observer.output)
        assert messages == ["before failure", "stderr line"]
        assert len(processor.errors) == 1
        error = processor.errors[0]
        assert error.stream == "stdout"
        assert error.task_id == "task-1"
        assert isinstance(error.cause, RuntimeError)
        assert captured_log.has_event("stream_processing_failed")

    async def test_closed_stream_is_treated_as_eof(
        self, adapter: FakeAdapter, captured_log: CapturedLog
    ) -> None:
        process = FakeProcess()
        observer = RecordingObserver()
        process.stdout.close()
        process.close_output()

        processor = make_processor(adapter, process, observer, captured_log)
        await processor.run()

        assert processor.errors == []
        assert observer.output == []
