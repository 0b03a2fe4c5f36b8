"""Process handle backed by an anyio subprocess."""

import signal
from typing import final

import anyio.abc


@final
class SubprocessHandle:
    """ProcessHandle implementation wrapping ``anyio.abc.Process``.

    ``kill()`` sends SIGTERM so the agent can flush its output; the
    supervisor relies on the pipes closing for its stream consumers to end.
    """

    __slots__ = ("_process",)

    def __init__(self, process: anyio.abc.Process) -> None:
        """Initialize the handle.

        Args:
            process: The spawned anyio process. Its stdout and stderr must be pipes.
        """
        if process.stdout is None or process.stderr is None:
            msg = "Agent processes must be spawned with piped stdout and stderr"
            raise ValueError(msg)
        self._process = process

    @property
    def pid(self) -> int:
        """Return the OS process id."""
        return self._process.pid

    @property
    def stdout(self) -> anyio.abc.ByteReceiveStream:
        """Return the standard output byte stream."""
        assert self._process.stdout is not None  # noqa: S101
        return self._process.stdout

    @property
    def stderr(self) -> anyio.abc.ByteReceiveStream:
        """Return the standard error byte stream."""
        assert self._process.stderr is not None  # noqa: S101
        return self._process.stderr

    @property
    def returncode(self) -> int | None:
        """Return the exit code, or None while the process is running."""
        return self._process.returncode

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""
        return await self._process.wait()

    def kill(self) -> None:
        """Send SIGTERM to the process, ignoring processes that already exited."""
        if self._process.returncode is not None:
            return
        try:
            self._process.send_signal(signal.SIGTERM)
        except ProcessLookupError:
            # Process already exited
            pass
