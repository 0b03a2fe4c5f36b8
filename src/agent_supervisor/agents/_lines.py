"""Incremental line decoding for agent output streams."""

import codecs
from collections.abc import AsyncIterable, AsyncIterator


async def iter_lines(
    stream: AsyncIterable[bytes],
    *,
    encoding: str = "utf-8",
) -> AsyncIterator[str]:
    """Decode a byte stream into non-blank lines.

    Multi-byte characters split across chunk boundaries are decoded correctly.
    Blank lines are skipped and a trailing partial line is emitted at
    end-of-stream.

    Args:
        stream: The byte stream to read.
        encoding: Text encoding of the stream. Undecodable bytes are replaced.

    Yields:
        Each non-blank line without its line terminator.
    """
    decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
    buffer = ""

    async for chunk in stream:
        buffer += decoder.decode(chunk)
        *lines, buffer = buffer.split("\n")
        for line in lines:
            clean_line = line.rstrip("\r")
            if clean_line.strip():
                yield clean_line

    buffer += decoder.decode(b"", final=True)
    if buffer.strip():
        yield buffer.rstrip("\r")
