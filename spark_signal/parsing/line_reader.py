"""Line reader — turns arbitrarily-chunked process output into complete lines.

signal-cli writes to a pipe and we read whatever is available, so a chunk
can end anywhere: mid-line, or even mid-character. The reader keeps the
unterminated tail around until a later chunk supplies the line feed.
"""

from __future__ import annotations

import codecs
import logging
from collections import deque
from typing import BinaryIO, Deque, Iterator, Union

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 4096


class LineReader:
    """Buffer chunks of text and yield complete, LF-terminated lines.

    There is no reset; discard the reader and create a new one instead.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)()
        self._buffer = ""
        self._ready: Deque[str] = deque()

    @property
    def pending(self) -> str:
        """Text received after the last line feed, not yet emitted."""
        return self._buffer

    def feed(self, chunk: Union[str, bytes]) -> Iterator[str]:
        """Add a chunk and return a lazy iterator over the lines it completes.

        Lines the caller does not consume stay queued and come out of the
        next iterator first, so arrival order is kept either way.
        """
        if isinstance(chunk, bytes):
            try:
                text = self._decoder.decode(chunk)
            except UnicodeDecodeError as exc:
                logger.debug("Dropping undecodable chunk (%d bytes): %s", len(chunk), exc)
                self._decoder.reset()
                text = ""
        else:
            text = chunk

        if text:
            self._buffer += text
            *complete, self._buffer = self._buffer.split("\n")
            self._ready.extend(complete)

        return self._drain()

    def _drain(self) -> Iterator[str]:
        while self._ready:
            yield self._ready.popleft()


def iter_stream_lines(stream: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[str]:
    """Read a binary pipe until EOF, yielding complete lines as they arrive.

    Whatever partial line is left at EOF is dropped.
    """
    reader = LineReader()
    read = getattr(stream, "read1", stream.read)
    while True:
        chunk = read(chunk_size)
        if not chunk:
            break
        yield from reader.feed(chunk)

    if reader.pending:
        logger.debug("Stream closed with %d unterminated chars", len(reader.pending))
