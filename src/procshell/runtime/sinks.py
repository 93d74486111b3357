"""Output/error stream sinks.

A sink consumes one readable pipe of the child and produces a typed value
through ``deliver``. Most sinks deliver after reaching end-of-stream; the
queue sink delivers its queue first and then keeps pushing lines, which is
what makes live consumption of long-running children possible.

Example:
    sink = LinesSink()
    sink.consume(ctx, results.append)
"""

from __future__ import annotations

import logging
import os
import queue
import subprocess
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, BinaryIO, Generic, TypeVar

from ..errors import StreamTransferError
from .codec import COPY_BUFFER_SIZE, TextCodec, iter_lines
from .lines_queue import END_OF_LINES, new_lines_queue

__all__ = [
    "StreamContext",
    "StreamSink",
    "LinesSink",
    "TextSink",
    "BytesSink",
    "FileSink",
    "WriterSink",
    "LinesQueueSink",
    "LineCallbackSink",
    "ProcessSink",
    "copy_stream",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")
W = TypeVar("W", bound=IO[bytes])


@dataclass(frozen=True)
class StreamContext:
    """What a sink or source works against.

    Attributes:
        process: The live child process
        name: Stream name (stdin/stdout/stderr)
        stream: The pipe end owned by this task
        codec: Text encoding policy
    """

    process: subprocess.Popen[bytes]
    name: str
    stream: IO[bytes] | None
    codec: TextCodec

    def require_stream(self) -> IO[bytes]:
        if self.stream is None:
            raise StreamTransferError(self.name, "stream is not piped")
        return self.stream


def copy_stream(src: BinaryIO | IO[bytes], dst: BinaryIO | IO[bytes]) -> int:
    """Copy ``src`` into ``dst`` in fixed-size chunks. Returns bytes copied."""
    total = 0
    while True:
        chunk = src.read(COPY_BUFFER_SIZE)
        if not chunk:
            return total
        dst.write(chunk)
        total += len(chunk)


class StreamSink(ABC, Generic[T]):
    """Strategy turning a readable stream into a value of type ``T``."""

    def consume(self, ctx: StreamContext, deliver: Callable[[T], None]) -> None:
        """Read ``ctx.stream`` and hand the produced value to ``deliver``.

        I/O failures are re-raised as :class:`StreamTransferError`.
        """
        try:
            self._consume(ctx, deliver)
        except OSError as e:
            raise StreamTransferError(ctx.name, str(e)) from e

    @abstractmethod
    def _consume(self, ctx: StreamContext, deliver: Callable[[T], None]) -> None:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class LinesSink(StreamSink[list[str]]):
    """Ordered list of decoded lines."""

    def _consume(self, ctx: StreamContext, deliver: Callable[[list[str]], None]) -> None:
        lines = list(iter_lines(ctx.require_stream(), ctx.codec))
        deliver(lines)


class TextSink(StreamSink[str]):
    """Whole decoded text, line terminators kept as written."""

    def _consume(self, ctx: StreamContext, deliver: Callable[[str], None]) -> None:
        with ctx.require_stream() as stream:
            data = stream.read()
        deliver(ctx.codec.decode(data))


class BytesSink(StreamSink[bytes]):
    """Raw bytes."""

    def _consume(self, ctx: StreamContext, deliver: Callable[[bytes], None]) -> None:
        with ctx.require_stream() as stream:
            data = stream.read()
        deliver(data)


class FileSink(StreamSink[Path]):
    """Copy the stream into a file; delivers the path even if copying fails."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"FileSink({self.path})"

    def _consume(self, ctx: StreamContext, deliver: Callable[[Path], None]) -> None:
        try:
            with ctx.require_stream() as src, open(self.path, "wb") as dst:
                copy_stream(src, dst)
        finally:
            deliver(self.path)


class WriterSink(StreamSink[W]):
    """Copy the stream into a caller-supplied binary writer.

    The writer is closed afterwards unless ``close=False``.
    """

    def __init__(self, writer: W, close: bool = True) -> None:
        self.writer = writer
        self.close = close

    def _consume(self, ctx: StreamContext, deliver: Callable[[W], None]) -> None:
        try:
            with ctx.require_stream() as src:
                copy_stream(src, self.writer)
        finally:
            if self.close:
                self.writer.close()
            else:
                self.writer.flush()
            deliver(self.writer)


class LinesQueueSink(StreamSink["queue.Queue[str]"]):
    """Bounded queue receiving lines as they are read.

    The queue is delivered before reading starts. :data:`END_OF_LINES` is
    always the last item, pushed by the same thread as every line.
    """

    def __init__(
        self,
        capacity: int = 100,
        target: queue.Queue[str] | None = None,
    ) -> None:
        self.queue: queue.Queue[str] = target if target is not None else new_lines_queue(capacity)

    def __repr__(self) -> str:
        return f"LinesQueueSink(maxsize={self.queue.maxsize})"

    def _consume(self, ctx: StreamContext, deliver: Callable[[queue.Queue[str]], None]) -> None:
        deliver(self.queue)
        try:
            for line in iter_lines(ctx.require_stream(), ctx.codec):
                self.queue.put(line)
        finally:
            self.queue.put(END_OF_LINES)


class LineCallbackSink(StreamSink[int]):
    """Invoke ``callback`` for every line; delivers the number of lines.

    With ``receive_end`` the callback also receives :data:`END_OF_LINES`
    once the stream is exhausted (or failed).
    """

    def __init__(self, callback: Callable[[str], Any], receive_end: bool = False) -> None:
        self.callback = callback
        self.receive_end = receive_end

    def _consume(self, ctx: StreamContext, deliver: Callable[[int], None]) -> None:
        count = 0
        try:
            for line in iter_lines(ctx.require_stream(), ctx.codec):
                self.callback(line)
                count += 1
        finally:
            if self.receive_end:
                self.callback(END_OF_LINES)
        deliver(count)


class ProcessSink(StreamSink[T]):
    """Arbitrary output processor working on the live process.

    ``fn(process, deliver)`` must call ``deliver`` with its result.
    """

    def __init__(self, fn: Callable[[subprocess.Popen[bytes], Callable[[T], None]], Any]) -> None:
        self.fn = fn

    def __repr__(self) -> str:
        return f"ProcessSink({getattr(self.fn, '__name__', self.fn)!s})"

    def _consume(self, ctx: StreamContext, deliver: Callable[[T], None]) -> None:
        self.fn(ctx.process, deliver)
