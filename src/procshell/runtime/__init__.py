"""Runtime module for subprocess spawning and stream orchestration.

This module provides one-thread-per-stream plumbing around a single child
process, typed sinks/sources, and bounded waits.
"""

from __future__ import annotations

from .codec import TextCodec
from .command import CommandBuilder, CommandSpec, Redirect, StreamRedirect
from .lines_queue import (
    END_OF_LINES,
    drain_lines,
    for_each_line,
    for_each_line_poll,
    new_lines_queue,
)
from .shell import ProcessShell
from .sinks import (
    BytesSink,
    FileSink,
    LineCallbackSink,
    LinesQueueSink,
    LinesSink,
    ProcessSink,
    StreamContext,
    StreamSink,
    TextSink,
    WriterSink,
)
from .sources import (
    BytesSource,
    FileSource,
    LinesSource,
    ReaderSource,
    StreamSource,
    TextSource,
)
from .tasks import CompletionBarrier, TaskCoordinator
from .timeouts import Deadline, TimeUnit

__all__ = [
    "ProcessShell",
    "CommandBuilder",
    "CommandSpec",
    "Redirect",
    "StreamRedirect",
    "TextCodec",
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
    "StreamSource",
    "BytesSource",
    "TextSource",
    "LinesSource",
    "FileSource",
    "ReaderSource",
    "TaskCoordinator",
    "CompletionBarrier",
    "TimeUnit",
    "Deadline",
    "END_OF_LINES",
    "new_lines_queue",
    "for_each_line",
    "for_each_line_poll",
    "drain_lines",
]
