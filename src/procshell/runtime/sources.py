"""Stdin sources.

A source writes its bytes into the child's stdin and then closes the pipe,
signalling EOF. An empty source closes stdin right away.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path
from typing import IO

from ..errors import StreamTransferError
from .sinks import StreamContext, copy_stream

__all__ = [
    "StreamSource",
    "BytesSource",
    "TextSource",
    "LinesSource",
    "FileSource",
    "ReaderSource",
]


class StreamSource(ABC):
    """Strategy producing the bytes written to a process's stdin."""

    def feed(self, ctx: StreamContext) -> None:
        """Write into ``ctx.stream`` and close it.

        Raises:
            StreamTransferError: On any I/O error (e.g. the child exited early)
        """
        stream = ctx.require_stream()
        try:
            with stream:
                self._write(stream, ctx)
        except OSError as e:
            raise StreamTransferError(ctx.name, str(e)) from e

    @abstractmethod
    def _write(self, stream: IO[bytes], ctx: StreamContext) -> None:
        ...


class BytesSource(StreamSource):
    def __init__(self, data: bytes) -> None:
        self.data = bytes(data)

    def __repr__(self) -> str:
        return f"BytesSource({len(self.data)} bytes)"

    def _write(self, stream: IO[bytes], ctx: StreamContext) -> None:
        if self.data:
            stream.write(self.data)


class TextSource(StreamSource):
    """Text encoded with the shell's codec at write time."""

    def __init__(self, text: str) -> None:
        self.text = text

    def __repr__(self) -> str:
        return f"TextSource({len(self.text)} chars)"

    def _write(self, stream: IO[bytes], ctx: StreamContext) -> None:
        if self.text:
            stream.write(ctx.codec.encode(self.text))


class LinesSource(StreamSource):
    """Each line followed by ``\\n``."""

    def __init__(self, lines: Iterable[str]) -> None:
        self.lines = lines

    def _write(self, stream: IO[bytes], ctx: StreamContext) -> None:
        for line in self.lines:
            stream.write(ctx.codec.encode(line))
            stream.write(b"\n")


class FileSource(StreamSource):
    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"FileSource({self.path})"

    def _write(self, stream: IO[bytes], ctx: StreamContext) -> None:
        with open(self.path, "rb") as src:
            copy_stream(src, stream)


class ReaderSource(StreamSource):
    """Copy from a caller-supplied binary reader, closing it afterwards unless ``close=False``."""

    def __init__(self, reader: IO[bytes], close: bool = True) -> None:
        self.reader = reader
        self.close = close

    def _write(self, stream: IO[bytes], ctx: StreamContext) -> None:
        try:
            copy_stream(self.reader, stream)
        finally:
            if self.close:
                self.reader.close()
