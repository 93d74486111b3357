"""Text encoding policy shared by sinks and sources."""

from __future__ import annotations

import io
from collections.abc import Iterator
from dataclasses import dataclass
from typing import BinaryIO

__all__ = ["TextCodec", "iter_lines", "COPY_BUFFER_SIZE"]

COPY_BUFFER_SIZE = 8192


@dataclass(frozen=True)
class TextCodec:
    """Encoding plus decode-error policy.

    Attributes:
        encoding: Codec name
        errors: Error handler used for both encoding and decoding
    """

    encoding: str = "utf-8"
    errors: str = "replace"

    def decode(self, data: bytes) -> str:
        return data.decode(self.encoding, self.errors)

    def encode(self, text: str) -> bytes:
        return text.encode(self.encoding, self.errors)

    def reader(self, stream: BinaryIO) -> io.TextIOWrapper:
        """Wrap a binary pipe for line reading (universal newlines)."""
        return io.TextIOWrapper(
            stream, encoding=self.encoding, errors=self.errors, newline=None
        )


def iter_lines(stream: BinaryIO, codec: TextCodec) -> Iterator[str]:
    """Yield decoded lines without their terminator.

    A trailing terminator does not produce an extra empty line, so
    ``b"a\\n\\n"`` yields ``"a"`` and ``""``.
    """
    reader = codec.reader(stream)
    try:
        for line in reader:
            yield line[:-1] if line.endswith("\n") else line
    finally:
        # closes the underlying pipe as well
        reader.close()
