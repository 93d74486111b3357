"""anyio adapters for awaiting procshell tokens from async code.

Stream transfer stays on its own threads; these helpers only move the
blocking waits onto worker threads so an event loop is never blocked.

Example:
    shell = ProcessShell.of("my-cli", "--json")
    queue = await result(shell.start_to_lines_queue())
    async for line in iter_lines(queue):
        handle(line)
"""

from __future__ import annotations

import functools
import queue
from collections.abc import AsyncIterator
from concurrent.futures import Future
from typing import Any, TypeVar

import anyio
import anyio.to_thread

from .runtime.lines_queue import is_end
from .runtime.shell import ProcessShell

__all__ = [
    "result",
    "run_to_return_code",
    "run_to_string",
    "run_to_lines",
    "run_to_bytes",
    "iter_lines",
]

T = TypeVar("T")

# queue polling interval so that cancellation is noticed promptly
POLL_INTERVAL = 0.1


async def result(token: Future[T], timeout: float | None = None) -> T:
    """Await a completion token.

    Raises:
        TimeoutError: If ``timeout`` seconds pass first
    """
    return await anyio.to_thread.run_sync(
        functools.partial(token.result, timeout), abandon_on_cancel=True
    )


async def run_to_return_code(shell: ProcessShell[Any]) -> int:
    return await result(shell.start_to_return_code())


async def run_to_string(shell: ProcessShell[Any]) -> str:
    return await result(shell.start_to_string())


async def run_to_lines(shell: ProcessShell[Any]) -> list[str]:
    return await result(shell.start_to_lines())


async def run_to_bytes(shell: ProcessShell[Any]) -> bytes:
    return await result(shell.start_to_bytes())


async def iter_lines(
    q: queue.Queue[str],
    *,
    cancel_scope: anyio.CancelScope | None = None,
) -> AsyncIterator[str]:
    """Yield lines from a line queue until its sentinel.

    Args:
        q: Queue produced by a queue sink
        cancel_scope: Optional anyio.CancelScope; iteration stops once it is cancelled
    """
    while True:
        if cancel_scope is not None and cancel_scope.cancel_called:
            return
        try:
            line = await anyio.to_thread.run_sync(
                functools.partial(q.get, timeout=POLL_INTERVAL),
                abandon_on_cancel=True,
            )
        except queue.Empty:
            continue
        if is_end(line):
            return
        yield line
