"""Bounded line queues with an end-of-stream sentinel.

A queue sink pushes each decoded line as soon as it is read and finally
pushes :data:`END_OF_LINES`. Lines never contain a newline, so the sentinel
cannot collide with real data.
"""

from __future__ import annotations

import queue
from collections.abc import Callable
from datetime import timedelta

from .timeouts import TimeUnit, to_nanos, wait_seconds

__all__ = [
    "END_OF_LINES",
    "new_lines_queue",
    "is_end",
    "for_each_line",
    "for_each_line_poll",
    "drain_lines",
]

END_OF_LINES = "\n"

def new_lines_queue(capacity: int = 100) -> queue.Queue[str]:
    return queue.Queue(maxsize=capacity)


def is_end(line: str) -> bool:
    return line == END_OF_LINES


def for_each_line(q: queue.Queue[str], fn: Callable[[str], None]) -> None:
    """Call ``fn`` for every line until the sentinel is taken."""
    while True:
        line = q.get()
        if is_end(line):
            return
        fn(line)


def for_each_line_poll(
    q: queue.Queue[str],
    fn: Callable[[str], None],
    timeout: float | timedelta,
    unit: TimeUnit | str = TimeUnit.SECONDS,
) -> bool:
    """Like :func:`for_each_line` but waits at most ``timeout`` per item.

    Returns:
        True if the sentinel was reached, False if an item timed out
    """
    per_item = wait_seconds(to_nanos(timeout, unit))
    while True:
        try:
            line = q.get(timeout=per_item)
        except queue.Empty:
            return False
        if is_end(line):
            return True
        fn(line)


def drain_lines(q: queue.Queue[str], timeout: float | None = None) -> list[str]:
    """Collect every line up to the sentinel.

    Raises:
        TimeoutError: If ``timeout`` (seconds, per item) elapses first
    """
    lines: list[str] = []
    if timeout is None:
        for_each_line(q, lines.append)
    elif not for_each_line_poll(q, lines.append, timeout):
        raise TimeoutError(f"no line within {timeout}s ({len(lines)} lines read)")
    return lines
