"""Line queue helper tests."""

from __future__ import annotations

import queue
import threading

import pytest

from procshell.runtime.lines_queue import (
    END_OF_LINES,
    drain_lines,
    for_each_line,
    for_each_line_poll,
    is_end,
    new_lines_queue,
)


def filled(*lines: str) -> queue.Queue[str]:
    q = new_lines_queue(len(lines) + 1)
    for line in lines:
        q.put(line)
    q.put(END_OF_LINES)
    return q


class TestLinesQueue:
    """Sentinel-terminated queues."""

    def test_sentinel_is_newline(self):
        """Lines never contain a newline, so it cannot collide."""
        assert END_OF_LINES == "\n"
        assert is_end("\n")
        assert not is_end("")

    def test_default_capacity(self):
        assert new_lines_queue().maxsize == 100

    def test_for_each_line(self):
        seen: list[str] = []
        for_each_line(filled("a", "", "b"), seen.append)
        assert seen == ["a", "", "b"]

    def test_for_each_line_waits_for_producer(self):
        q = new_lines_queue(2)
        seen: list[str] = []

        def produce():
            for i in range(10):
                q.put(f"line-{i}")
            q.put(END_OF_LINES)

        threading.Thread(target=produce, daemon=True).start()
        for_each_line(q, seen.append)
        assert seen == [f"line-{i}" for i in range(10)]

    def test_poll_reaches_end(self):
        seen: list[str] = []
        assert for_each_line_poll(filled("x"), seen.append, 1) is True
        assert seen == ["x"]

    def test_poll_times_out(self):
        q = new_lines_queue()
        q.put("only")
        seen: list[str] = []
        assert for_each_line_poll(q, seen.append, 50, "ms") is False
        assert seen == ["only"]

    def test_drain(self):
        assert drain_lines(filled("a", "b")) == ["a", "b"]
        assert drain_lines(filled("a"), timeout=1) == ["a"]

    def test_drain_timeout(self):
        with pytest.raises(TimeoutError):
            drain_lines(new_lines_queue(), timeout=0.05)
