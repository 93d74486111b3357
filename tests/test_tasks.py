"""Task coordination tests.

Test coverage:
- Single resolution of completion tokens
- CompletionBarrier aggregation and failure order
- TaskCoordinator threads and registry
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future

import pytest

from procshell.runtime.tasks import CompletionBarrier, TaskCoordinator, resolve


def pending() -> Future:
    token: Future = Future()
    token.set_running_or_notify_cancel()
    return token


# =============================================================================
# resolve
# =============================================================================


class TestResolve:
    """At-most-once resolution."""

    def test_resolve_value(self):
        token = pending()
        assert resolve(token, 42) is True
        assert token.result() == 42

    def test_resolve_error(self):
        token = pending()
        assert resolve(token, error=RuntimeError("boom")) is True
        with pytest.raises(RuntimeError, match="boom"):
            token.result()

    def test_second_resolution_ignored(self):
        token = pending()
        resolve(token, "first")
        assert resolve(token, "second") is False
        assert resolve(token, error=RuntimeError("late")) is False
        assert token.result() == "first"

    def test_concurrent_resolvers(self):
        """Exactly one of many racing resolvers wins."""
        token = pending()
        wins: list[bool] = []
        start = threading.Barrier(8)

        def racer(i: int) -> None:
            start.wait()
            wins.append(resolve(token, i))

        threads = [threading.Thread(target=racer, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert wins.count(True) == 1


# =============================================================================
# CompletionBarrier
# =============================================================================


class TestCompletionBarrier:
    """Non-blocking all-done aggregation."""

    def test_empty_fires_immediately(self):
        seen: list = []
        CompletionBarrier([]).when_done(seen.append)
        assert seen == [None]

    def test_fires_after_last_token(self):
        a, b = pending(), pending()
        seen: list = []
        barrier = CompletionBarrier([a, b])
        barrier.when_done(seen.append)
        resolve(a, 1)
        assert seen == []
        resolve(b, 2)
        assert seen == [None]

    def test_already_done_tokens(self):
        a = pending()
        resolve(a, 1)
        seen: list = []
        CompletionBarrier([a]).when_done(seen.append)
        assert seen == [None]

    def test_fires_once_per_callback(self):
        a = pending()
        barrier = CompletionBarrier([a])
        first: list = []
        second: list = []
        barrier.when_done(first.append)
        barrier.when_done(second.append)
        resolve(a, 1)
        barrier.when_done(second.append)
        assert first == [None]
        assert second == [None, None]

    def test_first_failure_in_registration_order(self):
        a, b, c = pending(), pending(), pending()
        seen: list = []
        CompletionBarrier([a, b, c]).when_done(seen.append)
        err_c = RuntimeError("c")
        err_b = RuntimeError("b")
        resolve(c, error=err_c)
        resolve(b, error=err_b)
        resolve(a, "ok")
        assert seen == [err_b]

    def test_wait(self):
        a = pending()
        barrier = CompletionBarrier([a])
        assert barrier.wait(timeout=0.05) is False
        threading.Timer(0.05, resolve, args=(a, 1)).start()
        assert barrier.wait(timeout=5) is True

    def test_len_and_tokens(self):
        a, b = pending(), pending()
        barrier = CompletionBarrier([a, b])
        assert len(barrier) == 2
        assert barrier.tokens == [a, b]


# =============================================================================
# TaskCoordinator
# =============================================================================


class TestTaskCoordinator:
    """Thread-per-task launcher."""

    def test_launch_returns_value(self):
        tasks = TaskCoordinator("test")
        token = tasks.launch("add", lambda x, y: x + y, 1, 2)
        assert token.result(timeout=5) == 3

    def test_launch_failure(self, caplog):
        """Failures land on the token and are logged at WARNING."""
        tasks = TaskCoordinator("test")

        def broken():
            raise ValueError("broken task")

        with caplog.at_level(logging.WARNING, logger="procshell.runtime.tasks"):
            token = tasks.launch("broken", broken)
            with pytest.raises(ValueError, match="broken task"):
                token.result(timeout=5)
            assert tasks.join(timeout=5)
        assert any("broken task" in r.getMessage() for r in caplog.records)

    def test_registry(self):
        tasks = TaskCoordinator("test")
        a = tasks.launch("a", lambda: 1)
        b = tasks.launch("b", lambda: 2)
        assert [name for name, _ in tasks.ancillary] == ["a", "b"]
        assert tasks.ancillary_tokens() == [a, b]

    def test_output_not_registered(self):
        tasks = TaskCoordinator("test")
        done = threading.Event()
        tasks.launch_output("stdout", done.set)
        assert done.wait(5)
        assert tasks.ancillary == []
        assert len(tasks.threads) == 1

    def test_delivering_resolves_early(self):
        """The token resolves when fn delivers, while fn keeps running."""
        tasks = TaskCoordinator("test")
        release = threading.Event()

        def stream(token: Future) -> None:
            resolve(token, "ready")
            release.wait()

        token = tasks.launch_delivering("stderr", stream)
        assert token.result(timeout=5) == "ready"
        assert tasks.join(timeout=0.05) is False
        release.set()
        assert tasks.join(timeout=5) is True
        assert tasks.ancillary_tokens() == [token]

    def test_delivering_without_value(self):
        tasks = TaskCoordinator("test")
        assert tasks.launch_delivering("stderr", lambda token: None).result(timeout=5) is None

    def test_delivering_failure(self):
        tasks = TaskCoordinator("test")

        def broken(token: Future) -> None:
            raise ValueError("stream broke")

        with pytest.raises(ValueError, match="stream broke"):
            tasks.launch_delivering("stderr", broken).result(timeout=5)

    def test_delivering_failure_after_delivery(self):
        """A failure after delivery leaves the delivered value in place."""
        tasks = TaskCoordinator("test")

        def stream(token: Future) -> None:
            resolve(token, 1)
            raise ValueError("late")

        token = tasks.launch_delivering("stderr", stream)
        assert tasks.join(timeout=5)
        assert token.result() == 1

    def test_thread_names_and_daemon(self):
        tasks = TaskCoordinator("label")
        tasks.launch("stdin", lambda: None).result(timeout=5)
        thread = tasks.threads[0]
        assert thread.name == "label-stdin"
        assert thread.daemon

    def test_barrier_with_extra(self):
        tasks = TaskCoordinator("test")
        tasks.launch("a", lambda: 1)
        extra = pending()
        barrier = tasks.barrier([extra])
        assert len(barrier) == 2
        assert barrier.wait(timeout=0.05) is False
        resolve(extra, 0)
        assert barrier.wait(timeout=5) is True

    def test_join_timeout(self):
        tasks = TaskCoordinator("test")
        release = threading.Event()
        tasks.launch("blocked", release.wait)
        assert tasks.join(timeout=0.05) is False
        release.set()
        assert tasks.join(timeout=5) is True
