"""Background task coordination.

Every attached stream gets its own thread whose outcome lands on a single
:class:`concurrent.futures.Future` (resolved at most once). Ancillary tasks
(stdin feeder, stderr collector, extra processors, exit watcher) are kept in a
registry so that the output task can wait for them through a
:class:`CompletionBarrier` before resolving the caller's token.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future
from typing import Any, TypeVar

__all__ = [
    "CompletionBarrier",
    "TaskCoordinator",
    "resolve",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


def resolve(token: Future[T], value: T | None = None, error: BaseException | None = None) -> bool:
    """Resolve ``token`` unless it is already done.

    Returns:
        True if this call resolved the token
    """
    if token.done():
        return False
    try:
        if error is not None:
            token.set_exception(error)
        else:
            token.set_result(value)  # type: ignore[arg-type]
    except Exception:
        # lost a race with another resolver
        return False
    return True


class CompletionBarrier:
    """Non-blocking "all done" aggregation over a fixed set of tokens.

    ``when_done(callback)`` runs ``callback(first_failure)`` exactly once, on
    whichever thread resolves the last token (or immediately when all tokens
    are already done). ``first_failure`` follows registration order and is
    None when every token succeeded.
    """

    def __init__(self, tokens: Iterable[Future[Any]]) -> None:
        self._tokens = list(tokens)
        self._lock = threading.Lock()
        self._pending = len(self._tokens)
        self._callbacks: list[Callable[[BaseException | None], None]] = []
        self._fired = False

    def __len__(self) -> int:
        return len(self._tokens)

    @property
    def tokens(self) -> list[Future[Any]]:
        return list(self._tokens)

    def when_done(self, callback: Callable[[BaseException | None], None]) -> None:
        with self._lock:
            fire_now = self._fired
            if not fire_now:
                self._callbacks.append(callback)
                first_registration = len(self._callbacks) == 1
        if fire_now:
            callback(self.first_failure())
            return
        if first_registration:
            if not self._tokens:
                self._fire()
            for token in self._tokens:
                token.add_done_callback(self._on_token_done)

    def _on_token_done(self, _token: Future[Any]) -> None:
        with self._lock:
            self._pending -= 1
            if self._pending > 0:
                return
        self._fire()

    def _fire(self) -> None:
        with self._lock:
            if self._fired:
                return
            self._fired = True
            callbacks, self._callbacks = self._callbacks, []
        failure = self.first_failure()
        for callback in callbacks:
            callback(failure)

    def first_failure(self) -> BaseException | None:
        for token in self._tokens:
            if token.done() and not token.cancelled():
                error = token.exception()
                if error is not None:
                    return error
        return None

    def wait(self, timeout: float | None = None) -> bool:
        """Block until every token is done. Returns False on timeout."""
        done = threading.Event()
        self.when_done(lambda _failure: done.set())
        return done.wait(timeout)


class TaskCoordinator:
    """Spawns and tracks one thread per stream task.

    Example:
        tasks = TaskCoordinator("echo")
        feeder = tasks.launch("stdin", source.feed, ctx)
        tasks.launch_output("stdout", run_output)
        tasks.barrier().wait()
    """

    def __init__(self, label: str = "procshell") -> None:
        self.label = label
        self._lock = threading.Lock()
        self._threads: list[threading.Thread] = []
        self._ancillary: list[tuple[str, Future[Any]]] = []

    def launch(self, name: str, fn: Callable[..., T], *args: Any) -> Future[T]:
        """Run ``fn(*args)`` on a new thread as a registered ancillary task.

        The returned token carries ``fn``'s return value or its exception.
        Failures are logged at WARNING since nobody may be awaiting them.
        """
        token: Future[T] = Future()
        token.set_running_or_notify_cancel()

        def run() -> None:
            try:
                value = fn(*args)
            except BaseException as e:
                logger.warning(f"{self.label}: {name} task failed: {e!r}")
                resolve(token, error=e)
            else:
                resolve(token, value)

        with self._lock:
            self._ancillary.append((name, token))
        self._start_thread(name, run)
        return token

    def launch_delivering(self, name: str, fn: Callable[[Future[T]], Any]) -> Future[T]:
        """Run ``fn(token)`` on a new thread as a registered ancillary task.

        ``fn`` resolves the token itself, possibly long before it returns, so
        that waiting on the token does not wait for the stream to end. If
        ``fn`` raises, the failure is logged at WARNING and lands on the token
        unless it was already resolved. A token left unresolved when ``fn``
        returns resolves to None.
        """
        token: Future[T] = Future()
        token.set_running_or_notify_cancel()

        def run() -> None:
            try:
                fn(token)
            except BaseException as e:
                logger.warning(f"{self.label}: {name} task failed: {e!r}")
                resolve(token, error=e)
            else:
                resolve(token, None)

        with self._lock:
            self._ancillary.append((name, token))
        self._start_thread(name, run)
        return token

    def launch_output(self, name: str, fn: Callable[[], None]) -> None:
        """Run an unregistered task; it resolves its own token."""
        self._start_thread(name, fn)

    def _start_thread(self, name: str, target: Callable[[], None]) -> None:
        thread = threading.Thread(
            target=target, name=f"{self.label}-{name}", daemon=True
        )
        with self._lock:
            self._threads.append(thread)
        thread.start()

    @property
    def ancillary(self) -> list[tuple[str, Future[Any]]]:
        with self._lock:
            return list(self._ancillary)

    def ancillary_tokens(self) -> list[Future[Any]]:
        return [token for _, token in self.ancillary]

    def barrier(self, extra: Iterable[Future[Any]] = ()) -> CompletionBarrier:
        """Barrier over the ancillary tokens registered so far plus ``extra``."""
        return CompletionBarrier([*self.ancillary_tokens(), *extra])

    @property
    def threads(self) -> list[threading.Thread]:
        with self._lock:
            return list(self._threads)

    def join(self, timeout: float | None = None) -> bool:
        """Join all task threads. Returns False if any is still alive."""
        for thread in self.threads:
            if thread is threading.current_thread():
                continue
            thread.join(timeout)
        return not any(
            t.is_alive() for t in self.threads if t is not threading.current_thread()
        )
