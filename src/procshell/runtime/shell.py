"""ProcessShell: spawn one process and orchestrate its standard streams.

Example:
    ProcessShell.of("command", "arg1").set_redirect_to_inherit().echo().run_to_return_code()

    output = (
        ProcessShell.of("command", "arg1")
        .set_directory(work_dir)
        .set_input_string(text)
        .run_to_string()
    )

    lines = ProcessShell.of("tail", "-f", "log").start_to_lines_queue().result()
    for_each_line(lines, print)

Lifecycle:
1. Configure command, directory, environment and redirects
2. Bind at most one stdin source, one stdout sink and one stderr sink
   (binding a sink pipes that stream and fixes the result type)
3. ``start()`` spawns the process and launches the stdin feeder, the stderr
   collector and any extra processors, one thread each
4. ``start_output()`` (or a blocking ``run_*``/``start_and_get``) runs the
   stdout sink on its own thread and returns/awaits its token

With ``wait_threads`` enabled (the default) the output token resolves only
after every ancillary token registered before output started, so a caller
observing stdout's result also sees stderr fully drained. A stderr lines
queue is the exception: its token resolves with the live queue before
reading starts.
"""

from __future__ import annotations

import dataclasses
import functools
import logging
import os
import queue
import subprocess
import sys
import threading
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timedelta
from pathlib import Path
from typing import IO, Any, Generic, TextIO, TypeVar, cast

from ..config import Config, get_config
from ..errors import ShellTimeoutError, SinkMisuseError, SpawnError
from .codec import TextCodec
from .command import STREAM_NAMES, CommandBuilder, CommandSpec, Redirect
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
from .tasks import CompletionBarrier, TaskCoordinator, resolve
from .termination import terminate_process
from .timeouts import Deadline, TimeUnit, wait_seconds

__all__ = ["ProcessShell", "DEBUG_INIT_TIME_ENV"]

logger = logging.getLogger(__name__)

DEBUG_INIT_TIME_ENV = "PROCSHELL_DEBUG_INIT_TIME"

OutT = TypeVar("OutT")
T = TypeVar("T")
W = TypeVar("W", bound=IO[bytes])

Processor = Callable[[subprocess.Popen], Any]


class ProcessShell(Generic[OutT]):
    """Wrapper for configuring, spawning and collecting one OS process.

    ``OutT`` is the type produced by the bound stdout sink; it is decided by
    the ``set_output_*`` call made last.
    """

    def __init__(self, argv: Iterable[str] = (), *, config: Config | None = None) -> None:
        self.config = config if config is not None else get_config()
        self.builder = CommandBuilder(argv)
        self.codec = TextCodec(self.config.encoding, self.config.encoding_errors)
        self.wait_threads = self.config.wait_threads
        self.created_at = datetime.now()

        self._input: StreamSource | None = None
        self._output: StreamSink[Any] | None = None
        self._error: StreamSink[Any] | None = None
        self._error_callback: Callable[[Any], Any] | None = None
        self._processors: list[Processor] = []

        self._lock = threading.RLock()
        self._spec: CommandSpec | None = None
        self._process: subprocess.Popen[bytes] | None = None
        self._tasks = TaskCoordinator()
        self._output_token: Future[Any] | None = None
        self._error_token: Future[Any] | None = None
        self._exit_token: Future[int] | None = None

    @classmethod
    def of(cls, *argv: str, config: Config | None = None) -> ProcessShell[Any]:
        return cls(argv, config=config)

    @classmethod
    def of_iterable(cls, argv: Iterable[str], config: Config | None = None) -> ProcessShell[Any]:
        return cls(list(argv), config=config)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.command_line()})"

    # ------------------------------------------------------------------
    # Command configuration
    # ------------------------------------------------------------------

    def _check_configurable(self) -> None:
        if self._process is not None or self.builder.frozen:
            raise SinkMisuseError(f"{self!r} already started; configuration is read-only")

    @property
    def spec(self) -> CommandSpec:
        """The spawned snapshot, or the current configuration before start."""
        return self._spec if self._spec is not None else self.builder.snapshot()

    def command_line(self) -> str:
        return self.spec.command_line()

    def set(self, setter: Callable[[CommandBuilder], Any]) -> ProcessShell[OutT]:
        """Apply ``setter`` to the underlying :class:`CommandBuilder`."""
        self._check_configurable()
        setter(self.builder)
        return self

    def set_directory(self, cwd: str | os.PathLike[str] | None) -> ProcessShell[OutT]:
        self._check_configurable()
        self.builder.directory(cwd)
        return self

    def set_env(self, name: str, value: str) -> ProcessShell[OutT]:
        self._check_configurable()
        self.builder.env(name, value)
        return self

    def update_env(self, values: Mapping[str, str | None]) -> ProcessShell[OutT]:
        self._check_configurable()
        self.builder.update_env(values)
        return self

    def unset_env(self, name: str) -> ProcessShell[OutT]:
        self._check_configurable()
        self.builder.env(name, None)
        return self

    def set_new_session(self, enabled: bool = True) -> ProcessShell[OutT]:
        """Isolate the child in its own session/process group."""
        self._check_configurable()
        self.builder.new_session(enabled)
        return self

    def set_encoding(self, encoding: str, errors: str | None = None) -> ProcessShell[OutT]:
        self._check_configurable()
        self.codec = TextCodec(encoding, errors or self.codec.errors)
        return self

    def set_wait_threads(self, wait_threads: bool) -> ProcessShell[OutT]:
        """If True (default), the output result waits for input/error/processor tasks."""
        self._check_configurable()
        self.wait_threads = wait_threads
        return self

    def set_redirect(
        self,
        stream: str,
        policy: Redirect,
        path: str | os.PathLike[str] | None = None,
    ) -> ProcessShell[OutT]:
        """Set a redirect policy directly.

        Raises:
            SinkMisuseError: If a source/sink is bound to ``stream`` and
                ``policy`` is not PIPE
        """
        self._check_configurable()
        if policy is not Redirect.PIPE and self._bound(stream):
            raise SinkMisuseError(f"{stream} has a bound source/sink; cannot redirect to {policy.value}")
        self.builder.redirect(stream, policy, path)
        return self

    def _bound(self, stream: str) -> bool:
        return {
            "stdin": self._input,
            "stdout": self._output,
            "stderr": self._error,
        }[stream] is not None

    def set_redirect_to_inherit(self) -> ProcessShell[OutT]:
        """Connect all three streams to this process's own streams."""
        for stream in STREAM_NAMES:
            self.set_redirect(stream, Redirect.INHERIT)
        return self

    def redirect_error_to_output(self) -> ProcessShell[OutT]:
        """Merge stderr into stdout."""
        return self.set_redirect("stderr", Redirect.STDOUT)

    def add_processor(self, processor: Processor) -> ProcessShell[OutT]:
        """Run ``processor(process)`` on its own thread once the process starts."""
        self._check_configurable()
        self._processors.append(processor)
        return self

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def echo(self, before: str = "> ", after: str = "", file: TextIO | None = None) -> ProcessShell[OutT]:
        """Write the command line to stderr (or ``file``); execution is unaffected."""
        line = self.echo_string(before, after)
        logger.debug(f"echo: {line}")
        print(line, file=file if file is not None else sys.stderr, flush=True)
        return self

    def echo_string(self, before: str = "", after: str = "") -> str:
        return before + self.command_line() + after

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def set_input(self, source: StreamSource) -> ProcessShell[OutT]:
        """Bind the stdin source, replacing any previous one."""
        self._check_configurable()
        if self._input is not None:
            logger.debug(f"{self!r}: replacing input {self._input!r} with {source!r}")
        self._input = source
        self.builder.redirect("stdin", Redirect.PIPE)
        return self

    def set_input_bytes(self, data: bytes) -> ProcessShell[OutT]:
        return self.set_input(BytesSource(data))

    def set_input_string(self, text: str) -> ProcessShell[OutT]:
        return self.set_input(TextSource(text))

    def set_input_lines(self, lines: Iterable[str]) -> ProcessShell[OutT]:
        return self.set_input(LinesSource(lines))

    def set_input_file(self, path: str | os.PathLike[str]) -> ProcessShell[OutT]:
        return self.set_input(FileSource(path))

    def set_input_stream(self, reader: IO[bytes], close: bool = True) -> ProcessShell[OutT]:
        return self.set_input(ReaderSource(reader, close))

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def set_output(self, sink: StreamSink[T]) -> ProcessShell[T]:
        """Bind the stdout sink; the shell's result type becomes the sink's."""
        self._check_configurable()
        self._output = sink
        self.builder.redirect("stdout", Redirect.PIPE)
        return cast("ProcessShell[T]", self)

    def set_output_lines(self) -> ProcessShell[list[str]]:
        return self.set_output(LinesSink())

    def set_output_string(self) -> ProcessShell[str]:
        return self.set_output(TextSink())

    def set_output_bytes(self) -> ProcessShell[bytes]:
        return self.set_output(BytesSink())

    def set_output_file(self, path: str | os.PathLike[str]) -> ProcessShell[Path]:
        return self.set_output(FileSink(path))

    def set_output_stream(self, writer: W, close: bool = True) -> ProcessShell[W]:
        return self.set_output(WriterSink(writer, close))

    def set_output_lines_queue(self, capacity: int | None = None) -> ProcessShell[queue.Queue[str]]:
        return self.set_output(LinesQueueSink(capacity or self.config.queue_capacity))

    def set_output_processor(
        self,
        fn: Callable[[subprocess.Popen[bytes], Callable[[T], None]], Any],
    ) -> ProcessShell[T]:
        """Bind ``fn(process, deliver)`` as the stdout consumer."""
        return self.set_output(ProcessSink(fn))

    # ------------------------------------------------------------------
    # Error
    # ------------------------------------------------------------------

    def set_error(
        self,
        sink: StreamSink[T],
        callback: Callable[[T], Any] | None = None,
    ) -> ProcessShell[OutT]:
        """Bind the stderr sink; ``callback`` receives its value when done.

        Raises:
            SinkMisuseError: If stderr is merged into stdout
        """
        self._check_configurable()
        if self.builder.redirect_policy("stderr") is Redirect.STDOUT:
            raise SinkMisuseError("stderr is merged into stdout; it cannot have its own sink")
        self._error = sink
        self._error_callback = callback
        self.builder.redirect("stderr", Redirect.PIPE)
        return self

    def set_error_lines(self, callback: Callable[[list[str]], Any] | None = None) -> ProcessShell[OutT]:
        return self.set_error(LinesSink(), callback)

    def set_error_string(self, callback: Callable[[str], Any] | None = None) -> ProcessShell[OutT]:
        return self.set_error(TextSink(), callback)

    def set_error_bytes(self, callback: Callable[[bytes], Any] | None = None) -> ProcessShell[OutT]:
        return self.set_error(BytesSink(), callback)

    def set_error_file(self, path: str | os.PathLike[str]) -> ProcessShell[OutT]:
        return self.set_error(FileSink(path))

    def set_error_stream(self, writer: IO[bytes], close: bool = True) -> ProcessShell[OutT]:
        return self.set_error(WriterSink(writer, close))

    def set_error_line(self, callback: Callable[[str], Any], receive_end: bool = False) -> ProcessShell[OutT]:
        """Call ``callback`` per stderr line (and with the sentinel if ``receive_end``)."""
        return self.set_error(LineCallbackSink(callback, receive_end))

    def set_error_lines_queue(self, target: queue.Queue[str] | None = None) -> ProcessShell[OutT]:
        """Stream stderr lines into a bounded queue.

        Without ``target`` the queue is created here; ``error_future`` resolves
        with it as soon as the process starts, before stderr is read.
        """
        return self.set_error(LinesQueueSink(self.config.queue_capacity, target))

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def process(self) -> subprocess.Popen[bytes] | None:
        return self._process

    @property
    def output_future(self) -> Future[OutT] | None:
        return self._output_token

    @property
    def error_future(self) -> Future[Any] | None:
        return self._error_token

    @property
    def exit_future(self) -> Future[int] | None:
        return self._exit_token

    @property
    def ancillary_futures(self) -> list[Future[Any]]:
        return self._tasks.ancillary_tokens()

    @property
    def tasks(self) -> TaskCoordinator:
        return self._tasks

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def _spawn_spec(self) -> CommandSpec:
        spec = self.builder.snapshot()
        if self.config.debug:
            env = dict(spec.env)
            env[DEBUG_INIT_TIME_ENV] = self.created_at.isoformat()
            spec = dataclasses.replace(spec, env=env)
        return spec

    def start(self) -> subprocess.Popen[bytes]:
        """Spawn the process and launch the ancillary stream tasks.

        Raises:
            SpawnError: If the process cannot be created
            SinkMisuseError: If this shell was already started
        """
        with self._lock:
            if self._process is not None or self.builder.frozen:
                raise SinkMisuseError(f"{self!r} already started")
            spec = self._spawn_spec()
            self.builder.freeze()
            self._spec = spec
            self._tasks.label = self._label_for(spec)

            try:
                kwargs, opened = spec.popen_kwargs()
            except OSError as e:
                raise SpawnError(spec.argv, spec.cwd, str(e)) from e
            try:
                process = subprocess.Popen(list(spec.argv), **kwargs)
            except OSError as e:
                raise SpawnError(spec.argv, spec.cwd, str(e)) from e
            finally:
                for f in opened:
                    f.close()

            logger.debug(
                f"Started subprocess pid={process.pid} "
                f"argv={spec.argv[0]} cwd={spec.cwd}"
            )
            self._process = process

            if self._input is not None:
                self._tasks.launch("stdin", self._input.feed, self._context("stdin", process.stdin))
            if self._error is not None:
                ctx = self._context("stderr", process.stderr)
                self._error_token = self._tasks.launch_delivering(
                    "stderr", functools.partial(self._collect_error, ctx)
                )
            for i, processor in enumerate(self._processors):
                self._tasks.launch(f"processor-{i}", processor, process)
            return process

    @staticmethod
    def _label_for(spec: CommandSpec) -> str:
        return f"procshell[{Path(spec.executable).name}]"

    def _context(self, name: str, stream: IO[bytes] | None) -> StreamContext:
        assert self._process is not None
        return StreamContext(process=self._process, name=name, stream=stream, codec=self.codec)

    def _ensure_started(self) -> subprocess.Popen[bytes]:
        with self._lock:
            if self._process is not None:
                return self._process
            return self.start()

    def _collect_error(self, ctx: StreamContext, token: Future[Any]) -> None:
        """Run the stderr sink, resolving ``token`` as soon as it delivers.

        A queue sink delivers before reading, so its queue is reachable through
        ``error_future`` while stderr is still flowing.
        """
        assert self._error is not None

        def deliver(value: Any) -> None:
            if token.done():
                return
            if self._error_callback is not None:
                try:
                    self._error_callback(value)
                except Exception as e:
                    logger.warning(f"{self!r}: stderr callback failed: {e!r}")
                    resolve(token, error=e)
                    return
            resolve(token, value)

        self._error.consume(ctx, deliver)

    def _watch_exit(self) -> Future[int]:
        with self._lock:
            if self._exit_token is None:
                process = self._process
                assert process is not None

                def wait() -> int:
                    code = process.wait()
                    logger.debug(f"Subprocess completed pid={process.pid} returncode={code}")
                    return code

                self._exit_token = self._tasks.launch("exit", wait)
            return self._exit_token

    def _start_output_task(self, await_exit: bool = False) -> Future[OutT]:
        with self._lock:
            if self._output_token is not None:
                return self._output_token
            process = self._ensure_started()
            token: Future[OutT] = Future()
            token.set_running_or_notify_cancel()
            self._output_token = token
            waits = self._tasks.ancillary_tokens() if self.wait_threads else []
            if await_exit:
                waits.append(self._watch_exit())
            barrier = CompletionBarrier(waits)
            sink = self._output
            ctx = self._context("stdout", process.stdout)

        delivered = False

        def deliver(value: OutT) -> None:
            nonlocal delivered
            if delivered:
                return
            delivered = True
            barrier.when_done(
                lambda failure: resolve(token, error=failure)
                if failure is not None
                else resolve(token, value)
            )

        def run() -> None:
            nonlocal delivered
            try:
                if sink is not None:
                    sink.consume(ctx, deliver)
                elif ctx.stream is not None:
                    # piped without a sink: drain so the child cannot block
                    with ctx.stream as stream:
                        while stream.read(8192):
                            pass
            except BaseException as e:
                if delivered:
                    logger.warning(f"{self!r}: stdout failed after delivery: {e!r}")
                    return
                delivered = True
                error = e
                barrier.when_done(lambda _failure: resolve(token, error=error))
                return
            if not delivered:
                deliver(cast(OutT, None))

        self._tasks.launch_output("stdout", run)
        return token

    def start_output(self) -> Future[OutT]:
        """Start (if needed) and begin consuming stdout with the bound sink."""
        return self._start_output_task()

    def start_to_return_code(self) -> Future[int]:
        """Token of the exit code, resolved once stdout is consumed and the process exited."""
        output = self._start_output_task()
        exit_token = self._watch_exit()
        token: Future[int] = Future()
        token.set_running_or_notify_cancel()
        CompletionBarrier([output, exit_token]).when_done(
            lambda failure: resolve(token, error=failure)
            if failure is not None
            else resolve(token, exit_token.result())
        )
        return token

    def start_to_lines(self) -> Future[list[str]]:
        return self.set_output_lines()._start_output_task(await_exit=True)

    def start_to_string(self) -> Future[str]:
        return self.set_output_string()._start_output_task(await_exit=True)

    def start_to_bytes(self) -> Future[bytes]:
        return self.set_output_bytes()._start_output_task(await_exit=True)

    def start_to_lines_queue(self, capacity: int | None = None) -> Future[queue.Queue[str]]:
        """Token of a live line queue; it resolves without waiting for exit."""
        return self.set_output_lines_queue(capacity)._start_output_task()

    def start_and_get(
        self,
        timeout: float | timedelta | None = None,
        unit: TimeUnit | str = TimeUnit.SECONDS,
    ) -> OutT:
        """Start, wait for the process and return the output result.

        With ``timeout`` the whole call is bounded: after the bounded wait on
        the process, the remaining budget is spent waiting on the output token.

        Raises:
            ShellTimeoutError: If the result is not ready within ``timeout``.
                The child keeps running unless ``kill_on_timeout`` is configured.
        """
        token = self._start_output_task()
        process = self._process
        assert process is not None
        if timeout is None:
            process.wait()
            return token.result()

        deadline = Deadline.after(timeout, unit)
        try:
            process.wait(timeout=deadline.remaining_seconds())
        except subprocess.TimeoutExpired:
            pass

        remaining = deadline.remaining_ns()
        if remaining <= 0:
            if token.done():
                return token.result()
            raise self._timed_out(deadline)
        try:
            return token.result(timeout=wait_seconds(remaining))
        except FutureTimeoutError:
            if token.done():
                raise
            raise self._timed_out(deadline) from None

    def _timed_out(self, deadline: Deadline) -> ShellTimeoutError:
        logger.debug(f"{self!r}: timed out after {deadline.elapsed_ns() / 1e9:.3f}s")
        if self.config.kill_on_timeout:
            self.terminate()
        return ShellTimeoutError(
            deadline.budget_ns,
            f"{self!r} did not complete within {deadline.budget_ns / 1e9:.3f}s",
        )

    # ------------------------------------------------------------------
    # Blocking conveniences
    # ------------------------------------------------------------------

    def run_to_return_code(self) -> int:
        return self.start_to_return_code().result()

    def run_to_lines(self) -> list[str]:
        return self.set_output_lines().start_and_get()

    def run_to_string(self) -> str:
        return self.set_output_string().start_and_get()

    def run_to_bytes(self) -> bytes:
        return self.set_output_bytes().start_and_get()

    def run_to_lines_queue(self, capacity: int | None = None) -> queue.Queue[str]:
        return self.start_to_lines_queue(capacity).result()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def terminate(self) -> int | None:
        """Terminate the child (SIGTERM, then SIGKILL). Returns its exit code."""
        if self._process is None:
            return None
        return terminate_process(
            self._process,
            group=self.spec.new_session,
            term_timeout=self.config.term_timeout,
            kill_timeout=self.config.kill_timeout,
        )

    def join(self, timeout: float | None = None) -> bool:
        """Join every stream thread. Returns False if one is still running."""
        return self._tasks.join(timeout)

    def __enter__(self) -> ProcessShell[OutT]:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._process is not None and self._process.poll() is None:
            self.terminate()
        self.join(timeout=self.config.term_timeout + self.config.kill_timeout)
