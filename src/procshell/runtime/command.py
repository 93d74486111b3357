"""Command specification and its fluent builder.

A :class:`CommandBuilder` accumulates argv tokens, the working directory,
environment edits and the per-stream redirect policy. ``snapshot()`` produces
the immutable :class:`CommandSpec` consumed by the spawn step; once the builder
is frozen (the process has been spawned) every further edit is rejected.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import IO, Any

from ..errors import SinkMisuseError

__all__ = [
    "Redirect",
    "StreamRedirect",
    "CommandSpec",
    "CommandBuilder",
    "STREAM_NAMES",
]

STREAM_NAMES = ("stdin", "stdout", "stderr")


class Redirect(str, Enum):
    """Redirect policy for one standard stream.

    - INHERIT: connected to the parent's own stream
    - PIPE: piped for programmatic access (set by binding a sink/source)
    - DISCARD: connected to the null device
    - FILE: read from / written to a file path
    - STDOUT: stderr only, merged into stdout
    """

    INHERIT = "inherit"
    PIPE = "pipe"
    DISCARD = "discard"
    FILE = "file"
    STDOUT = "stdout"


@dataclass(frozen=True)
class StreamRedirect:
    """Redirect policy plus the file path for ``Redirect.FILE``."""

    policy: Redirect = Redirect.INHERIT
    path: Path | None = None

    def __post_init__(self) -> None:
        if self.policy is Redirect.FILE and self.path is None:
            raise ValueError("Redirect.FILE requires a path")

    @property
    def is_pipe(self) -> bool:
        return self.policy is Redirect.PIPE


_INHERIT = StreamRedirect(Redirect.INHERIT)
_PIPE = StreamRedirect(Redirect.PIPE)
_DISCARD = StreamRedirect(Redirect.DISCARD)


@dataclass(frozen=True)
class CommandSpec:
    """Read-only snapshot of a process to spawn.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory (None = caller's)
        env: Environment overlay merged over ``os.environ``;
            a ``None`` value removes the variable
        stdin: Redirect policy for stdin
        stdout: Redirect policy for stdout
        stderr: Redirect policy for stderr
        new_session: Start the child in its own session/process group
    """

    argv: tuple[str, ...]
    cwd: Path | None = None
    env: Mapping[str, str | None] = field(default_factory=dict)
    stdin: StreamRedirect = _DISCARD
    stdout: StreamRedirect = _INHERIT
    stderr: StreamRedirect = _INHERIT
    new_session: bool = False

    def __post_init__(self) -> None:
        if not self.argv:
            raise ValueError("argv must not be empty")
        if self.stdin.policy is Redirect.STDOUT or self.stdout.policy is Redirect.STDOUT:
            raise ValueError("only stderr can be merged into stdout")

    @property
    def executable(self) -> str:
        return self.argv[0]

    def command_line(self) -> str:
        """Space-joined argv, as shown by ``echo``."""
        return " ".join(self.argv)

    def merged_env(self, base: Mapping[str, str] | None = None) -> dict[str, str] | None:
        """Overlay ``env`` on the ambient environment.

        Returns None when there is nothing to overlay so the child simply
        inherits the parent's environment.
        """
        if not self.env:
            return None
        merged = dict(os.environ if base is None else base)
        for name, value in self.env.items():
            if value is None:
                merged.pop(name, None)
            else:
                merged[name] = value
        return merged

    def popen_kwargs(self) -> tuple[dict[str, Any], list[IO[Any]]]:
        """Build kwargs for :class:`subprocess.Popen`.

        Returns:
            Tuple of (kwargs, files opened for FILE redirects). The caller
            closes the files once the child has been spawned.
        """
        opened: list[IO[Any]] = []
        kwargs: dict[str, Any] = {}
        try:
            kwargs["stdin"] = _popen_target(self.stdin, "rb", opened)
            kwargs["stdout"] = _popen_target(self.stdout, "wb", opened)
            kwargs["stderr"] = _popen_target(self.stderr, "wb", opened)
        except OSError:
            for f in opened:
                f.close()
            raise

        if self.cwd is not None:
            kwargs["cwd"] = self.cwd
        env = self.merged_env()
        if env is not None:
            kwargs["env"] = env
        if self.new_session:
            if os.name == "nt":
                kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
            else:
                kwargs["start_new_session"] = True
        return kwargs, opened


def _popen_target(redirect: StreamRedirect, mode: str, opened: list[IO[Any]]) -> Any:
    policy = redirect.policy
    if policy is Redirect.INHERIT:
        return None
    if policy is Redirect.PIPE:
        return subprocess.PIPE
    if policy is Redirect.DISCARD:
        return subprocess.DEVNULL
    if policy is Redirect.STDOUT:
        return subprocess.STDOUT
    f = open(redirect.path, mode)  # type: ignore[arg-type]
    opened.append(f)
    return f


class CommandBuilder:
    """Mutable accumulator for a :class:`CommandSpec`.

    Example:
        builder = CommandBuilder(["mvn", "compile"])
        builder.directory("/workspace").env("MAVEN_OPTS", "-q")
        spec = builder.snapshot()
    """

    def __init__(self, argv: Iterable[str] = ()) -> None:
        self._argv: list[str] = [str(a) for a in argv]
        self._cwd: Path | None = None
        self._env: dict[str, str | None] = {}
        self._redirects: dict[str, StreamRedirect] = {
            "stdin": _DISCARD,
            "stdout": _INHERIT,
            "stderr": _INHERIT,
        }
        self._new_session = False
        self._frozen = False

    def __repr__(self) -> str:
        return f"CommandBuilder({' '.join(self._argv)})"

    @property
    def argv(self) -> tuple[str, ...]:
        return tuple(self._argv)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def _check_mutable(self) -> None:
        if self._frozen:
            raise SinkMisuseError("command already spawned; configuration is read-only")

    def command(self, *argv: str) -> CommandBuilder:
        """Replace the argument vector."""
        self._check_mutable()
        self._argv = [str(a) for a in argv]
        return self

    def append(self, *args: str) -> CommandBuilder:
        self._check_mutable()
        self._argv.extend(str(a) for a in args)
        return self

    def directory(self, cwd: str | os.PathLike[str] | None) -> CommandBuilder:
        self._check_mutable()
        self._cwd = Path(cwd) if cwd is not None else None
        return self

    def env(self, name: str, value: str | None) -> CommandBuilder:
        """Set (or with ``None`` remove) one variable of the child's environment."""
        self._check_mutable()
        self._env[name] = value
        return self

    def update_env(self, values: Mapping[str, str | None]) -> CommandBuilder:
        self._check_mutable()
        self._env.update(values)
        return self

    def redirect(
        self,
        stream: str,
        policy: Redirect,
        path: str | os.PathLike[str] | None = None,
    ) -> CommandBuilder:
        """Set the redirect policy of ``stream`` (stdin/stdout/stderr)."""
        self._check_mutable()
        if stream not in STREAM_NAMES:
            raise ValueError(f"unknown stream: {stream}")
        if policy is Redirect.STDOUT and stream != "stderr":
            raise SinkMisuseError("only stderr can be merged into stdout")
        self._redirects[stream] = StreamRedirect(
            policy, Path(path) if path is not None else None
        )
        return self

    def redirect_policy(self, stream: str) -> Redirect:
        return self._redirects[stream].policy

    def new_session(self, enabled: bool = True) -> CommandBuilder:
        self._check_mutable()
        self._new_session = enabled
        return self

    def snapshot(self) -> CommandSpec:
        return CommandSpec(
            argv=tuple(self._argv),
            cwd=self._cwd,
            env=dict(self._env),
            stdin=self._redirects["stdin"],
            stdout=self._redirects["stdout"],
            stderr=self._redirects["stderr"],
            new_session=self._new_session,
        )
