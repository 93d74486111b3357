"""procshell 异常类。

procshell v0.1.0

异常分类:
    SpawnError: 进程启动失败（可执行文件不存在、权限不足、工作目录无效）
    StreamTransferError: 流拷贝过程中的 I/O 错误（记录在对应任务的 Future 上）
    ShellTimeoutError: 有限等待超时（不会自动终止子进程）
    SinkMisuseError: 配置阶段的误用（重复启动、互相冲突的 sink 等）
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

__all__ = [
    "ProcessShellError",
    "SpawnError",
    "StreamTransferError",
    "ShellTimeoutError",
    "SinkMisuseError",
]


class ProcessShellError(Exception):
    """procshell 基础异常。"""
    pass


class SpawnError(ProcessShellError):
    """子进程启动失败。

    Attributes:
        argv: 启动时的命令行
        cwd: 工作目录（None 表示继承调用方）
    """

    def __init__(self, argv: Sequence[str], cwd: Path | None, message: str) -> None:
        self.argv = list(argv)
        self.cwd = cwd
        super().__init__(f"failed to start {self.argv[0] if self.argv else '?'}: {message}")


class StreamTransferError(ProcessShellError):
    """标准流拷贝失败。

    Attributes:
        stream: 流名称 (stdin/stdout/stderr/processor)
    """

    def __init__(self, stream: str, message: str) -> None:
        self.stream = stream
        super().__init__(f"[{stream}] {message}")


class ShellTimeoutError(ProcessShellError, TimeoutError):
    """有限等待在结果就绪之前到期。

    Attributes:
        timeout_ns: 等待预算（纳秒）
    """

    def __init__(self, timeout_ns: int, message: str = "") -> None:
        self.timeout_ns = timeout_ns
        super().__init__(message or f"timed out after {timeout_ns / 1e9:.3f}s")


class SinkMisuseError(ProcessShellError, ValueError):
    """配置误用，在配置阶段立即抛出。"""
    pass
