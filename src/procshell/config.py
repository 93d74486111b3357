"""procshell 环境变量配置管理。

环境变量:
    PROCSHELL_DEBUG: 调试模式
        - true/1/yes = 开启 (子进程环境中附带 PROCSHELL_DEBUG_INIT_TIME)
        - false/0/no = 关闭 (默认)

    PROCSHELL_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)

    PROCSHELL_ENCODING: 文本 sink/source 使用的编码 (默认 utf-8)

    PROCSHELL_ENCODING_ERRORS: 解码错误处理方式 (默认 replace)

    PROCSHELL_QUEUE_CAPACITY: 行队列容量
        - 默认 100
        - 限制在 1-100000 范围

    PROCSHELL_WAIT_THREADS: 输出结果是否等待其他流任务完成
        - true/1/yes = 等待 (默认)
        - false/0/no = 不等待

    PROCSHELL_KILL_ON_TIMEOUT: 有限等待超时时是否终止子进程
        - true/1/yes = 终止
        - false/0/no = 不终止 (默认)

    PROCSHELL_TERM_TIMEOUT: SIGTERM 后的等待时间（秒，默认 2.0）

    PROCSHELL_KILL_TIMEOUT: SIGKILL 后的等待时间（秒，默认 1.0）
"""

from __future__ import annotations

import codecs
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_QUEUE_CAPACITY = 100
DEFAULT_TERM_TIMEOUT = 2.0
DEFAULT_KILL_TIMEOUT = 1.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_encoding(value: str | None) -> str:
    """解析编码名称，未知编码回退到 utf-8。"""
    if not value or not value.strip():
        return "utf-8"
    try:
        return codecs.lookup(value.strip()).name
    except LookupError:
        return "utf-8"


def _parse_capacity(value: str | None) -> int:
    """解析队列容量。"""
    if not value:
        return DEFAULT_QUEUE_CAPACITY
    try:
        capacity = int(value)
        return max(1, min(capacity, 100_000))
    except ValueError:
        return DEFAULT_QUEUE_CAPACITY


def _parse_seconds(value: str | None, default: float) -> float:
    """解析秒数，限制在 0.1-60 秒范围。"""
    if not value:
        return default
    try:
        seconds = float(value)
        return max(0.1, min(seconds, 60.0))
    except ValueError:
        return default


@dataclass(frozen=True)
class Config:
    """procshell 配置。

    通过构造参数显式传入 ProcessShell，不依赖进程级可变全局状态。

    Attributes:
        debug: 调试模式（子进程环境附带创建时间戳）
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
        encoding: 文本编码
        encoding_errors: 解码错误处理方式
        queue_capacity: 行队列容量
        wait_threads: 输出结果是否等待其他流任务
        kill_on_timeout: 超时时是否终止子进程
        term_timeout: SIGTERM 后等待时间（秒）
        kill_timeout: SIGKILL 后等待时间（秒）
    """

    debug: bool = False
    log_debug: bool = False
    log_file: str | None = None
    encoding: str = "utf-8"
    encoding_errors: str = "replace"
    queue_capacity: int = DEFAULT_QUEUE_CAPACITY
    wait_threads: bool = True
    kill_on_timeout: bool = False
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT

    def __repr__(self) -> str:
        return (
            f"Config(debug={self.debug}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"encoding={self.encoding}, "
            f"queue_capacity={self.queue_capacity}, "
            f"wait_threads={self.wait_threads}, "
            f"kill_on_timeout={self.kill_on_timeout})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "procshell"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"procshell_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("PROCSHELL_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        debug=_parse_bool(os.environ.get("PROCSHELL_DEBUG"), default=False),
        log_debug=log_debug,
        log_file=log_file,
        encoding=_parse_encoding(os.environ.get("PROCSHELL_ENCODING")),
        encoding_errors=os.environ.get("PROCSHELL_ENCODING_ERRORS") or "replace",
        queue_capacity=_parse_capacity(os.environ.get("PROCSHELL_QUEUE_CAPACITY")),
        wait_threads=_parse_bool(os.environ.get("PROCSHELL_WAIT_THREADS"), default=True),
        kill_on_timeout=_parse_bool(os.environ.get("PROCSHELL_KILL_ON_TIMEOUT"), default=False),
        term_timeout=_parse_seconds(
            os.environ.get("PROCSHELL_TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT
        ),
        kill_timeout=_parse_seconds(
            os.environ.get("PROCSHELL_KILL_TIMEOUT"), DEFAULT_KILL_TIMEOUT
        ),
    )


# 全局配置实例（延迟加载，仅作为 ProcessShell 未显式传入 config 时的默认值）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
