"""procshell - 子进程标准流编排。

启动一个外部进程，并发处理其 stdin/stdout/stderr，
支持可配置的 sink/source、超时以及阻塞/非阻塞两种完成模型。

环境变量:
    PROCSHELL_DEBUG: 调试模式 (默认 false)
    PROCSHELL_WAIT_THREADS: 输出结果等待其他流任务 (默认 true)
    PROCSHELL_KILL_ON_TIMEOUT: 超时终止子进程 (默认 false)

用法:
    from procshell import ProcessShell
    ProcessShell.of("echo", "hi").run_to_string()
"""

__version__ = "0.1.0"

from .config import Config, get_config, load_config
from .errors import (
    ProcessShellError,
    ShellTimeoutError,
    SinkMisuseError,
    SpawnError,
    StreamTransferError,
)
from .runtime import (
    END_OF_LINES,
    ProcessShell,
    Redirect,
    TimeUnit,
    drain_lines,
    for_each_line,
    for_each_line_poll,
)

__all__ = [
    "__version__",
    "Config",
    "get_config",
    "load_config",
    "ProcessShell",
    "Redirect",
    "TimeUnit",
    "END_OF_LINES",
    "for_each_line",
    "for_each_line_poll",
    "drain_lines",
    "ProcessShellError",
    "SpawnError",
    "StreamTransferError",
    "ShellTimeoutError",
    "SinkMisuseError",
]
