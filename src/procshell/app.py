"""procshell 命令行入口。

解析命令行参数，构建 ProcessShell 并以子进程退出码结束。

退出码:
    子进程退出码（正常情况）
    124: 有限等待超时
    127: 子进程启动失败
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

from . import __version__
from .config import Config, get_config
from .errors import ShellTimeoutError, SpawnError
from .runtime.shell import ProcessShell

__all__ = ["build_parser", "build_shell", "configure_logging", "run", "main"]

logger = logging.getLogger(__name__)

EXIT_TIMEOUT = 124
EXIT_SPAWN_FAILED = 127

OUTPUT_MODES = ("code", "string", "lines", "bytes")


def build_parser() -> argparse.ArgumentParser:
    """构建参数解析器。"""
    parser = argparse.ArgumentParser(
        prog="procshell",
        description="Run a command and collect its standard streams",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--cwd", default=None, help="Working directory")
    parser.add_argument(
        "--env", action="append", default=[], metavar="NAME=VALUE",
        help="Environment variable for the child (repeatable)",
    )
    parser.add_argument(
        "--unset", action="append", default=[], metavar="NAME",
        help="Remove an environment variable (repeatable)",
    )
    parser.add_argument(
        "--output", choices=OUTPUT_MODES, default="code",
        help="code = inherit stdout; string/lines/bytes = collect and print",
    )
    parser.add_argument("--input-file", default=None, help="Feed this file to stdin")
    parser.add_argument("--merge-stderr", action="store_true", help="Merge stderr into stdout")
    parser.add_argument("--inherit", action="store_true", help="Inherit all standard streams")
    parser.add_argument("--timeout", type=float, default=None, help="Timeout in seconds")
    parser.add_argument("--echo", action="store_true", help="Print the command line to stderr")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Command and arguments")
    return parser


def _parse_env(items: Sequence[str]) -> dict[str, str]:
    """解析 NAME=VALUE 列表。"""
    env: dict[str, str] = {}
    for item in items:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise ValueError(f"invalid --env value: {item!r}")
        env[name] = value
    return env


def build_shell(args: argparse.Namespace, config: Config) -> ProcessShell:
    """根据解析结果构建 ProcessShell。"""
    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        raise ValueError("no command given")

    shell = ProcessShell.of_iterable(command, config=config)
    if args.inherit:
        shell.set_redirect_to_inherit()
    if args.cwd:
        shell.set_directory(args.cwd)
    shell.update_env(_parse_env(args.env))
    for name in args.unset:
        shell.unset_env(name)
    if args.input_file:
        shell.set_input_file(args.input_file)
    if args.merge_stderr:
        shell.redirect_error_to_output()
    if args.echo:
        shell.echo()
    return shell


def run(args: argparse.Namespace, config: Config) -> int:
    """执行命令，返回退出码。"""
    shell = build_shell(args, config)
    mode = args.output

    if mode == "code" and args.timeout is None:
        return shell.run_to_return_code()

    if mode == "lines":
        shell.set_output_lines()
    elif mode == "bytes":
        shell.set_output_bytes()
    elif mode == "string":
        shell.set_output_string()

    result = shell.start_and_get(args.timeout) if args.timeout is not None else shell.start_and_get()

    if mode == "lines":
        for line in result:
            print(line)
    elif mode == "bytes":
        sys.stdout.buffer.write(result)
        sys.stdout.flush()
    elif mode == "string":
        sys.stdout.write(result)
        sys.stdout.flush()

    process = shell.process
    assert process is not None
    return process.wait()


def configure_logging(config: Config) -> None:
    """配置日志输出。

    - LOG_DEBUG 模式：输出到临时文件，procshell 命名空间为 DEBUG
    - 默认模式：输出到 stderr，procshell 命名空间为 INFO（debug 时为 DEBUG）
    """
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.DEBUG if config.debug else logging.INFO

    # root logger 保持 WARNING，减少第三方噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("procshell").setLevel(log_level)


def main(argv: Sequence[str] | None = None) -> int:
    """主入口点。"""
    config = get_config()
    configure_logging(config)

    parser = build_parser()
    args = parser.parse_args(argv)
    logger.debug(f"procshell starting: {config}")

    try:
        return run(args, config)
    except ValueError as e:
        parser.error(str(e))
    except SpawnError as e:
        logger.error(f"{e}")
        return EXIT_SPAWN_FAILED
    except ShellTimeoutError as e:
        logger.error(f"{e}")
        return EXIT_TIMEOUT
    return 1
