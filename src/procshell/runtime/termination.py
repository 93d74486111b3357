"""Graceful-then-forceful termination of a child process.

Termination strategy:
1. Send SIGTERM (CTRL_BREAK_EVENT on Windows) to the process group when the
   child was started in its own session, otherwise to the process itself
2. Wait up to ``term_timeout`` for graceful exit
3. If still running, send SIGKILL (``kill()`` on Windows)
4. Wait up to ``kill_timeout`` for forced exit
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys

__all__ = ["terminate_process", "IS_WINDOWS"]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"


def terminate_process(
    process: subprocess.Popen[bytes],
    *,
    group: bool = False,
    term_timeout: float = 2.0,
    kill_timeout: float = 1.0,
) -> int | None:
    """Terminate ``process``; returns its exit code, or None if it survived."""
    if process.poll() is not None:
        return process.returncode

    pid = process.pid
    logger.debug(f"Terminating subprocess pid={pid} group={group}")

    try:
        _send_terminate(process, group)
        try:
            code = process.wait(timeout=term_timeout)
            logger.debug(f"Subprocess terminated gracefully pid={pid} returncode={code}")
            return code
        except subprocess.TimeoutExpired:
            pass

        logger.debug(f"Force killing subprocess pid={pid}")
        _send_kill(process, group)
        try:
            code = process.wait(timeout=kill_timeout)
            logger.debug(f"Subprocess killed pid={pid} returncode={code}")
            return code
        except subprocess.TimeoutExpired:
            logger.warning(f"Subprocess did not exit after kill pid={pid}")
            return None
    except ProcessLookupError:
        logger.debug(f"Subprocess already exited pid={pid}")
        return process.poll()


def _send_terminate(process: subprocess.Popen[bytes], group: bool) -> None:
    if IS_WINDOWS:
        if group:
            try:
                os.kill(process.pid, signal.CTRL_BREAK_EVENT)
                return
            except OSError as e:
                logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
        process.terminate()
        return
    if group:
        try:
            os.killpg(os.getpgid(process.pid), signal.SIGTERM)
            return
        except ProcessLookupError:
            raise
        except OSError as e:
            logger.debug(f"killpg failed, falling back to terminate: {e}")
    process.terminate()


def _send_kill(process: subprocess.Popen[bytes], group: bool) -> None:
    if not IS_WINDOWS and group:
        try:
            os.killpg(os.getpgid(process.pid), signal.SIGKILL)
            return
        except ProcessLookupError:
            raise
        except OSError as e:
            logger.debug(f"killpg failed, falling back to kill: {e}")
    process.kill()
