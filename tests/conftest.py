"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from procshell.config import Config  # noqa: E402

# 测试用子进程脚本
FAKE_CHILD_PATH = PROJECT_ROOT / "tests" / "fixtures" / "fake_child.py"


@pytest.fixture
def fake_child_path() -> Path:
    """fake_child.py 路径。"""
    return FAKE_CHILD_PATH


@pytest.fixture
def child() -> Callable[..., list[str]]:
    """构建运行 fake_child.py 的命令行。"""

    def build(*args: str) -> list[str]:
        return [sys.executable, str(FAKE_CHILD_PATH), *args]

    return build


@pytest.fixture
def config() -> Config:
    """默认配置（不读取环境变量），终止等待时间较短。"""
    return Config(term_timeout=0.5, kill_timeout=0.3)
