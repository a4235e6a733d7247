"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 假 docker CLI
FAKE_DOCKER_PATH = PROJECT_ROOT / "tests" / "fixtures" / "fake_docker.py"

FAKE_DOCKER_ENV = ("FAKE_DOCKER_EXIT", "FAKE_DOCKER_STDOUT", "FAKE_DOCKER_STDERR")


@dataclass
class CollectedOutput:
    """收集 ProcessRunner 转发的输出。"""

    stdout_chunks: list[bytes] = field(default_factory=list)
    stderr_chunks: list[bytes] = field(default_factory=list)

    @property
    def stdout(self) -> str:
        return b"".join(self.stdout_chunks).decode()

    @property
    def stderr(self) -> str:
        return b"".join(self.stderr_chunks).decode()


@pytest.fixture
def project_root() -> Path:
    """项目根目录。"""
    return PROJECT_ROOT


@pytest.fixture
def output() -> CollectedOutput:
    """输出收集器。"""
    return CollectedOutput()


@pytest.fixture
def fake_docker(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """假 docker 命令前缀，并清理控制它的环境变量。"""
    for key in FAKE_DOCKER_ENV:
        monkeypatch.delenv(key, raising=False)
    return [sys.executable, str(FAKE_DOCKER_PATH)]
