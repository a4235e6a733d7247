"""dockrun 异常类。

所有异常继承自 DockrunError，便于调用方统一捕获。
"inspect 未找到" 不是异常，返回 None。
"""

from __future__ import annotations

from collections.abc import Sequence

__all__ = [
    "DockrunError",
    "ConfigError",
    "ExternalProcessFailed",
    "ProcessSpawnError",
    "MalformedInspectionOutput",
]


class DockrunError(Exception):
    """dockrun 基础异常。"""
    pass


class ConfigError(DockrunError):
    """配置错误（如 package.json 无法解析）。"""
    pass


class ExternalProcessFailed(DockrunError):
    """外部命令以非零退出码结束。

    Attributes:
        exit_code: 子进程退出码
        argv: 完整命令行
    """

    def __init__(self, exit_code: int, argv: Sequence[str] = ()) -> None:
        self.exit_code = exit_code
        self.argv = list(argv)
        super().__init__(f"Docker exited with code {exit_code}")


class ProcessSpawnError(DockrunError):
    """子进程无法启动（可执行文件不存在、无权限等）。

    原始 OSError 保存在 __cause__ 中。

    Attributes:
        argv: 尝试执行的命令行
    """

    def __init__(self, argv: Sequence[str], reason: str) -> None:
        self.argv = list(argv)
        super().__init__(f"Failed to start {self.argv[0] if self.argv else '?'}: {reason}")


class MalformedInspectionOutput(DockrunError):
    """inspect 退出码为 0，但输出不是合法 JSON。

    Attributes:
        identifier: 被 inspect 的容器/镜像标识
        output: 原始输出文本
    """

    def __init__(self, identifier: str, output: str) -> None:
        self.identifier = identifier
        self.output = output
        super().__init__(f"docker inspect {identifier} returned invalid JSON")
