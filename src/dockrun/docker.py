"""docker 命令封装。

提供 Dockerfile 生成、镜像构建、容器运行和 inspect。
所有 docker 调用都经过 ProcessRunner：
- build/run: 输出直接转发到当前进程的 stdout/stderr，非零退出码抛出 ExternalProcessFailed
- inspect: stdout 捕获到内存并解析为 JSON，非零退出码返回 None

使用示例:
    client = DockerClient()
    await client.update_dockerfile(config)
    await client.build(config)
    await client.run(config)

    # 或者使用模块级函数
    await build(config)
"""

from __future__ import annotations

import inspect as _inspect
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import Any

import anyio

from .config import Config
from .errors import MalformedInspectionOutput
from .runtime import ProcessRunner, ProcessSpec
from .templating import APP_PORT, render_dockerfile

__all__ = [
    "DOCKERFILE_NAME",
    "DockerClient",
    "Renderer",
    "build",
    "build_args",
    "inspect",
    "run",
    "run_args",
    "update_dockerfile",
]

logger = logging.getLogger(__name__)

DOCKERFILE_NAME = "Dockerfile"

# 类型别名：Dockerfile 渲染函数，可以是同步或异步的
Renderer = Callable[[Config], "str | Awaitable[str]"]


def build_args(config: Config, cwd: Path) -> list[str]:
    """构建 docker build 参数。

    Args:
        config: 项目配置
        cwd: 构建上下文目录，Dockerfile 位于其中
    """
    return [
        "build",
        "-t",
        config.image,
        "-f",
        str(cwd / DOCKERFILE_NAME),
        str(cwd),
    ]


def run_args(config: Config) -> list[str]:
    """构建 docker run 参数。

    端口映射固定为 3000:3000，容器名使用项目名。
    只有配置了 env_file 时才会出现 --env-file。
    """
    args = ["run", "--rm", "-p", f"{APP_PORT}:{APP_PORT}"]
    if config.env_file:
        args.extend(["--env-file", config.env_file])
    args.extend(["--name", config.project_name])
    args.append(config.image)
    return args


class DockerClient:
    """docker CLI 客户端。

    Attributes:
        runner: 执行子进程的 ProcessRunner
        command: docker 可执行文件及前置参数，默认 ("docker",)
    """

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        command: Sequence[str] = ("docker",),
        cwd: Path | None = None,
    ) -> None:
        """初始化客户端。

        Args:
            runner: 自定义 ProcessRunner（可选，用于注入输出 sink）
            command: docker 命令前缀，可替换为 podman 或测试用的假 CLI
            cwd: 项目目录，None 表示每次调用时使用当前工作目录
        """
        self.runner = runner or ProcessRunner()
        self.command = list(command)
        self._cwd = cwd

    @property
    def cwd(self) -> Path:
        return self._cwd or Path.cwd()

    def _spec(self, args: Sequence[str]) -> ProcessSpec:
        return ProcessSpec(argv=(*self.command, *args), cwd=self._cwd)

    async def update_dockerfile(
        self,
        config: Config,
        renderer: Renderer = render_dockerfile,
    ) -> Path:
        """渲染并写入 <cwd>/Dockerfile，已存在时直接覆盖。

        Returns:
            写入的 Dockerfile 路径
        """
        content = renderer(config)
        if _inspect.isawaitable(content):
            content = await content
        output_path = self.cwd / DOCKERFILE_NAME
        await anyio.Path(output_path).write_text(content, encoding="utf-8", newline="")
        logger.info("Dockerfile updated")
        return output_path

    async def inspect(self, identifier: str) -> Any | None:
        """docker inspect 指定容器或镜像。

        Returns:
            解析后的 JSON；docker 非零退出（通常是不存在）时返回 None

        Raises:
            MalformedInspectionOutput: 退出码为 0 但输出不是 JSON
        """
        result = await self.runner.capture(self._spec(["inspect", identifier]))
        if not result.ok:
            return None
        output = result.stdout.decode("utf-8", errors="replace")
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise MalformedInspectionOutput(identifier, output) from e

    async def build(self, config: Config) -> None:
        """构建镜像 <project_name>:<project_version>。

        Raises:
            ExternalProcessFailed: docker build 失败
        """
        await self.runner.run(self._spec(build_args(config, self.cwd)))

    async def run(self, config: Config) -> None:
        """前台运行容器，容器退出后返回。

        Raises:
            ExternalProcessFailed: docker run 失败或容器非零退出
        """
        await self.runner.run(self._spec(run_args(config)))


# 默认客户端（延迟创建）
_client: DockerClient | None = None


def _default_client() -> DockerClient:
    global _client
    if _client is None:
        _client = DockerClient()
    return _client


async def update_dockerfile(
    config: Config,
    renderer: Renderer = render_dockerfile,
) -> Path:
    """使用默认客户端更新 Dockerfile。"""
    return await _default_client().update_dockerfile(config, renderer)


async def inspect(target: Config | str) -> Any | None:
    """使用默认客户端 inspect。

    Args:
        target: 容器/镜像标识，或 Config（使用 config.name）
    """
    identifier = target.name if isinstance(target, Config) else target
    return await _default_client().inspect(identifier)


async def build(config: Config) -> None:
    """使用默认客户端构建镜像。"""
    await _default_client().build(config)


async def run(config: Config) -> None:
    """使用默认客户端运行容器。"""
    await _default_client().run(config)
