"""dockrun 配置管理。

环境变量:
    DOCKRUN_PROJECT_NAME: 项目名（镜像名）
        - 未设置时读取当前目录 package.json 的 name
        - 仍无则使用当前目录名
        - 环境变量原样使用，可带 registry 前缀，例: "ghcr.io/acme/web"
        - 从 package.json 或目录名得到的名字会被转换，例: "@acme/web" -> "acme-web"

    DOCKRUN_PROJECT_VERSION: 项目版本（镜像 tag）
        - 未设置时读取 package.json 的 version，默认 "latest"

    DOCKRUN_NAME: 容器名
        - 默认与项目名相同

    DOCKRUN_ENV_FILE: 传给 docker run --env-file 的文件路径
        - 空/未设置 = 不传

    DOCKRUN_BASE_IMAGE: Dockerfile 基础镜像 (默认 node:lts-alpine)
    DOCKRUN_WORKDIR: 镜像内工作目录 (默认 /app)
    DOCKRUN_START_COMMAND: 容器启动命令 (默认 "npm start")

    DOCKRUN_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from .errors import ConfigError

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_BASE_IMAGE = "node:lts-alpine"
DEFAULT_WORKDIR = "/app"
DEFAULT_START_COMMAND = "npm start"
DEFAULT_VERSION = "latest"


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _env(key: str) -> str | None:
    """读取环境变量，空字符串视为未设置。"""
    value = os.environ.get(key)
    if value is None or not value.strip():
        return None
    return value.strip()


def _image_safe_name(name: str) -> str:
    """把项目名转换为合法的镜像名。

    docker 镜像名只允许小写字母、数字和 ._- 分隔符。
    """
    name = name.strip().lower().lstrip("@").replace("/", "-")
    name = re.sub(r"[^a-z0-9._-]+", "-", name)
    return name.strip("-._") or "app"


def _read_package_json(cwd: Path) -> dict[str, Any]:
    """读取 package.json，不存在时返回空字典。

    Raises:
        ConfigError: 文件存在但不是合法的 JSON 对象
    """
    path = cwd / "package.json"
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return data


@dataclass
class Config:
    """dockrun 配置。

    Attributes:
        project_name: 项目名，同时用作镜像名和 docker run 的容器名
        project_version: 项目版本，用作镜像 tag
        name: 容器名（inspect 的默认目标）
        env_file: docker run --env-file 路径，None 表示不传
        base_image: Dockerfile FROM 镜像
        workdir: 镜像内工作目录
        start_command: 容器启动命令
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    project_name: str
    project_version: str = DEFAULT_VERSION
    name: str = ""
    env_file: str | None = None
    base_image: str = DEFAULT_BASE_IMAGE
    workdir: str = DEFAULT_WORKDIR
    start_command: str = DEFAULT_START_COMMAND
    log_debug: bool = False
    log_file: str | None = None

    def __post_init__(self) -> None:
        """容器名默认与项目名相同。"""
        if not self.name:
            self.name = self.project_name

    @property
    def image(self) -> str:
        """镜像引用 <name>:<version>。"""
        return f"{self.project_name}:{self.project_version}"


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "dockrun"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"dockrun_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config(cwd: Path | None = None) -> Config:
    """从环境变量和 package.json 加载配置。

    Args:
        cwd: 项目目录，默认当前工作目录
    """
    cwd = cwd or Path.cwd()
    package = _read_package_json(cwd)

    # 显式指定的项目名原样使用（可能带 registry 前缀，如 ghcr.io/acme/web）
    project_name = _env("DOCKRUN_PROJECT_NAME") or _image_safe_name(
        str(package.get("name") or cwd.name)
    )
    project_version = (
        _env("DOCKRUN_PROJECT_VERSION")
        or str(package.get("version") or "")
        or DEFAULT_VERSION
    )

    log_debug = _parse_bool(os.environ.get("DOCKRUN_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        project_name=project_name,
        project_version=project_version,
        name=_env("DOCKRUN_NAME") or project_name,
        env_file=_env("DOCKRUN_ENV_FILE"),
        base_image=_env("DOCKRUN_BASE_IMAGE") or DEFAULT_BASE_IMAGE,
        workdir=_env("DOCKRUN_WORKDIR") or DEFAULT_WORKDIR,
        start_command=_env("DOCKRUN_START_COMMAND") or DEFAULT_START_COMMAND,
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
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
