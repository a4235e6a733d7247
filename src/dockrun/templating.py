"""Dockerfile 模板生成。

根据 Config 生成 Node 服务的 Dockerfile 文本。
"""

from __future__ import annotations

import json
import shlex

from .config import Config
from .errors import ConfigError

__all__ = [
    "APP_PORT",
    "render_dockerfile",
]

# 容器内应用监听端口，docker run 固定映射到宿主机同一端口
APP_PORT = 3000


def _exec_form(command: str) -> str:
    """把启动命令转换为 exec 形式（JSON 数组）。

    Raises:
        ConfigError: 命令无法按 shell 规则拆分（如引号不闭合）
    """
    try:
        return json.dumps(shlex.split(command))
    except ValueError as e:
        raise ConfigError(f"Invalid DOCKRUN_START_COMMAND: {e}") from e


def render_dockerfile(config: Config) -> str:
    """生成 Dockerfile。

    Args:
        config: 项目配置

    Returns:
        完整的 Dockerfile 文本，以单个换行结尾
    """
    return f'''# Generated by dockrun for {config.project_name}:{config.project_version}
FROM {config.base_image}

WORKDIR {config.workdir}

COPY package*.json ./
RUN npm ci --omit=dev

COPY . .

ENV NODE_ENV=production
EXPOSE {APP_PORT}

CMD {_exec_form(config.start_command)}
'''
