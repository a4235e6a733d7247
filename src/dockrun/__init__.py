"""dockrun - 基于 docker CLI 的 Dockerfile 生成、镜像构建和容器运行工具。

环境变量:
    DOCKRUN_PROJECT_NAME: 项目名（默认 package.json name）
    DOCKRUN_PROJECT_VERSION: 项目版本（默认 package.json version）
    DOCKRUN_ENV_FILE: docker run --env-file 路径

用法:
    dockrun build --update && dockrun run
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
