"""dockrun 命令行入口。

用法:
    dockrun dockerfile          生成 Dockerfile
    dockrun build [--update]    构建镜像（--update 先重新生成 Dockerfile）
    dockrun run                 运行容器
    dockrun inspect [IDENT]     inspect 容器/镜像（默认容器名）
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence

from . import __version__
from .config import Config, get_config
from .docker import DockerClient
from .errors import DockrunError, ExternalProcessFailed

__all__ = ["configure_logging", "build_parser", "run_command", "main"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(config: Config, verbose: bool = False) -> None:
    """配置日志输出。

    - 默认：输出到 stderr，INFO 级别
    - DOCKRUN_LOG_DEBUG：输出到临时文件，DEBUG 级别
    """
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.DEBUG if verbose else logging.INFO

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
        force=True,
    )
    # 只对 dockrun 命名空间启用详细日志
    logging.getLogger("dockrun").setLevel(log_level)


def build_parser() -> argparse.ArgumentParser:
    """构建命令行解析器。"""
    parser = argparse.ArgumentParser(
        prog="dockrun",
        description="Render a Dockerfile, build the image and run the container",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("dockerfile", help="Write ./Dockerfile from the project config")

    build = subparsers.add_parser("build", help="Build <name>:<version> from ./Dockerfile")
    build.add_argument(
        "--update", action="store_true", help="Regenerate the Dockerfile before building"
    )

    subparsers.add_parser("run", help="Run the image with port 3000 published")

    inspect = subparsers.add_parser("inspect", help="Print docker inspect output as JSON")
    inspect.add_argument("identifier", nargs="?", help="Container or image (default: container name)")

    return parser


async def run_command(
    args: argparse.Namespace,
    config: Config,
    client: DockerClient,
) -> int:
    """执行子命令，返回进程退出码。"""
    if args.command == "dockerfile":
        path = await client.update_dockerfile(config)
        logger.debug(f"Wrote {path}")
        return 0

    if args.command == "build":
        if args.update:
            await client.update_dockerfile(config)
        await client.build(config)
        return 0

    if args.command == "run":
        await client.run(config)
        return 0

    if args.command == "inspect":
        identifier = args.identifier or config.name
        data = await client.inspect(identifier)
        if data is None:
            logger.warning(f"No such container or image: {identifier}")
            return 1
        print(json.dumps(data, indent=2, ensure_ascii=False))
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Sequence[str] | None = None, client: DockerClient | None = None) -> int:
    """主入口点。"""
    args = build_parser().parse_args(argv)

    try:
        config = get_config()
    except DockrunError as e:
        print(f"dockrun: {e}", file=sys.stderr)
        return 1

    configure_logging(config, verbose=args.verbose)
    logger.debug(f"Loaded config: {config}")

    try:
        return asyncio.run(run_command(args, config, client or DockerClient()))
    except ExternalProcessFailed as e:
        logger.error(str(e))
        return e.exit_code
    except DockrunError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
