"""命令行入口测试。"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from unittest import mock

import pytest

import dockrun.config as config_module
from dockrun.app import build_parser, configure_logging, main
from dockrun.config import Config, reload_config
from dockrun.docker import DockerClient
from dockrun.runtime import ProcessRunner


@pytest.fixture(autouse=True)
def restore_logging():
    """main() 会重新配置 root logger，测试后恢复。"""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    dockrun_level = logging.getLogger("dockrun").level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    logging.getLogger("dockrun").setLevel(dockrun_level)


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """切换到带 package.json 的项目目录并重新加载配置。"""
    (tmp_path / "package.json").write_text(
        json.dumps({"name": "svc", "version": "1.2.0"}), encoding="utf-8"
    )
    monkeypatch.chdir(tmp_path)
    env = {k: v for k, v in os.environ.items() if not k.startswith("DOCKRUN_")}
    with mock.patch.dict(os.environ, env, clear=True):
        reload_config()
        yield tmp_path
    reload_config()


@pytest.fixture
def client(fake_docker: list[str], output) -> DockerClient:
    runner = ProcessRunner(
        stdout_sink=output.stdout_chunks.append,
        stderr_sink=output.stderr_chunks.append,
    )
    return DockerClient(runner=runner, command=fake_docker)


class TestParser:
    """命令行解析测试。"""

    def test_subcommands(self):
        parser = build_parser()
        assert parser.parse_args(["dockerfile"]).command == "dockerfile"
        assert parser.parse_args(["build", "--update"]).update is True
        assert parser.parse_args(["build"]).update is False
        assert parser.parse_args(["run"]).command == "run"
        assert parser.parse_args(["inspect", "web"]).identifier == "web"
        assert parser.parse_args(["inspect"]).identifier is None

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestMain:
    """main() 测试。"""

    def test_dockerfile(self, project: Path, client: DockerClient):
        assert main(["dockerfile"], client=client) == 0
        assert (project / "Dockerfile").read_text(encoding="utf-8").startswith(
            "# Generated by dockrun for svc:1.2.0"
        )

    def test_build_with_update(self, project: Path, client: DockerClient, output):
        assert main(["build", "--update"], client=client) == 0
        assert (project / "Dockerfile").exists()
        assert json.loads(output.stdout)[:3] == ["build", "-t", "svc:1.2.0"]

    def test_build_without_update_keeps_dockerfile(self, project: Path, client: DockerClient):
        (project / "Dockerfile").write_text("FROM scratch\n", encoding="utf-8")

        assert main(["build"], client=client) == 0
        assert (project / "Dockerfile").read_text(encoding="utf-8") == "FROM scratch\n"

    def test_failure_returns_docker_exit_code(
        self, project: Path, client: DockerClient, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.setenv("FAKE_DOCKER_EXIT", "125")
        assert main(["run"], client=client) == 125

    def test_inspect_prints_json(self, project: Path, client: DockerClient, capsys):
        assert main(["inspect"], client=client) == 0

        printed = json.loads(capsys.readouterr().out)
        assert printed == [{"Id": "svc", "Name": "/svc"}]

    def test_inspect_not_found(
        self, project: Path, client: DockerClient, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.setenv("FAKE_DOCKER_EXIT", "1")
        assert main(["inspect", "missing"], client=client) == 1

    def test_spawn_error_returns_one(self, project: Path, output):
        runner = ProcessRunner(
            stdout_sink=output.stdout_chunks.append,
            stderr_sink=output.stderr_chunks.append,
        )
        client = DockerClient(runner=runner, command=["nonexistent_docker_xyz_123"])

        assert main(["run"], client=client) == 1

    def test_bad_package_json(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys):
        (tmp_path / "package.json").write_text("{", encoding="utf-8")
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(config_module, "_config", None)

        assert main(["dockerfile"]) == 1
        assert "package.json" in capsys.readouterr().err

    def test_bad_start_command_returns_one(
        self, project: Path, client: DockerClient, monkeypatch: pytest.MonkeyPatch
    ):
        """启动命令无法解析时返回 1，不写 Dockerfile。"""
        monkeypatch.setenv("DOCKRUN_START_COMMAND", 'node -e "console.log(1)')
        reload_config()

        assert main(["dockerfile"], client=client) == 1
        assert not (project / "Dockerfile").exists()


class TestConfigureLogging:
    """日志配置测试。"""

    def test_stderr_at_info(self):
        configure_logging(Config(project_name="svc"))
        assert logging.getLogger("dockrun").level == logging.INFO
        assert logging.getLogger().level == logging.WARNING

    def test_verbose(self):
        configure_logging(Config(project_name="svc"), verbose=True)
        assert logging.getLogger("dockrun").level == logging.DEBUG

    def test_log_file(self, tmp_path: Path):
        log_file = tmp_path / "dockrun.log"
        configure_logging(Config(project_name="svc", log_debug=True, log_file=str(log_file)))

        logging.getLogger("dockrun.test").debug("hello file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert logging.getLogger("dockrun").level == logging.DEBUG
        assert "hello file" in log_file.read_text(encoding="utf-8")
