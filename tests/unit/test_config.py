"""
Unit tests for configuration and command-line parsing.
"""

import pytest

from webserver.__main__ import build_parser, config_from_args, main
from webserver.config import ServerConfig


class TestServerConfig:
    def test_defaults(self):
        config = ServerConfig()

        assert config.host == "localhost"
        assert config.port == 80
        assert config.backlog == 10
        assert config.root_dir == "www"
        assert config.index_document == "/index.html"
        assert config.max_workers is None
        assert config.connection_timeout is None
        assert config.server_name == "web_server"
        config.validate()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"port": -1},
            {"port": 65536},
            {"backlog": 0},
            {"buffer_size": 512},
            {"max_workers": 0},
            {"connection_timeout": 0},
            {"accept_poll_interval": 0},
            {"index_document": "index.html"},
        ],
    )
    def test_validate_rejects(self, kwargs):
        with pytest.raises(ValueError):
            ServerConfig(**kwargs).validate()

    def test_port_zero_is_valid(self):
        ServerConfig(port=0).validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("WEB_HOST", "0.0.0.0")
        monkeypatch.setenv("WEB_PORT", "8080")
        monkeypatch.setenv("WEB_ROOT", "/srv/www")
        monkeypatch.setenv("WEB_WORKERS", "4")
        monkeypatch.setenv("WEB_TIMEOUT", "2.5")
        monkeypatch.setenv("WEB_LOG_LEVEL", "DEBUG")

        config = ServerConfig.from_env()

        assert config.host == "0.0.0.0"
        assert config.port == 8080
        assert config.root_dir == "/srv/www"
        assert config.max_workers == 4
        assert config.connection_timeout == 2.5
        assert config.log_level == "DEBUG"

    def test_from_env_defaults(self, monkeypatch):
        for name in ("WEB_HOST", "WEB_PORT", "WEB_ROOT", "WEB_WORKERS", "WEB_TIMEOUT", "WEB_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        assert ServerConfig.from_env() == ServerConfig()


class TestCommandLine:
    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in ("WEB_HOST", "WEB_PORT", "WEB_ROOT", "WEB_WORKERS", "WEB_TIMEOUT", "WEB_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

    def test_no_arguments_uses_defaults(self):
        args = build_parser().parse_args([])
        assert config_from_args(args) == ServerConfig()

    def test_positional_port(self):
        args = build_parser().parse_args(["8080"])
        assert config_from_args(args).port == 8080

    def test_options(self):
        args = build_parser().parse_args(
            ["9000", "-H", "0.0.0.0", "-r", "public", "-w", "8", "-t", "3", "-l", "DEBUG"]
        )
        config = config_from_args(args)

        assert config.port == 9000
        assert config.host == "0.0.0.0"
        assert config.root_dir == "public"
        assert config.max_workers == 8
        assert config.connection_timeout == 3.0
        assert config.log_level == "DEBUG"

    def test_cli_overrides_env(self, monkeypatch):
        monkeypatch.setenv("WEB_PORT", "7000")

        assert config_from_args(build_parser().parse_args([])).port == 7000
        assert config_from_args(build_parser().parse_args(["7001"])).port == 7001

    @pytest.mark.parametrize("value", ["abc", "-5", "70000"])
    def test_invalid_port_exits_2(self, value, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args([value])

        assert exc_info.value.code == 2
        assert "usage" in capsys.readouterr().err

    def test_startup_failure_exits_1(self, capsys):
        code = main(["0", "--host", "no-such-host.invalid"])

        assert code == 1
        assert "web:" in capsys.readouterr().err

    def test_invalid_config_exits_1(self, capsys):
        assert main(["8080", "--workers", "0"]) == 1
        assert "max_workers" in capsys.readouterr().err
