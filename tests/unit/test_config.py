"""
Unit tests for ServerConfig.
"""

import pytest

from productserver.config import ServerConfig


class TestDefaults:
    def test_reference_defaults(self):
        config = ServerConfig()

        assert config.host == "127.0.0.1"
        assert config.port == 8000
        assert config.read_timeout == 15.0
        assert config.write_timeout == 15.0
        assert config.shutdown_timeout == 3.0
        assert config.address == "127.0.0.1:8000"

    def test_defaults_validate(self):
        ServerConfig().validate()


class TestFromEnv:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("HTTP_HOST", "0.0.0.0")
        monkeypatch.setenv("HTTP_PORT", "9000")
        monkeypatch.setenv("HTTP_READ_TIMEOUT", "5")
        monkeypatch.setenv("HTTP_WRITE_TIMEOUT", "6.5")
        monkeypatch.setenv("HTTP_SHUTDOWN_TIMEOUT", "10")
        monkeypatch.setenv("HTTP_WORKERS", "16")
        monkeypatch.setenv("HTTP_LOG_LEVEL", "DEBUG")

        config = ServerConfig.from_env()

        assert config.host == "0.0.0.0"
        assert config.port == 9000
        assert config.read_timeout == 5.0
        assert config.write_timeout == 6.5
        assert config.shutdown_timeout == 10.0
        assert config.max_workers == 16
        assert config.log_level == "DEBUG"

    def test_defaults_without_environment(self, monkeypatch):
        for name in ("HTTP_HOST", "HTTP_PORT", "HTTP_SHUTDOWN_TIMEOUT", "HTTP_WORKERS"):
            monkeypatch.delenv(name, raising=False)

        config = ServerConfig.from_env()

        assert config.port == 8000
        assert config.shutdown_timeout == 3.0

    def test_few_workers_lowers_minimum(self, monkeypatch):
        monkeypatch.setenv("HTTP_WORKERS", "2")

        config = ServerConfig.from_env()

        assert config.min_workers == 2
        config.validate()


class TestValidate:
    @pytest.mark.parametrize("changes", [
        {"port": -1},
        {"port": 65536},
        {"read_timeout": 0},
        {"write_timeout": -1},
        {"idle_timeout": 0},
        {"shutdown_timeout": -0.1},
        {"min_workers": 0},
        {"min_workers": 8, "max_workers": 4},
        {"queue_size": 0},
        {"buffer_size": 512},
        {"log_level": "LOUD"},
    ])
    def test_rejects(self, changes):
        with pytest.raises(ValueError):
            ServerConfig(**changes).validate()

    def test_port_zero_allowed(self):
        ServerConfig(port=0).validate()

    def test_zero_grace_period_allowed(self):
        ServerConfig(shutdown_timeout=0).validate()

    def test_log_level_case_insensitive(self):
        ServerConfig(log_level="debug").validate()
