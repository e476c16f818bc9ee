"""Tests for configuration loading."""

import pytest

from chia_watcher.config import (
    Config,
    build_cli_parser,
    load_config,
    load_yaml_config,
    parse_listen_addr,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("POLL_INTERVAL", "ROTATE_GRACE", "REQUEST_TIMEOUT", "LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)


def _args(*argv):
    return build_cli_parser().parse_args(list(argv))


class TestParseListenAddr:
    @pytest.mark.parametrize("value,expected", [
        ("[::]:4041", ("::", 4041)),
        ("[::1]:9000", ("::1", 9000)),
        ("0.0.0.0:8080", ("0.0.0.0", 8080)),
        ("localhost:4041", ("localhost", 4041)),
    ])
    def test_valid(self, value, expected):
        assert parse_listen_addr(value) == expected

    @pytest.mark.parametrize("value", [
        "4041", ":4041", "localhost", "[::1]", "::1:4041", "host:abc", "host:70000",
    ])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_listen_addr(value)


class TestCli:
    def test_log_file_required(self):
        with pytest.raises(SystemExit):
            build_cli_parser().parse_args([])

    def test_defaults(self):
        config = load_config(_args("--log-file", "/tmp/debug.log"), {})
        assert config == Config(log_file="/tmp/debug.log")
        assert config.listen_host == "::"
        assert config.listen_port == 4041

    def test_listen_addr(self):
        config = load_config(_args("--log-file", "a.log", "--listen-addr", "127.0.0.1:9100"), {})
        assert (config.listen_host, config.listen_port) == ("127.0.0.1", 9100)


class TestLayering:
    def test_yaml_values(self):
        yaml_data = {"poll_interval": 1, "rotate_grace": 30, "log_level": "debug"}
        config = load_config(_args("--log-file", "a.log"), yaml_data)
        assert config.poll_interval == 1.0
        assert config.rotate_grace == 30.0
        assert config.log_level == "DEBUG"

    def test_env_overrides_yaml(self, monkeypatch):
        monkeypatch.setenv("POLL_INTERVAL", "0.25")
        monkeypatch.setenv("REQUEST_TIMEOUT", "3")
        config = load_config(_args("--log-file", "a.log"), {"poll_interval": 2})
        assert config.poll_interval == 0.25
        assert config.request_timeout == 3.0

    def test_bad_log_level(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "LOUD")
        with pytest.raises(ValueError):
            load_config(_args("--log-file", "a.log"), {})


class TestYamlFile:
    def test_no_path(self):
        assert load_yaml_config(None) == {}

    def test_missing_file(self, tmp_path):
        assert load_yaml_config(str(tmp_path / "missing.yaml")) == {}

    def test_reads_mapping(self, tmp_path):
        path = tmp_path / "watcher.yaml"
        path.write_text("poll_interval: 0.2\nrotate_grace: 10\n")
        assert load_yaml_config(str(path)) == {"poll_interval": 0.2, "rotate_grace": 10}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_config(str(path)) == {}


class TestValidation:
    @pytest.mark.parametrize("key", ["poll_interval", "rotate_grace", "request_timeout"])
    def test_null_yaml_value(self, key):
        with pytest.raises(ValueError, match=key):
            load_config(_args("--log-file", "a.log"), {key: None})

    def test_non_numeric_env(self, monkeypatch):
        monkeypatch.setenv("ROTATE_GRACE", "soon")
        with pytest.raises(ValueError, match="rotate_grace"):
            load_config(_args("--log-file", "a.log"), {})

    @pytest.mark.parametrize("yaml_data", [
        {"poll_interval": 0},
        {"poll_interval": -1},
        {"rotate_grace": -0.5},
        {"request_timeout": 0},
        {"request_timeout": -3},
    ])
    def test_out_of_range(self, yaml_data):
        with pytest.raises(ValueError):
            load_config(_args("--log-file", "a.log"), yaml_data)

    def test_negative_poll_interval_from_env(self, monkeypatch):
        monkeypatch.setenv("POLL_INTERVAL", "-1")
        with pytest.raises(ValueError, match="poll_interval"):
            load_config(_args("--log-file", "a.log"), {})

    def test_zero_rotate_grace_allowed(self):
        config = load_config(_args("--log-file", "a.log"), {"rotate_grace": 0})
        assert config.rotate_grace == 0.0
