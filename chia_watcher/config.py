"""Configuration loading from CLI args, env vars, and optional YAML file."""

import argparse
import logging
import os
from dataclasses import dataclass

import yaml

logger = logging.getLogger(__name__)

DEFAULT_LISTEN_ADDR = "[::]:4041"


@dataclass(frozen=True)
class Config:
    log_file: str
    listen_host: str = "::"
    listen_port: int = 4041
    poll_interval: float = 0.5
    rotate_grace: float = 5.0
    request_timeout: float = 10.0
    log_level: str = "INFO"


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chia-watcher",
        description="Watches a chia-blockchain harvester log and reports prometheus-ready metrics.",
    )
    parser.add_argument(
        "--log-file", required=True,
        help="Path to the chia debug.log to follow",
    )
    parser.add_argument(
        "--listen-addr", default=DEFAULT_LISTEN_ADDR,
        help=f"Address for the /metrics endpoint (default: {DEFAULT_LISTEN_ADDR})",
    )
    parser.add_argument(
        "--config", default=None,
        help="Path to YAML config file with tuning options",
    )
    return parser


def parse_listen_addr(value: str) -> tuple[str, int]:
    """Split 'host:port' or '[v6-host]:port' → (host, port)."""
    if value.startswith("["):
        host, sep, port = value[1:].partition("]:")
    else:
        host, sep, port = value.rpartition(":")
        if ":" in host:
            raise ValueError(f"IPv6 listen address must be bracketed: {value!r}")
    if not sep or not host:
        raise ValueError(f"Invalid listen address {value!r}, expected host:port")
    try:
        port_num = int(port)
    except ValueError:
        raise ValueError(f"Invalid port in listen address {value!r}") from None
    if not 0 <= port_num <= 65535:
        raise ValueError(f"Port out of range in listen address {value!r}")
    return host, port_num


def load_yaml_config(path: str | None) -> dict:
    """Load tuning options from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.info("Loaded YAML config from %s", path)
        return data
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}


def load_config(cli_args, yaml_data: dict) -> Config:
    """Build Config from defaults <- YAML <- env vars <- CLI args (highest priority)."""
    host, port = parse_listen_addr(cli_args.listen_addr)

    def _setting(key: str, env: str, default):
        value = os.environ.get(env, yaml_data.get(key, default))
        try:
            return type(default)(value)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid value for {key}: {value!r}") from None

    log_level = _setting("log_level", "LOG_LEVEL", Config.log_level).upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"Unknown log level {log_level!r}")

    poll_interval = _setting("poll_interval", "POLL_INTERVAL", Config.poll_interval)
    rotate_grace = _setting("rotate_grace", "ROTATE_GRACE", Config.rotate_grace)
    request_timeout = _setting("request_timeout", "REQUEST_TIMEOUT", Config.request_timeout)
    if not poll_interval > 0:
        raise ValueError(f"poll_interval must be positive, got {poll_interval}")
    if not rotate_grace >= 0:
        raise ValueError(f"rotate_grace must not be negative, got {rotate_grace}")
    if not request_timeout > 0:
        raise ValueError(f"request_timeout must be positive, got {request_timeout}")

    return Config(
        log_file=cli_args.log_file,
        listen_host=host,
        listen_port=port,
        poll_interval=poll_interval,
        rotate_grace=rotate_grace,
        request_timeout=request_timeout,
        log_level=log_level,
    )
