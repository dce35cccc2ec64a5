"""Command-line configuration."""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from typing import NoReturn, Sequence


class ConfigError(Exception):
    """Raised when the command-line arguments cannot be parsed."""


@dataclass(frozen=True)
class Config:
    host: str = "127.0.0.1"
    port: str = "8000"


@dataclass(frozen=True)
class MultiConfig:
    devices: list[str] = field(default_factory=lambda: ["Loopback Audio"])
    socket_output: str = "/tmp/live2text"
    languages: list[str] = field(default_factory=lambda: ["en-US"])


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        raise ConfigError(f"cannot parse arguments: {message}")


def _new_parser() -> _Parser:
    return _Parser(prog="live2text", add_help=False, allow_abbrev=False)


def parse_config(args: Sequence[str] | None = None) -> Config:
    """Parse ``-host`` and ``-port`` options."""
    parser = _new_parser()
    parser.add_argument("-host", "--host", default=Config.host, help="Host address")
    parser.add_argument("-port", "--port", default=Config.port, help="Port address")
    namespace = parser.parse_args(list(args or []))
    return Config(host=namespace.host, port=namespace.port)


def parse_multi_config(args: Sequence[str] | None = None) -> MultiConfig:
    """Parse repeatable ``-device`` and ``-language`` options and ``-output``."""
    defaults = MultiConfig()
    parser = _new_parser()
    parser.add_argument(
        "-device", "--device", action="append", dest="devices", default=[],
        help="Device name (multiple allowed)",
    )
    parser.add_argument(
        "-output", "--output", default=defaults.socket_output,
        help="socket path for the output",
    )
    parser.add_argument(
        "-language", "--language", action="append", dest="languages", default=[],
        help="Language of speech (multiple allowed)",
    )
    namespace = parser.parse_args(list(args or []))
    return MultiConfig(
        devices=namespace.devices or defaults.devices,
        socket_output=namespace.output,
        languages=namespace.languages or defaults.languages,
    )