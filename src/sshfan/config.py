"""Configuration and task descriptors for sshfan."""

from __future__ import annotations

import getpass
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

DEFAULT_COMMAND = "echo $HOSTNAME"


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "root"


@dataclass
class Defaults:
    """Global values applied to every host unless a host line overrides them."""

    user: str = field(default_factory=_current_user)
    port: int = 22
    ssh_key: Path = field(default_factory=lambda: Path("~/.ssh/id_rsa").expanduser())
    command: str = DEFAULT_COMMAND
    concurrency: int = 50
    connect_timeout_ms: int = 30000
    log_dir: Path = field(
        default_factory=lambda: Path(tempfile.gettempdir()) / "sshfan"
    )
    no_logs: bool = False


@dataclass(frozen=True)
class TaskDescriptor:
    """One unit of work: a host plus the command and credentials to run there."""

    host: str
    user: str
    port: int
    ssh_key: Path
    command: str
    connect_timeout_ms: int

    @property
    def target(self) -> str:
        return f"{self.user}@{self.host}:{self.port}"


_TYPES: dict[str, type] = {
    "user": str,
    "port": int,
    "ssh_key": str,
    "command": str,
    "concurrency": int,
    "connect_timeout_ms": int,
    "log_dir": str,
    "no_logs": bool,
}


def load_config(config_path: str | Path) -> Defaults:
    """Load defaults from a YAML file."""
    config_path = Path(config_path).expanduser().resolve()

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ValueError(f"{config_path}: invalid YAML") from exc

    if raw is None:
        return Defaults()
    if not isinstance(raw, dict):
        raise ValueError(
            f"{config_path}: top-level value is not a mapping: {type(raw).__name__}"
        )
    return _parse_defaults(raw)


def _parse_defaults(raw: dict[str, Any]) -> Defaults:
    """Parse a raw mapping into Defaults, rejecting unknown or mistyped keys."""
    known = {f.name for f in fields(Defaults)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

    for key, value in raw.items():
        expected = _TYPES[key]
        # bool is an int subclass
        if expected is int and isinstance(value, bool):
            raise ValueError(f"'{key}' must be an integer")
        if not isinstance(value, expected):
            raise ValueError(f"'{key}' must be of type {expected.__name__}")

    defaults = Defaults()
    if "user" in raw:
        defaults.user = raw["user"]
    if "port" in raw:
        defaults.port = raw["port"]
    if "ssh_key" in raw:
        defaults.ssh_key = Path(raw["ssh_key"]).expanduser()
    if "command" in raw:
        defaults.command = raw["command"]
    if "concurrency" in raw:
        defaults.concurrency = raw["concurrency"]
    if "connect_timeout_ms" in raw:
        defaults.connect_timeout_ms = raw["connect_timeout_ms"]
    if "log_dir" in raw:
        defaults.log_dir = Path(raw["log_dir"]).expanduser()
    if "no_logs" in raw:
        defaults.no_logs = raw["no_logs"]

    validate_defaults(defaults)
    return defaults


def validate_defaults(defaults: Defaults) -> None:
    """Check value ranges once all overrides have been applied."""
    if defaults.concurrency < 1:
        raise ValueError("concurrency must be at least 1")
    if not 0 < defaults.port < 65536:
        raise ValueError(f"port out of range: {defaults.port}")
    if defaults.connect_timeout_ms < 0:
        raise ValueError("connect_timeout_ms must not be negative")
    if not defaults.command.strip():
        raise ValueError("command must not be empty")
    if not defaults.user:
        raise ValueError("user must not be empty")
