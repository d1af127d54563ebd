"""Host-list file loading."""

from __future__ import annotations

import logging
from pathlib import Path

from .config import Defaults, TaskDescriptor

logger = logging.getLogger(__name__)


class HostFileError(ValueError):
    """A host-list line could not be parsed."""


def load_hosts(hosts_path: str | Path, defaults: Defaults) -> list[TaskDescriptor]:
    """Load a host-list file into task descriptors.

    Each non-blank, non-comment line is ``host``, ``user@host``, optionally
    followed by ``:port``. Anything not given on the line comes from
    ``defaults``. A host listed twice only runs once.
    """
    hosts_path = Path(hosts_path).expanduser()

    if not hosts_path.exists():
        raise FileNotFoundError(f"Hosts file not found: {hosts_path}")

    tasks: list[TaskDescriptor] = []
    seen: set[str] = set()

    with open(hosts_path, encoding="utf-8") as f:
        for lineno, raw_line in enumerate(f, start=1):
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue

            task = parse_host_line(line, defaults, lineno=lineno)
            if task.host in seen:
                logger.warning(
                    "%s:%d: duplicate host %s ignored", hosts_path, lineno, task.host
                )
                continue

            seen.add(task.host)
            tasks.append(task)

    return tasks


def parse_host_line(line: str, defaults: Defaults, lineno: int = 0) -> TaskDescriptor:
    """Parse a single host entry."""
    user = defaults.user
    port = defaults.port
    host = line

    if "@" in line:
        user, _, host = line.rpartition("@")
        if not user:
            raise HostFileError(f"line {lineno}: empty user in {line!r}")

    if host.startswith("["):
        # [ipv6] or [ipv6]:port
        address, closed, rest = host[1:].partition("]")
        if not closed or not address:
            raise HostFileError(f"line {lineno}: bad bracketed address in {line!r}")
        if rest:
            if not rest.startswith(":"):
                raise HostFileError(f"line {lineno}: bad bracketed address in {line!r}")
            port = _parse_port(rest[1:], line, lineno)
        host = address
    elif host.count(":") == 1:
        # host:port, but leave bare IPv6 addresses alone
        host, _, port_str = host.partition(":")
        port = _parse_port(port_str, line, lineno)

    if not host:
        raise HostFileError(f"line {lineno}: empty host in {line!r}")

    return TaskDescriptor(
        host=host,
        user=user,
        port=port,
        ssh_key=defaults.ssh_key,
        command=defaults.command,
        connect_timeout_ms=defaults.connect_timeout_ms,
    )


def _parse_port(port_str: str, line: str, lineno: int) -> int:
    if not port_str.isdigit() or not 0 < int(port_str) < 65536:
        raise HostFileError(f"line {lineno}: invalid port in {line!r}")
    return int(port_str)
