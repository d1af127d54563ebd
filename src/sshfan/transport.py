"""Remote command execution over SSH."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

import asyncssh

from .config import TaskDescriptor

logger = logging.getLogger(__name__)


class RemoteError(Exception):
    """Base class for failures reported by a remote executor."""


class HostConnectionError(RemoteError):
    """Host unreachable, connect timeout or authentication failure."""


class SessionError(RemoteError):
    """Connected, but the session channel could not be set up."""


class CommandError(RemoteError):
    """The remote command failed or its channel broke while running."""


@dataclass(frozen=True)
class ExecResult:
    """Combined output of one remote run, and the error if it failed."""

    output: bytes = b""
    error: RemoteError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RemoteExecutor(Protocol):
    async def execute(
        self, task: TaskDescriptor, timeout: float | None
    ) -> ExecResult: ...


class SSHExecutor:
    """Runs a task's command on its host with asyncssh.

    Failures are returned inside the ExecResult, never raised.
    """

    # Terminal size requested for the PTY (columns, rows)
    TERM_SIZE = (80, 40)

    def __init__(self, known_hosts: str | None = None):
        self.known_hosts = known_hosts

    async def execute(self, task: TaskDescriptor, timeout: float | None) -> ExecResult:
        try:
            conn = await asyncssh.connect(
                task.host,
                port=task.port,
                username=task.user,
                client_keys=[str(task.ssh_key)],
                known_hosts=self.known_hosts,
                connect_timeout=timeout,
            )
        except (
            OSError,
            asyncio.TimeoutError,
            asyncssh.Error,
            # Unreadable or encrypted key file, raised before dialing
            asyncssh.KeyImportError,
        ) as e:
            logger.debug("Connect to %s failed: %s", task.target, e)
            return ExecResult(error=HostConnectionError(_describe(e)))

        async with conn:
            try:
                result = await conn.run(
                    task.command,
                    check=False,
                    term_type="xterm",
                    term_size=self.TERM_SIZE,
                    stderr=asyncssh.STDOUT,
                    encoding=None,
                )
            except asyncssh.ChannelOpenError as e:
                return ExecResult(error=SessionError(_describe(e)))
            except (OSError, asyncssh.Error) as e:
                return ExecResult(error=CommandError(_describe(e)))

        output = _as_bytes(result.stdout)
        if result.exit_status is None:
            # Killed by a signal or the channel closed without a status
            signal = result.exit_signal[0] if result.exit_signal else "unknown"
            return ExecResult(
                output, CommandError(f"Command exited without status (signal {signal})")
            )
        if result.exit_status != 0:
            return ExecResult(
                output, CommandError(f"Command exited with status {result.exit_status}")
            )

        return ExecResult(output)


def _describe(exc: BaseException) -> str:
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


def _as_bytes(data: bytes | str | None) -> bytes:
    if data is None:
        return b""
    if isinstance(data, str):
        return data.encode("utf-8")
    return data
